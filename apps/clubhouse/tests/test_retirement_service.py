"""
Unit tests for the practice retirement coordinator.

Covers the committed path, trainer rejection, all-or-nothing rollback when a
write fails mid-transaction and notification failure isolation.
"""

from datetime import time

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from clubhouse.database.models import (
    Enrollment,
    NotificationLog,
    Practice,
    PracticeSchedule,
)
from clubhouse.services import enrollment_service, retirement_service
from clubhouse.services.exceptions import (
    NotFoundError,
    TrainerStillAssignedError,
    TransientStoreFailure,
)

TWO_SLOTS = (
    ("MONDAY", time(9, 0), time(10, 0)),
    ("THURSDAY", time(9, 0), time(10, 0)),
)


async def _count(store, model, *criteria):
    async with store.session() as session:
        result = await session.execute(select(func.count()).select_from(model).where(*criteria))
        return result.scalar()


async def _practice_with_members(seed, name="Yoga", members=2):
    practice_id = await seed.practice(name=name, slots=TWO_SLOTS)
    member_ids = []
    for i in range(members):
        member_id = await seed.member(f"{name} Member {i}", email=f"{name.lower()}{i}@example.com")
        await seed.enrollment(member_id, practice_id)
        member_ids.append(member_id)
    return practice_id, member_ids


async def _enrollments_of(store, member_ids):
    async with store.session() as session:
        result = await session.execute(
            select(Enrollment).where(Enrollment.member_id.in_(member_ids)).order_by(Enrollment.id)
        )
        return list(result.scalars().all())


# ──────────────────────────────────────────────────────────────
# Committed path
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retire_deactivates_enrollments_and_deletes_practice(store, seed):
    practice_id, member_ids = await _practice_with_members(seed)

    result = await retirement_service.retire(store, practice_id)

    assert result["status"] == "committed"
    assert result["practice_name"] == "Yoga"
    assert result["affected_members"] == sorted(member_ids)
    assert await _count(store, Practice, Practice.id == practice_id) == 0
    assert await _count(store, PracticeSchedule, PracticeSchedule.practice_id == practice_id) == 0

    enrollments = await _enrollments_of(store, member_ids)
    assert len(enrollments) == 2
    assert all(e.active is False for e in enrollments)
    assert all(e.practice_id is None for e in enrollments)


@pytest.mark.asyncio
async def test_retire_skips_inactive_enrollments_in_affected_members(store, seed):
    practice_id, member_ids = await _practice_with_members(seed, members=1)
    former = await seed.member("Former")
    await seed.enrollment(former, practice_id, active=False)

    result = await retirement_service.retire(store, practice_id)

    assert result["affected_members"] == member_ids


@pytest.mark.asyncio
async def test_retire_practice_without_enrollments(store, seed):
    practice_id = await seed.practice(name="Chess")

    result = await retirement_service.retire(store, practice_id)

    assert result["affected_members"] == []
    assert result["state"] == "committed"


@pytest.mark.asyncio
async def test_retire_unknown_practice(store):
    with pytest.raises(NotFoundError):
        await retirement_service.retire(store, 12345)


@pytest.mark.asyncio
async def test_other_practices_keep_their_enrollments(store, seed):
    retired_id, _ = await _practice_with_members(seed, name="Yoga")
    kept_id, kept_members = await _practice_with_members(seed, name="Judo")

    await retirement_service.retire(store, retired_id)

    async with store.session() as session:
        count = await enrollment_service.count_active_enrollments(session, kept_id)
    assert count == len(kept_members)


# ──────────────────────────────────────────────────────────────
# Rejection and rollback
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retire_rejected_while_trainer_assigned(store, seed):
    practice_id, member_ids = await _practice_with_members(seed)
    await seed.trainer("Coach Rivera", practice_id=practice_id)

    with pytest.raises(TrainerStillAssignedError) as exc_info:
        await retirement_service.retire(store, practice_id)

    trainers = exc_info.value.details["trainers"]
    assert [t["full_name"] for t in trainers] == ["Coach Rivera"]
    assert await _count(store, Practice, Practice.id == practice_id) == 1
    enrollments = await _enrollments_of(store, member_ids)
    assert all(e.active and e.practice_id == practice_id for e in enrollments)


@pytest.mark.asyncio
async def test_failed_write_rolls_back_everything(store, seed, monkeypatch):
    practice_id, member_ids = await _practice_with_members(seed)

    async def failing_delete_schedules(session, pid):
        raise IntegrityError("DELETE FROM practice_schedules", {}, Exception("simulated"))

    monkeypatch.setattr(retirement_service, "_delete_schedules", failing_delete_schedules)

    with pytest.raises(TransientStoreFailure):
        await retirement_service.retire(store, practice_id)

    assert await _count(store, Practice, Practice.id == practice_id) == 1
    assert await _count(store, PracticeSchedule, PracticeSchedule.practice_id == practice_id) == 2
    enrollments = await _enrollments_of(store, member_ids)
    assert all(e.active and e.practice_id == practice_id for e in enrollments)


@pytest.mark.asyncio
async def test_failed_write_sends_no_notices(store, seed, notifier, sender, monkeypatch):
    practice_id, _ = await _practice_with_members(seed)

    async def failing_delete_practice(session, pid):
        raise IntegrityError("DELETE FROM practices", {}, Exception("simulated"))

    monkeypatch.setattr(retirement_service, "_delete_practice", failing_delete_practice)

    with pytest.raises(TransientStoreFailure):
        await retirement_service.retire(store, practice_id, notifier=notifier)
    await notifier.drain()

    assert sender.sent == []
    assert await _count(store, NotificationLog) == 0


# ──────────────────────────────────────────────────────────────
# Notifications
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retire_notifies_each_affected_member(store, seed, notifier, sender):
    practice_id, member_ids = await _practice_with_members(seed, members=3)

    result = await retirement_service.retire(store, practice_id, notifier=notifier)
    await notifier.drain()

    assert result["state"] == "notified"
    assert sorted(s["to"] for s in sender.sent) == sorted(
        f"yoga{i}@example.com" for i in range(3)
    )
    assert all("Yoga" in s["subject"] for s in sender.sent)
    assert await _count(store, NotificationLog, NotificationLog.status == "sent") == 3


@pytest.mark.asyncio
async def test_notification_failures_do_not_affect_result(store, seed, notifier, sender):
    practice_id, member_ids = await _practice_with_members(seed, members=3)
    sender.fail_for.add("yoga0@example.com")
    sender.raise_for.add("yoga1@example.com")

    result = await retirement_service.retire(store, practice_id, notifier=notifier)
    await notifier.drain()

    assert result["status"] == "committed"
    assert result["affected_members"] == sorted(member_ids)
    assert await _count(store, Practice, Practice.id == practice_id) == 0
    assert await _count(store, NotificationLog, NotificationLog.status == "failed") == 2
    assert await _count(store, NotificationLog, NotificationLog.status == "sent") == 1
