"""
Unit tests for practice administration: slot validation, creation,
modification, trainer assignment and listing.
"""

import asyncio
import pytest
from sqlalchemy import select

from clubhouse.database.models import Practice, PracticeSchedule
from clubhouse.services import enrollment_service, practice_service
from clubhouse.services.exceptions import (
    CapacityBelowEnrollmentsError,
    CapacityExceededError,
    NotFoundError,
    ValidationError,
)


def _slot(weekday, start, end):
    return {"weekday": weekday, "start_time": start, "end_time": end}


# ──────────────────────────────────────────────────────────────
# Slot validation
# ──────────────────────────────────────────────────────────────


def test_validate_slots_normalizes_weekday_and_times():
    slots = practice_service.validate_slots([_slot("monday", "8:00", "09:30")])

    weekday, start, end = slots[0]
    assert weekday.value == "MONDAY"
    assert (start.hour, start.minute) == (8, 0)
    assert (end.hour, end.minute) == (9, 30)


def test_adjacent_slots_on_same_day_are_allowed():
    slots = practice_service.validate_slots(
        [_slot("MONDAY", "08:00", "09:00"), _slot("MONDAY", "09:00", "10:00")]
    )
    assert len(slots) == 2


@pytest.mark.parametrize(
    "slots",
    [
        [_slot("FUNDAY", "08:00", "09:00")],
        [_slot("MONDAY", "8am", "09:00")],
        [_slot("MONDAY", "24:00", "25:00")],
        [_slot("MONDAY", "10:00", "09:00")],
        [_slot("MONDAY", "10:00", "10:00")],
        [_slot("MONDAY", "08:00", "09:30"), _slot("MONDAY", "09:00", "10:00")],
    ],
)
def test_invalid_slots_are_rejected(slots):
    with pytest.raises(ValidationError):
        practice_service.validate_slots(slots)


def test_same_times_on_different_days_do_not_overlap():
    slots = practice_service.validate_slots(
        [_slot("MONDAY", "08:00", "09:00"), _slot("TUESDAY", "08:00", "09:00")]
    )
    assert len(slots) == 2


# ──────────────────────────────────────────────────────────────
# create_practice
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_practice(store):
    result = await practice_service.create_practice(
        store,
        name="Volleyball",
        description="Indoor volleyball",
        capacity=12,
        price=3000,
        slots=[_slot("TUESDAY", "19:00", "20:30"), _slot("FRIDAY", "19:00", "20:30")],
    )

    assert result["id"] > 0
    assert result["schedules"] == [
        {"weekday": "TUESDAY", "start_time": "19:00", "end_time": "20:30"},
        {"weekday": "FRIDAY", "start_time": "19:00", "end_time": "20:30"},
    ]

    listing = await practice_service.list_practices(store)
    assert [p["name"] for p in listing] == ["Volleyball"]
    assert listing[0]["schedules"][1]["weekday"] == "FRIDAY"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "capacity,price",
    [(0, 3000), (-1, 3000), (10, 0), (10, -5), (True, 3000)],
)
async def test_create_practice_rejects_non_positive_numbers(store, capacity, price):
    with pytest.raises(ValidationError):
        await practice_service.create_practice(
            store, "Boxing", None, capacity, price, [_slot("MONDAY", "08:00", "09:00")]
        )


@pytest.mark.asyncio
async def test_create_practice_requires_name_and_slots(store):
    with pytest.raises(ValidationError):
        await practice_service.create_practice(
            store, "  ", None, 10, 1000, [_slot("MONDAY", "08:00", "09:00")]
        )
    with pytest.raises(ValidationError):
        await practice_service.create_practice(store, "Boxing", None, 10, 1000, [])


@pytest.mark.asyncio
async def test_duplicate_practice_name_rejected(store, seed):
    await seed.practice(name="Rowing")

    with pytest.raises(ValidationError):
        await practice_service.create_practice(
            store, "Rowing", None, 10, 1000, [_slot("MONDAY", "08:00", "09:00")]
        )


# ──────────────────────────────────────────────────────────────
# update_practice
# ──────────────────────────────────────────────────────────────


async def _practice_row(store, practice_id):
    async with store.session() as session:
        practice = await session.get(Practice, practice_id)
        result = await session.execute(
            select(PracticeSchedule)
            .where(PracticeSchedule.practice_id == practice_id)
            .order_by(PracticeSchedule.position)
        )
        return practice, list(result.scalars().all())


@pytest.mark.asyncio
async def test_update_practice_changes_fields_and_keeps_others(store, seed):
    practice_id = await seed.practice(name="Tennis", capacity=8, price=2500)

    result = await practice_service.update_practice(
        store, practice_id, price=2800, description="Clay courts"
    )

    assert result["name"] == "Tennis"
    assert result["capacity"] == 8
    assert result["price"] == 2800
    assert result["description"] == "Clay courts"
    assert result["schedules"] == [
        {"weekday": "MONDAY", "start_time": "18:00", "end_time": "19:00"}
    ]


@pytest.mark.asyncio
async def test_update_practice_replaces_schedule(store, seed):
    practice_id = await seed.practice()

    await practice_service.update_practice(
        store,
        practice_id,
        slots=[_slot("WEDNESDAY", "07:00", "08:00"), _slot("SATURDAY", "10:00", "11:30")],
    )

    _, schedules = await _practice_row(store, practice_id)
    assert [(s.weekday, s.position) for s in schedules] == [("WEDNESDAY", 0), ("SATURDAY", 1)]


@pytest.mark.asyncio
async def test_update_practice_rejects_capacity_below_active_enrollments(store, seed):
    practice_id = await seed.practice(capacity=5)
    for i in range(3):
        await seed.enrollment(await seed.member(f"Member {i}"), practice_id)

    with pytest.raises(CapacityBelowEnrollmentsError) as exc_info:
        await practice_service.update_practice(store, practice_id, capacity=2, price=9000)

    assert exc_info.value.details["current_count"] == 3
    assert exc_info.value.details["capacity"] == 2
    practice, _ = await _practice_row(store, practice_id)
    assert practice.capacity == 5
    assert practice.price == 3000


@pytest.mark.asyncio
async def test_update_practice_allows_capacity_equal_to_active_count(store, seed):
    practice_id = await seed.practice(capacity=5)
    for i in range(2):
        await seed.enrollment(await seed.member(f"Member {i}"), practice_id)

    result = await practice_service.update_practice(store, practice_id, capacity=2)

    assert result["capacity"] == 2
    assert result["active_count"] == 2
    assert result["remaining_slots"] == 0


@pytest.mark.asyncio
async def test_capacity_change_racing_an_enrollment_keeps_the_cap(store, seed):
    practice_id = await seed.practice(capacity=3)
    for i in range(2):
        await seed.enrollment(await seed.member(f"Member {i}"), practice_id)
    newcomer = await seed.member("Newcomer")

    enroll_result, update_result = await asyncio.gather(
        enrollment_service.enroll(store, newcomer, practice_id),
        practice_service.update_practice(store, practice_id, capacity=2),
        return_exceptions=True,
    )

    # Whichever takes the practice lock second is the one rejected
    if isinstance(update_result, CapacityBelowEnrollmentsError):
        assert enroll_result["status"] == "enrolled"
    else:
        assert isinstance(enroll_result, CapacityExceededError)
        assert update_result["capacity"] == 2

    practice, _ = await _practice_row(store, practice_id)
    async with store.session() as session:
        active = await enrollment_service.count_active_enrollments(session, practice_id)
    assert active <= practice.capacity


@pytest.mark.asyncio
async def test_update_practice_rejects_duplicate_name_and_empty_update(store, seed):
    await seed.practice(name="Rowing")
    practice_id = await seed.practice(name="Canoe")

    with pytest.raises(ValidationError):
        await practice_service.update_practice(store, practice_id, name="Rowing")
    with pytest.raises(ValidationError):
        await practice_service.update_practice(store, practice_id)
    with pytest.raises(ValidationError):
        await practice_service.update_practice(store, practice_id, description="x" * 151)


@pytest.mark.asyncio
async def test_update_unknown_practice(store):
    with pytest.raises(NotFoundError):
        await practice_service.update_practice(store, 999, price=1000)


# ──────────────────────────────────────────────────────────────
# Trainers
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_assign_and_unassign_trainer(store, seed):
    practice_id = await seed.practice()
    trainer_id = await seed.trainer("Coach Diaz")

    assigned = await practice_service.assign_trainer(store, practice_id, trainer_id)
    again = await practice_service.assign_trainer(store, practice_id, trainer_id)
    listing = await practice_service.list_practices(store)
    removed = await practice_service.unassign_trainer(store, practice_id, trainer_id)
    removed_again = await practice_service.unassign_trainer(store, practice_id, trainer_id)

    assert assigned["status"] == "assigned"
    assert again["status"] == "already_assigned"
    assert listing[0]["trainers"] == [{"id": trainer_id, "full_name": "Coach Diaz"}]
    assert removed["status"] == "unassigned"
    assert removed_again["status"] == "not_assigned"


@pytest.mark.asyncio
async def test_assign_unknown_trainer_or_practice(store, seed):
    practice_id = await seed.practice()
    trainer_id = await seed.trainer()

    with pytest.raises(NotFoundError):
        await practice_service.assign_trainer(store, practice_id, 999)
    with pytest.raises(NotFoundError):
        await practice_service.assign_trainer(store, 999, trainer_id)


# ──────────────────────────────────────────────────────────────
# Listing
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_practices_reports_occupancy_and_membership(store, seed):
    practice_id = await seed.practice(name="Swimming", capacity=3)
    await seed.practice(name="Archery", capacity=5)
    member_id = await seed.member()
    await enrollment_service.enroll(store, member_id, practice_id)
    await enrollment_service.enroll(store, await seed.member("Other"), practice_id)

    listing = await practice_service.list_practices(store, member_id=member_id)

    by_name = {p["name"]: p for p in listing}
    assert by_name["Swimming"]["active_count"] == 2
    assert by_name["Swimming"]["remaining_slots"] == 1
    assert by_name["Swimming"]["is_enrolled"] is True
    assert by_name["Archery"]["active_count"] == 0
    assert by_name["Archery"]["is_enrolled"] is False


@pytest.mark.asyncio
async def test_list_practices_without_member_omits_flag(store, seed):
    await seed.practice()

    listing = await practice_service.list_practices(store)

    assert "is_enrolled" not in listing[0]
