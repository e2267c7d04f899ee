"""
Practice administration: creation and modification with weekly slots,
trainer assignment and listing.
"""

import logging
from datetime import time
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import select, func, and_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import (
    Enrollment,
    Practice,
    PracticeSchedule,
    PracticeTrainer,
    Trainer,
    Weekday,
)
from clubhouse.services import enrollment_service
from clubhouse.services.exceptions import (
    CapacityBelowEnrollmentsError,
    NotFoundError,
    ValidationError,
)
from clubhouse.utils.constants import MAX_PRACTICE_DESCRIPTION_LENGTH
from clubhouse.utils.datetime_utils import format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)


def validate_slots(slots: Iterable[Dict]) -> List[Tuple[Weekday, time, time]]:
    """
    Validate weekly slots and normalize them to (weekday, start, end).

    Each slot needs a weekday, and HH:MM start/end times with start before
    end. Two slots on the same weekday may touch but not overlap.

    Raises:
        ValidationError: Describing the first invalid slot
    """
    normalized: List[Tuple[Weekday, time, time]] = []
    for index, slot in enumerate(slots):
        raw_day = str(slot.get("weekday", "")).strip().upper()
        try:
            weekday = Weekday(raw_day)
        except ValueError:
            raise ValidationError(
                f"Slot {index + 1}: invalid weekday '{slot.get('weekday')}'",
                slot=index,
                allowed=[d.value for d in Weekday],
            )

        try:
            start = parse_hhmm(slot.get("start_time"))
            end = parse_hhmm(slot.get("end_time"))
        except ValueError as e:
            raise ValidationError(f"Slot {index + 1}: {e}", slot=index)

        if start >= end:
            raise ValidationError(
                f"Slot {index + 1}: start time must be before end time", slot=index
            )
        normalized.append((weekday, start, end))

    by_day: Dict[Weekday, List[Tuple[time, time]]] = {}
    for weekday, start, end in normalized:
        by_day.setdefault(weekday, []).append((start, end))

    for weekday, ranges in by_day.items():
        ranges.sort()
        for (prev_start, prev_end), (start, end) in zip(ranges, ranges[1:]):
            if start < prev_end:
                raise ValidationError(
                    f"Overlapping slots on {weekday.value}: "
                    f"{format_hhmm(prev_start)}-{format_hhmm(prev_end)} and "
                    f"{format_hhmm(start)}-{format_hhmm(end)}",
                    weekday=weekday.value,
                )

    return normalized


def _validate_positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer", **{name: value})
    return value


def _validate_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    description = description.strip()
    if len(description) > MAX_PRACTICE_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at most {MAX_PRACTICE_DESCRIPTION_LENGTH} characters",
            length=len(description),
        )
    return description or None


def _schedule_rows(practice_id: int, normalized: List[Tuple[Weekday, time, time]]):
    return [
        PracticeSchedule(
            practice_id=practice_id,
            weekday=weekday.value,
            start_time=start,
            end_time=end,
            position=position,
        )
        for position, (weekday, start, end) in enumerate(normalized)
    ]


def _schedule_dict(schedule: PracticeSchedule) -> Dict:
    return {
        "weekday": schedule.weekday,
        "start_time": format_hhmm(schedule.start_time),
        "end_time": format_hhmm(schedule.end_time),
    }


async def create_practice(
    store: LedgerStore,
    name: str,
    description: Optional[str],
    capacity: int,
    price: int,
    slots: Iterable[Dict],
) -> Dict:
    """
    Create a practice with its weekly schedule.

    Raises:
        ValidationError: Bad capacity, price or slots, or a duplicate name
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Practice name is required")
    description = _validate_description(description)
    capacity = _validate_positive_int("capacity", capacity)
    price = _validate_positive_int("price", price)
    slots = list(slots)
    if not slots:
        raise ValidationError("A practice needs at least one slot")
    normalized = validate_slots(slots)

    try:
        async with store.transaction() as session:
            existing = await session.execute(select(Practice.id).where(Practice.name == name))
            if existing.scalar_one_or_none() is not None:
                raise ValidationError(f"A practice named '{name}' already exists", name=name)

            practice = Practice(
                name=name, description=description, capacity=capacity, price=price
            )
            session.add(practice)
            await session.flush()

            session.add_all(_schedule_rows(practice.id, normalized))
            practice_id = practice.id
    except IntegrityError as e:
        # A concurrent create won the unique name
        raise ValidationError(f"A practice named '{name}' already exists", name=name) from e

    logger.info(f"Created practice {practice_id} '{name}' with {len(normalized)} slot(s)")
    return {
        "id": practice_id,
        "name": name,
        "description": description,
        "capacity": capacity,
        "price": price,
        "schedules": [
            {"weekday": d.value, "start_time": format_hhmm(s), "end_time": format_hhmm(e)}
            for d, s, e in normalized
        ],
    }


async def update_practice(
    store: LedgerStore,
    practice_id: int,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    capacity: Optional[int] = None,
    price: Optional[int] = None,
    slots: Optional[Iterable[Dict]] = None,
) -> Dict:
    """
    Modify a practice. Fields left as None keep their current value.

    The practice row is locked for the whole update, the same lock enroll
    takes, so capacity is checked against an active count no admission can
    change underneath. Passing slots replaces the whole weekly schedule.

    Args:
        store: Ledger store
        practice_id: Practice to modify
        name: New unique name
        description: New description; an empty string clears it
        capacity: New capacity, not below the current active enrollments
        price: New monthly fee
        slots: New weekly slots

    Returns:
        Dict with the practice after the update, including active_count

    Raises:
        ValidationError: Nothing to update, bad values or a duplicate name
        NotFoundError: If the practice does not exist
        CapacityBelowEnrollmentsError: If capacity is below the active count
    """
    if all(v is None for v in (name, description, capacity, price, slots)):
        raise ValidationError("No fields to update", practice_id=practice_id)

    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Practice name is required")
    if description is not None:
        description = _validate_description(description) or ""
    if capacity is not None:
        capacity = _validate_positive_int("capacity", capacity)
    if price is not None:
        price = _validate_positive_int("price", price)
    normalized = None
    if slots is not None:
        slots = list(slots)
        if not slots:
            raise ValidationError("A practice needs at least one slot")
        normalized = validate_slots(slots)

    try:
        async with store.transaction() as session:
            practice = await enrollment_service.lock_practice(session, practice_id)
            if practice is None:
                raise NotFoundError("Practice", practice_id)

            if name is not None and name != practice.name:
                existing = await session.execute(
                    select(Practice.id).where(
                        and_(Practice.name == name, Practice.id != practice_id)
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    raise ValidationError(f"A practice named '{name}' already exists", name=name)
                practice.name = name

            active_count = await enrollment_service.count_active_enrollments(
                session, practice_id
            )
            if capacity is not None:
                if capacity < active_count:
                    logger.info(
                        f"Capacity change rejected for practice {practice_id}: "
                        f"{active_count} active, requested {capacity}"
                    )
                    raise CapacityBelowEnrollmentsError(practice_id, active_count, capacity)
                practice.capacity = capacity

            if description is not None:
                practice.description = description or None
            if price is not None:
                practice.price = price

            if normalized is not None:
                await session.execute(
                    delete(PracticeSchedule)
                    .where(PracticeSchedule.practice_id == practice_id)
                    .execution_options(synchronize_session=False)
                )
                session.add_all(_schedule_rows(practice_id, normalized))
            await session.flush()

            schedules_result = await session.execute(
                select(PracticeSchedule)
                .where(PracticeSchedule.practice_id == practice_id)
                .order_by(PracticeSchedule.position)
            )
            result = {
                "id": practice.id,
                "name": practice.name,
                "description": practice.description,
                "capacity": practice.capacity,
                "price": practice.price,
                "active_count": active_count,
                "remaining_slots": max(practice.capacity - active_count, 0),
                "schedules": [_schedule_dict(s) for s in schedules_result.scalars().all()],
            }
    except IntegrityError as e:
        raise ValidationError(f"A practice named '{name}' already exists", name=name) from e

    logger.info(f"Updated practice {practice_id}")
    return result


async def _get_link(
    session: AsyncSession, practice_id: int, trainer_id: int
) -> Optional[PracticeTrainer]:
    result = await session.execute(
        select(PracticeTrainer).where(
            and_(
                PracticeTrainer.practice_id == practice_id,
                PracticeTrainer.trainer_id == trainer_id,
            )
        )
    )
    return result.scalar_one_or_none()


async def _require_practice_and_trainer(
    session: AsyncSession, practice_id: int, trainer_id: int
) -> None:
    if await session.get(Practice, practice_id) is None:
        raise NotFoundError("Practice", practice_id)
    if await session.get(Trainer, trainer_id) is None:
        raise NotFoundError("Trainer", trainer_id)


async def assign_trainer(store: LedgerStore, practice_id: int, trainer_id: int) -> Dict:
    """Assign a trainer to a practice. Assigning twice is a no-op."""
    async with store.transaction() as session:
        await _require_practice_and_trainer(session, practice_id, trainer_id)
        if await _get_link(session, practice_id, trainer_id) is not None:
            return {"status": "already_assigned", "practice_id": practice_id, "trainer_id": trainer_id}
        session.add(PracticeTrainer(practice_id=practice_id, trainer_id=trainer_id))

    logger.info(f"Trainer {trainer_id} assigned to practice {practice_id}")
    return {"status": "assigned", "practice_id": practice_id, "trainer_id": trainer_id}


async def unassign_trainer(store: LedgerStore, practice_id: int, trainer_id: int) -> Dict:
    """Remove a trainer from a practice. Removing an absent assignment is a no-op."""
    async with store.transaction() as session:
        await _require_practice_and_trainer(session, practice_id, trainer_id)
        link = await _get_link(session, practice_id, trainer_id)
        if link is None:
            return {"status": "not_assigned", "practice_id": practice_id, "trainer_id": trainer_id}
        await session.delete(link)

    logger.info(f"Trainer {trainer_id} removed from practice {practice_id}")
    return {"status": "unassigned", "practice_id": practice_id, "trainer_id": trainer_id}


async def list_practices(store: LedgerStore, member_id: Optional[int] = None) -> List[Dict]:
    """
    List practices with schedule, trainers and live occupancy.

    When member_id is given, each entry says whether that member is actively
    enrolled.
    """
    async with store.session() as session:
        result = await session.execute(
            select(Practice)
            .options(
                selectinload(Practice.schedules),
                selectinload(Practice.trainer_links).selectinload(PracticeTrainer.trainer),
            )
            .order_by(Practice.name)
        )
        practices = result.scalars().all()

        counts_result = await session.execute(
            select(Enrollment.practice_id, func.count(Enrollment.id))
            .where(Enrollment.active.is_(True))
            .group_by(Enrollment.practice_id)
        )
        active_counts = dict(counts_result.all())

        enrolled_in = set()
        if member_id is not None:
            mine = await session.execute(
                select(Enrollment.practice_id).where(
                    and_(Enrollment.member_id == member_id, Enrollment.active.is_(True))
                )
            )
            enrolled_in = set(mine.scalars().all())

    listing = []
    for practice in practices:
        active_count = active_counts.get(practice.id, 0)
        entry = {
            "id": practice.id,
            "name": practice.name,
            "description": practice.description,
            "capacity": practice.capacity,
            "price": practice.price,
            "active_count": active_count,
            "remaining_slots": max(practice.capacity - active_count, 0),
            "schedules": [_schedule_dict(s) for s in practice.schedules],
            "trainers": [
                {"id": link.trainer.id, "full_name": link.trainer.full_name}
                for link in practice.trainer_links
            ],
        }
        if member_id is not None:
            entry["is_enrolled"] = practice.id in enrolled_in
        listing.append(entry)
    return listing
