"""
Attendance tracking for practice enrollments.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Tuple
from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import Attendance, Enrollment, Practice
from clubhouse.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def _active_enrollment_ids(session: AsyncSession, practice_id: int) -> set:
    result = await session.execute(
        select(Enrollment.id).where(
            and_(Enrollment.practice_id == practice_id, Enrollment.active.is_(True))
        )
    )
    return set(result.scalars().all())


async def record_attendance(
    store: LedgerStore,
    practice_id: int,
    class_date: date,
    entries: Iterable[Tuple[int, bool]],
) -> Dict:
    """
    Record who attended one class of a practice.

    Existing rows for the same (enrollment, date) are updated in place.

    Args:
        store: Ledger store
        practice_id: Practice the class belongs to
        class_date: Date of the class
        entries: (enrollment_id, present) pairs

    Returns:
        Dict with practice_id, class_date, recorded and updated counts

    Raises:
        NotFoundError: If the practice does not exist
        ValidationError: If an entry is not an active enrollment of this
            practice; nothing is written
    """
    entries = list(entries)
    if not entries:
        raise ValidationError("At least one attendance entry is required")

    seen = set()
    for enrollment_id, _ in entries:
        if enrollment_id in seen:
            raise ValidationError(
                "Duplicate enrollment in attendance entries", enrollment_id=enrollment_id
            )
        seen.add(enrollment_id)

    async with store.transaction() as session:
        practice = await session.get(Practice, practice_id)
        if practice is None:
            raise NotFoundError("Practice", practice_id)

        allowed = await _active_enrollment_ids(session, practice_id)
        foreign = sorted(seen - allowed)
        if foreign:
            raise ValidationError(
                "Attendance can only be recorded for active enrollments of the practice",
                practice_id=practice_id,
                enrollment_ids=foreign,
            )

        result = await session.execute(
            select(Attendance).where(
                and_(
                    Attendance.enrollment_id.in_(seen),
                    Attendance.class_date == class_date,
                )
            )
        )
        existing = {a.enrollment_id: a for a in result.scalars().all()}

        created = 0
        updated = 0
        for enrollment_id, present in entries:
            row = existing.get(enrollment_id)
            if row is None:
                session.add(
                    Attendance(
                        enrollment_id=enrollment_id,
                        class_date=class_date,
                        present=bool(present),
                    )
                )
                created += 1
            else:
                row.present = bool(present)
                updated += 1

    logger.info(
        f"Attendance for practice {practice_id} on {class_date}: "
        f"{created} recorded, {updated} updated"
    )
    return {
        "practice_id": practice_id,
        "class_date": class_date.isoformat(),
        "recorded": created,
        "updated": updated,
    }


async def attendance_summary(store: LedgerStore, enrollment_id: int) -> Dict:
    """
    Attendance totals for one enrollment.

    Raises:
        NotFoundError: If the enrollment does not exist
    """
    async with store.session() as session:
        enrollment = await session.get(Enrollment, enrollment_id)
        if enrollment is None:
            raise NotFoundError("Enrollment", enrollment_id)

        result = await session.execute(
            select(
                func.count(Attendance.id),
                func.count(Attendance.id).filter(Attendance.present.is_(True)),
            ).where(Attendance.enrollment_id == enrollment_id)
        )
        classes, present = result.one()

        history = await session.execute(
            select(Attendance)
            .where(Attendance.enrollment_id == enrollment_id)
            .order_by(Attendance.class_date)
        )
        records: List[Dict] = [
            {"class_date": a.class_date.isoformat(), "present": a.present}
            for a in history.scalars().all()
        ]

    classes = classes or 0
    present = present or 0
    percentage = round(present * 100 / classes, 2) if classes else 0
    return {
        "enrollment_id": enrollment_id,
        "member_id": enrollment.member_id,
        "practice_id": enrollment.practice_id,
        "active": enrollment.active,
        "classes": classes,
        "present": present,
        "percentage": percentage,
        "records": records,
    }
