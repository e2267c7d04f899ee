"""
Capacity admission controller for practice enrollments.

Admission is serialized per practice: the practice row is locked before the
active enrollments are counted, so two concurrent sign-ups can never both
take the last slot. The (member, practice) pair keeps one enrollment row for
life; withdrawal and re-enrollment only flip its ``active`` flag.
"""

import enum
import logging
from typing import Dict, Optional
from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import Enrollment, Member, Practice
from clubhouse.services.exceptions import (
    CapacityExceededError,
    NotFoundError,
    TransientStoreFailure,
)

logger = logging.getLogger(__name__)


class EnrollmentStatus(str, enum.Enum):
    """Outcome of an enroll call."""

    ENROLLED = "enrolled"
    REACTIVATED = "reactivated"
    ALREADY_ENROLLED = "already_enrolled"


class WithdrawalStatus(str, enum.Enum):
    """Outcome of a withdraw call."""

    WITHDRAWN = "withdrawn"
    ALREADY_INACTIVE = "already_inactive"


async def get_enrollment(
    session: AsyncSession, member_id: int, practice_id: int
) -> Optional[Enrollment]:
    """Get the enrollment row for a (member, practice) pair, active or not."""
    result = await session.execute(
        select(Enrollment).where(
            and_(
                Enrollment.member_id == member_id,
                Enrollment.practice_id == practice_id,
            )
        )
    )
    return result.scalar_one_or_none()


async def count_active_enrollments(session: AsyncSession, practice_id: int) -> int:
    """Count active enrollments of a practice."""
    result = await session.execute(
        select(func.count(Enrollment.id)).where(
            and_(Enrollment.practice_id == practice_id, Enrollment.active.is_(True))
        )
    )
    return result.scalar() or 0


async def lock_practice(session: AsyncSession, practice_id: int) -> Optional[Practice]:
    """
    Load a practice and lock its row until the transaction ends.

    Every admission and retirement for the practice queues on this lock.
    """
    result = await session.execute(
        select(Practice).where(Practice.id == practice_id).with_for_update()
    )
    return result.scalar_one_or_none()


def _result(
    status: EnrollmentStatus, enrollment: Enrollment, practice: Practice, active_count: int
) -> Dict:
    return {
        "status": status.value,
        "enrollment_id": enrollment.id,
        "member_id": enrollment.member_id,
        "practice_id": practice.id,
        "practice_name": practice.name,
        "price": practice.price,
        "active_count": active_count,
        "capacity": practice.capacity,
    }


async def _admit(session: AsyncSession, member_id: int, practice_id: int) -> Dict:
    practice = await lock_practice(session, practice_id)
    if practice is None:
        raise NotFoundError("Practice", practice_id)

    member = await session.get(Member, member_id)
    if member is None:
        raise NotFoundError("Member", member_id)

    enrollment = await get_enrollment(session, member_id, practice_id)
    current_count = await count_active_enrollments(session, practice_id)

    if enrollment is not None and enrollment.active:
        return _result(EnrollmentStatus.ALREADY_ENROLLED, enrollment, practice, current_count)

    if current_count >= practice.capacity:
        logger.info(
            f"Enrollment rejected: practice {practice_id} full "
            f"({current_count}/{practice.capacity}), member {member_id}"
        )
        raise CapacityExceededError(practice_id, current_count, practice.capacity)

    if enrollment is not None:
        enrollment.active = True
        status = EnrollmentStatus.REACTIVATED
    else:
        enrollment = Enrollment(member_id=member_id, practice_id=practice_id, active=True)
        session.add(enrollment)
        status = EnrollmentStatus.ENROLLED

    await session.flush()
    logger.info(f"Member {member_id} {status.value} in practice {practice_id}")
    return _result(status, enrollment, practice, current_count + 1)


async def enroll(store: LedgerStore, member_id: int, practice_id: int) -> Dict:
    """
    Enroll a member in a practice, respecting its capacity.

    Args:
        store: Ledger store
        member_id: Member to enroll
        practice_id: Practice to enroll in

    Returns:
        Dict with status (enrolled, reactivated or already_enrolled) and the
        practice's active count/capacity after the call

    Raises:
        NotFoundError: If the practice or member does not exist
        CapacityExceededError: If the practice is full
        TransientStoreFailure: If the store failed; safe to retry
    """
    try:
        async with store.transaction() as session:
            return await _admit(session, member_id, practice_id)
    except IntegrityError as e:
        # Lost a race on the (member, practice) unique constraint
        logger.warning(
            f"Unique enrollment conflict for member {member_id}, practice {practice_id}: {e}"
        )
        async with store.session() as session:
            enrollment = await get_enrollment(session, member_id, practice_id)
            if enrollment is not None and enrollment.active:
                practice = await session.get(Practice, practice_id)
                active_count = await count_active_enrollments(session, practice_id)
                return _result(
                    EnrollmentStatus.ALREADY_ENROLLED, enrollment, practice, active_count
                )
        raise TransientStoreFailure(
            "Enrollment conflicted with a concurrent write; retry the operation",
            member_id=member_id,
            practice_id=practice_id,
        ) from e


async def withdraw(store: LedgerStore, member_id: int, practice_id: int) -> Dict:
    """
    Withdraw a member from a practice.

    Idempotent: a member who is not actively enrolled gets already_inactive
    and nothing is written.
    """
    async with store.transaction() as session:
        enrollment = await get_enrollment(session, member_id, practice_id)
        if enrollment is None or not enrollment.active:
            return {
                "status": WithdrawalStatus.ALREADY_INACTIVE.value,
                "enrollment_id": enrollment.id if enrollment else None,
                "member_id": member_id,
                "practice_id": practice_id,
            }

        enrollment.active = False
        await session.flush()
        logger.info(f"Member {member_id} withdrawn from practice {practice_id}")
        return {
            "status": WithdrawalStatus.WITHDRAWN.value,
            "enrollment_id": enrollment.id,
            "member_id": member_id,
            "practice_id": practice_id,
        }
