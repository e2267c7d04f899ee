"""
Practice retirement coordinator.

Retiring a practice goes Requested -> Validated -> Committed -> Notified, or
Requested -> Rejected when trainers are still assigned. The commit is one
transaction: enrollments are deactivated (kept for history), the schedule is
deleted and the practice row is deleted. Member notices are handed to the
Notifier only after that transaction has committed.
"""

import enum
import logging
from typing import Dict, List, Optional
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import (
    Enrollment,
    NotificationTemplate,
    Practice,
    PracticeSchedule,
    PracticeTrainer,
)
from clubhouse.services.exceptions import (
    NotFoundError,
    TrainerStillAssignedError,
    TransientStoreFailure,
)
from clubhouse.services.notification_service import Notice, Notifier

logger = logging.getLogger(__name__)


class RetirementState(str, enum.Enum):
    """Retirement state machine."""

    REQUESTED = "requested"
    VALIDATED = "validated"
    COMMITTED = "committed"
    NOTIFIED = "notified"
    REJECTED = "rejected"


async def _load_for_retirement(session: AsyncSession, practice_id: int) -> Optional[Practice]:
    result = await session.execute(
        select(Practice)
        .where(Practice.id == practice_id)
        .options(
            selectinload(Practice.trainer_links).selectinload(PracticeTrainer.trainer),
            selectinload(Practice.enrollments),
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _deactivate_enrollments(session: AsyncSession, practice_id: int) -> None:
    # Rows survive with a null practice so payment and attendance history stays intact
    await session.execute(
        update(Enrollment)
        .where(Enrollment.practice_id == practice_id)
        .values(active=False, practice_id=None)
        .execution_options(synchronize_session=False)
    )


async def _delete_schedules(session: AsyncSession, practice_id: int) -> None:
    await session.execute(
        delete(PracticeSchedule)
        .where(PracticeSchedule.practice_id == practice_id)
        .execution_options(synchronize_session=False)
    )


async def _delete_practice(session: AsyncSession, practice_id: int) -> None:
    await session.execute(
        delete(Practice)
        .where(Practice.id == practice_id)
        .execution_options(synchronize_session=False)
    )


async def retire(
    store: LedgerStore, practice_id: int, notifier: Optional[Notifier] = None
) -> Dict:
    """
    Retire a practice and revoke its enrollments.

    Args:
        store: Ledger store
        practice_id: Practice to retire
        notifier: Receives one notice per member that was actively enrolled;
            when None no notices are sent

    Returns:
        Dict with status "committed", the final state and affected_members

    Raises:
        NotFoundError: If the practice does not exist
        TrainerStillAssignedError: If trainers are assigned; nothing is written
        TransientStoreFailure: If the store failed; nothing is written
    """
    state = RetirementState.REQUESTED
    logger.info(f"Retirement of practice {practice_id}: {state.value}")

    try:
        async with store.transaction() as session:
            practice = await _load_for_retirement(session, practice_id)
            if practice is None:
                raise NotFoundError("Practice", practice_id)

            trainers = [
                {"id": link.trainer.id, "full_name": link.trainer.full_name}
                for link in practice.trainer_links
            ]
            if trainers:
                state = RetirementState.REJECTED
                logger.info(
                    f"Retirement of practice {practice_id}: {state.value} "
                    f"({len(trainers)} trainer(s) still assigned)"
                )
                raise TrainerStillAssignedError(practice_id, trainers)

            state = RetirementState.VALIDATED
            practice_name = practice.name
            affected_members: List[int] = sorted(
                {e.member_id for e in practice.enrollments if e.active}
            )

            await _deactivate_enrollments(session, practice_id)
            await _delete_schedules(session, practice_id)
            await _delete_practice(session, practice_id)
    except IntegrityError as e:
        logger.error(f"Retirement of practice {practice_id} rolled back: {e}")
        raise TransientStoreFailure(
            "Practice retirement conflicted with a concurrent write; retry the operation",
            practice_id=practice_id,
        ) from e

    state = RetirementState.COMMITTED
    logger.info(
        f"Retirement of practice {practice_id}: {state.value} "
        f"({len(affected_members)} enrollment(s) revoked)"
    )

    if notifier is not None and affected_members:
        notifier.dispatch(
            [
                Notice(
                    member_id=member_id,
                    template=NotificationTemplate.PRACTICE_RETIRED.value,
                    payload={"practice_id": practice_id, "practice_name": practice_name},
                )
                for member_id in affected_members
            ]
        )
        state = RetirementState.NOTIFIED

    return {
        "status": RetirementState.COMMITTED.value,
        "state": state.value,
        "practice_id": practice_id,
        "practice_name": practice_name,
        "affected_members": affected_members,
    }
