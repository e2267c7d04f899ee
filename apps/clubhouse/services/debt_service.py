"""
Debt reconciler.

Unions a member's three kinds of obligation (monthly dues, practice
enrollment fees and court reservation fees) and classifies each one as PAID
or PENDING from its payment trail. Paid obligations are always reported;
filtering for display is the caller's job.
"""

import logging
from typing import Dict, Iterable, List
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import (
    Due,
    Enrollment,
    ObligationKind,
    Payment,
    PaymentStatus,
    PlanType,
    Reservation,
)
from clubhouse.services import fee_service, settings_service
from clubhouse.utils.constants import FAMILY_DISCOUNT_PERCENT
from clubhouse.utils.datetime_utils import iso_or_none

logger = logging.getLogger(__name__)


def is_obligation_paid(payments: Iterable[Payment]) -> bool:
    """
    True iff at least one payment in the trail has status PAID.

    The latest payment is irrelevant: a declined attempt after a successful
    one does not make the obligation pending again.
    """
    return any(p.status == PaymentStatus.PAID.value for p in payments)


def obligation_status(payments: Iterable[Payment]) -> str:
    return PaymentStatus.PAID.value if is_obligation_paid(payments) else PaymentStatus.PENDING.value


def _project_due(due: Due) -> Dict:
    return {
        "id": f"{ObligationKind.DUE.value}-{due.id}",
        "kind": ObligationKind.DUE.value,
        "source_id": due.id,
        "concept": f"Monthly due {due.month:02d}/{due.year}",
        "amount": due.amount,
        "due_date": iso_or_none(due.due_date),
        "status": obligation_status(due.payments),
    }


def _project_enrollment(enrollment: Enrollment) -> Dict:
    return {
        "id": f"{ObligationKind.ENROLLMENT.value}-{enrollment.id}",
        "kind": ObligationKind.ENROLLMENT.value,
        "source_id": enrollment.id,
        "concept": f"Practice enrollment - {enrollment.practice.name}",
        "amount": enrollment.practice.price,
        "due_date": iso_or_none(enrollment.enrolled_at),
        "status": obligation_status(enrollment.payments),
    }


def _project_reservation(reservation: Reservation) -> Dict:
    return {
        "id": f"{ObligationKind.RESERVATION.value}-{reservation.id}",
        "kind": ObligationKind.RESERVATION.value,
        "source_id": reservation.id,
        "concept": f"Court reservation - {reservation.court.name}",
        "amount": reservation.court.price,
        "due_date": iso_or_none(reservation.date),
        "status": obligation_status(reservation.payments),
    }


async def _dues_for(session: AsyncSession, responsible_member_id: int) -> List[Due]:
    result = await session.execute(
        select(Due)
        .where(Due.member_id == responsible_member_id)
        .options(selectinload(Due.payments))
        .order_by(Due.year, Due.month)
    )
    return list(result.scalars().all())


async def _active_enrollments_for(session: AsyncSession, member_id: int) -> List[Enrollment]:
    result = await session.execute(
        select(Enrollment)
        .where(
            and_(
                Enrollment.member_id == member_id,
                Enrollment.active.is_(True),
                Enrollment.practice_id.is_not(None),
            )
        )
        .options(selectinload(Enrollment.payments), selectinload(Enrollment.practice))
        .order_by(Enrollment.id)
    )
    return list(result.scalars().all())


async def _reservations_for(session: AsyncSession, member_id: int) -> List[Reservation]:
    result = await session.execute(
        select(Reservation)
        .where(Reservation.member_id == member_id)
        .options(selectinload(Reservation.payments), selectinload(Reservation.court))
        .order_by(Reservation.date, Reservation.start_time)
    )
    return list(result.scalars().all())


async def collect_debts(session: AsyncSession, member_id: int) -> List[Dict]:
    """
    Session-level version of list_debts.

    Dues are looked up on the responsible member (the family head for family
    members); enrollments and reservations on the member itself.
    """
    member = await fee_service.get_member(session, member_id)
    responsible = await fee_service.resolve_responsible_member(session, member)

    dues = await _dues_for(session, responsible.id)
    enrollments = await _active_enrollments_for(session, member.id)
    reservations = await _reservations_for(session, member.id)

    return (
        [_project_due(d) for d in dues]
        + [_project_enrollment(e) for e in enrollments]
        + [_project_reservation(r) for r in reservations]
    )


async def list_debts(store: LedgerStore, member_id: int) -> List[Dict]:
    """
    List every obligation of a member with its paid/pending status.

    Args:
        store: Ledger store
        member_id: Member whose obligations to list

    Returns:
        List of dicts with id, kind, source_id, concept, amount, due_date, status

    Raises:
        NotFoundError: If the member does not exist
        InconsistentStateError: If the member's family group is malformed
    """
    async with store.session() as session:
        return await collect_debts(session, member_id)


async def list_unpaid_dues(store: LedgerStore, member_id: int) -> List[Dict]:
    """Pending monthly dues billed for this member (to the head, for families)."""
    debts = await list_debts(store, member_id)
    return [
        d for d in debts
        if d["kind"] == ObligationKind.DUE.value and d["status"] == PaymentStatus.PENDING.value
    ]


async def get_quota(store: LedgerStore, member_id: int) -> Dict:
    """
    Describe what a member pays as monthly due.

    - INDIVIDUAL: the base price.
    - FAMILY head: group size, discount, totals before and after discount.
    - FAMILY non-head: the head's name and the discount; nothing payable.

    Raises:
        NotFoundError: If the member does not exist
        InconsistentStateError: If the member's family group is malformed
    """
    async with store.session() as session:
        member = await fee_service.get_member(session, member_id)
        base_price = await settings_service.get_base_due_price(session)

        if member.plan_type != PlanType.FAMILY.value:
            return {
                "member_id": member.id,
                "plan_type": PlanType.INDIVIDUAL.value,
                "is_head": None,
                "base_price": base_price,
                "amount": base_price,
                "payable_by_head": False,
            }

        head, members = await fee_service.resolve_family_head(session, member)
        if head.id != member.id:
            return {
                "member_id": member.id,
                "plan_type": PlanType.FAMILY.value,
                "is_head": False,
                "base_price": base_price,
                "head_member_id": head.id,
                "head_name": head.full_name,
                "discount_percent": FAMILY_DISCOUNT_PERCENT,
                "amount": 0,
                "payable_by_head": True,
            }

        subtotal = fee_service.family_subtotal(base_price, len(members))
        total = fee_service.family_due_amount(base_price, len(members))
        return {
            "member_id": member.id,
            "plan_type": PlanType.FAMILY.value,
            "is_head": True,
            "base_price": base_price,
            "group_size": len(members),
            "discount_percent": FAMILY_DISCOUNT_PERCENT,
            "subtotal": subtotal,
            "discount": subtotal - total,
            "amount": total,
            "payable_by_head": False,
            "family_members": [{"id": m.id, "full_name": m.full_name} for m in members],
        }
