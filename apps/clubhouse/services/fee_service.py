"""
Fee calculator for monthly membership dues.

Individual members pay the base price. A family group is billed once, to its
head, for the whole group with the family discount applied to the group total.
This module also owns the one family-head resolver every other service uses.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import Member, PlanType
from clubhouse.services import settings_service
from clubhouse.services.exceptions import InconsistentStateError, NotFoundError
from clubhouse.utils.constants import FAMILY_DISCOUNT_PERCENT

logger = logging.getLogger(__name__)


def family_subtotal(base_price: int, group_size: int) -> int:
    """Group total before the family discount."""
    if group_size < 1:
        raise ValueError("group_size must be at least 1")
    return base_price * group_size


def family_due_amount(base_price: int, group_size: int) -> int:
    """
    Discounted monthly due for a whole family group.

    The discount is applied to the full group total and rounded once
    (half up) to a whole currency unit.

    Args:
        base_price: Base due price for a single member
        group_size: Number of members in the family group

    Returns:
        Amount billed to the head of the family
    """
    subtotal = Decimal(family_subtotal(base_price, group_size))
    factor = Decimal(100 - FAMILY_DISCOUNT_PERCENT) / Decimal(100)
    return int((subtotal * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _inconsistent(message: str, **details) -> InconsistentStateError:
    logger.error(f"Inconsistent family data: {message} {details}")
    return InconsistentStateError(message, **details)


async def get_member(session: AsyncSession, member_id: int) -> Member:
    """
    Load a member or raise NotFoundError.
    """
    member = await session.get(Member, member_id)
    if member is None:
        raise NotFoundError("Member", member_id)
    return member


async def resolve_family_head(
    session: AsyncSession, member: Member
) -> Tuple[Member, List[Member]]:
    """
    Resolve the head and the full member list of a FAMILY member's group.

    The head is the only member of the group without a head reference. Every
    other member must reference that head and every member must be on the
    FAMILY plan.

    Args:
        session: Database session
        member: A member on the FAMILY plan

    Returns:
        (head, members) where members includes the head, ordered by id

    Raises:
        InconsistentStateError: If the group has no single resolvable head
    """
    if member.plan_type != PlanType.FAMILY.value:
        raise ValueError(f"Member {member.id} is not on the family plan")

    if member.family_group_id is None:
        raise _inconsistent(
            "Family member has no family group", member_id=member.id
        )

    result = await session.execute(
        select(Member)
        .where(Member.family_group_id == member.family_group_id)
        .order_by(Member.id)
    )
    members = list(result.scalars().all())

    heads = [m for m in members if m.head_of_family_id is None]
    if len(heads) != 1:
        raise _inconsistent(
            "Family group has no single head" if heads else "Family group has no head",
            member_id=member.id,
            family_group_id=member.family_group_id,
            head_ids=[h.id for h in heads],
        )
    head = heads[0]

    not_family = [m.id for m in members if m.plan_type != PlanType.FAMILY.value]
    if not_family:
        raise _inconsistent(
            "Family group contains members outside the family plan",
            family_group_id=member.family_group_id,
            member_ids=not_family,
        )

    stray = [m.id for m in members if m.head_of_family_id not in (None, head.id)]
    if stray:
        raise _inconsistent(
            "Family members reference a head outside their group",
            family_group_id=member.family_group_id,
            member_ids=stray,
        )

    return head, members


async def resolve_responsible_member(session: AsyncSession, member: Member) -> Member:
    """The member dues are billed to: the family head, or the member itself."""
    if member.plan_type == PlanType.FAMILY.value:
        head, _ = await resolve_family_head(session, member)
        return head
    return member


async def calculate_due(session: AsyncSession, member: Member, base_price: int) -> Dict:
    """
    Compute the monthly due for a member.

    Non-head family members owe nothing themselves; their breakdown shows
    the group the head is billed for.

    Args:
        session: Database session
        member: Member to compute the due for
        base_price: Base due price for a single member

    Returns:
        Dict with amount, responsible_member_id and a breakdown
    """
    if member.plan_type != PlanType.FAMILY.value:
        return {
            "member_id": member.id,
            "plan_type": PlanType.INDIVIDUAL.value,
            "responsible_member_id": member.id,
            "payable_by_head": False,
            "amount": base_price,
            "breakdown": {
                "base_price": base_price,
                "group_size": 1,
                "discount_percent": 0,
                "subtotal": base_price,
                "discount": 0,
                "total": base_price,
            },
        }

    head, members = await resolve_family_head(session, member)
    group_size = len(members)
    subtotal = family_subtotal(base_price, group_size)
    total = family_due_amount(base_price, group_size)
    is_head = head.id == member.id

    return {
        "member_id": member.id,
        "plan_type": PlanType.FAMILY.value,
        "responsible_member_id": head.id,
        "payable_by_head": not is_head,
        "amount": total if is_head else 0,
        "breakdown": {
            "base_price": base_price,
            "group_size": group_size,
            "discount_percent": FAMILY_DISCOUNT_PERCENT,
            "subtotal": subtotal,
            "discount": subtotal - total,
            "total": total,
        },
    }


async def compute_due(store: LedgerStore, member_id: int) -> Dict:
    """
    Compute a member's monthly due from current ledger state.

    Raises:
        NotFoundError: If the member does not exist
        InconsistentStateError: If the member's family group is malformed
    """
    async with store.session() as session:
        member = await get_member(session, member_id)
        base_price = await settings_service.get_base_due_price(session)
        return await calculate_due(session, member, base_price)
