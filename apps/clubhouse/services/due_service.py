"""
Monthly due generation.

Bills every individual member and every family head once per month. Family
members other than the head are covered by the head's due and get no row.
Family groups without a resolvable head are reported and left unbilled.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Set
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import Due, Member, PlanType
from clubhouse.services import fee_service, settings_service
from clubhouse.services.exceptions import InconsistentStateError, ValidationError
from clubhouse.utils.constants import DUE_DAY_OF_MONTH

logger = logging.getLogger(__name__)


def due_date_for(month: int, year: int) -> date:
    return date(year, month, DUE_DAY_OF_MONTH)


async def _unheaded_family_members(
    session: AsyncSession, billable: Iterable[Member], dependents: Iterable[Member]
) -> List[int]:
    """
    Find family groups that no billable member heads.

    Such a group never reaches the billing loop, so it is resolved here once
    per group to surface the failure. Returns one member id per broken group.
    """
    headed_groups = {m.family_group_id for m in billable if m.is_family_head}
    checked_groups: Set[int] = set()
    broken = []
    for member in dependents:
        group_id = member.family_group_id
        if group_id is not None:
            if group_id in headed_groups or group_id in checked_groups:
                continue
            checked_groups.add(group_id)
        try:
            await fee_service.resolve_family_head(session, member)
        except InconsistentStateError as e:
            logger.error(
                f"Skipping dues of family group {group_id} (member {member.id}): {e.message}"
            )
            broken.append(member.id)
    return broken


async def generate_monthly_dues(store: LedgerStore, month: int, year: int) -> Dict:
    """
    Create the dues for one month. Safe to run more than once.

    Args:
        store: Ledger store
        month: Month to bill (1-12)
        year: Year to bill

    Returns:
        Dict with created, skipped_existing, skipped_inconsistent counts and
        the ids of members whose family data could not be resolved

    Raises:
        ValidationError: If month or year are out of range
    """
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", month=month)
    if not isinstance(year, int) or not 2000 <= year <= 2100:
        raise ValidationError("Year must be between 2000 and 2100", year=year)

    created = 0
    skipped_existing = 0
    inconsistent = []

    async with store.transaction() as session:
        base_price = await settings_service.get_base_due_price(session)

        result = await session.execute(
            select(Member)
            .where(Member.head_of_family_id.is_(None))
            .order_by(Member.id)
        )
        billable = result.scalars().all()

        dependents_result = await session.execute(
            select(Member)
            .where(
                and_(
                    Member.plan_type == PlanType.FAMILY.value,
                    Member.head_of_family_id.isnot(None),
                )
            )
            .order_by(Member.id)
        )
        dependents = dependents_result.scalars().all()

        existing_result = await session.execute(
            select(Due.member_id).where(and_(Due.month == month, Due.year == year))
        )
        already_billed = set(existing_result.scalars().all())

        for member in billable:
            if member.id in already_billed:
                skipped_existing += 1
                continue
            try:
                due = await fee_service.calculate_due(session, member, base_price)
            except InconsistentStateError as e:
                logger.error(f"Skipping due for member {member.id}: {e.message}")
                inconsistent.append(member.id)
                continue

            session.add(
                Due(
                    member_id=member.id,
                    month=month,
                    year=year,
                    amount=due["amount"],
                    due_date=due_date_for(month, year),
                )
            )
            created += 1

        inconsistent.extend(
            await _unheaded_family_members(session, billable, dependents)
        )

    logger.info(
        f"Dues for {month:02d}/{year}: {created} created, {skipped_existing} already existed, "
        f"{len(inconsistent)} skipped as inconsistent"
    )
    return {
        "month": month,
        "year": year,
        "base_price": base_price,
        "created": created,
        "skipped_existing": skipped_existing,
        "skipped_inconsistent": len(inconsistent),
        "inconsistent_member_ids": inconsistent,
    }
