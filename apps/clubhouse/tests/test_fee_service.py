"""
Unit tests for the fee calculator.

Covers individual dues, family group discounts, rounding and the family-head
resolver's inconsistency detection.
"""

import pytest
from clubhouse.database.models import Member, PlanType
from clubhouse.services import fee_service, settings_service
from clubhouse.services.exceptions import InconsistentStateError, NotFoundError


async def _set_base_price(store, price):
    async with store.transaction() as session:
        await settings_service.set_base_due_price(session, price)


# ──────────────────────────────────────────────────────────────
# Pure amount helpers
# ──────────────────────────────────────────────────────────────


def test_family_due_amount_applies_discount_to_group_total():
    assert fee_service.family_due_amount(5000, 3) == 10500
    assert fee_service.family_subtotal(5000, 3) == 15000


def test_family_due_amount_rounds_half_up_once():
    # 333 * 3 * 0.7 = 699.3 -> 699; 5 * 1 * 0.7 = 3.5 -> 4
    assert fee_service.family_due_amount(333, 3) == 699
    assert fee_service.family_due_amount(5, 1) == 4


def test_family_subtotal_rejects_empty_group():
    with pytest.raises(ValueError):
        fee_service.family_subtotal(5000, 0)


# ──────────────────────────────────────────────────────────────
# compute_due
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_individual_pays_base_price(store, seed):
    await _set_base_price(store, 5000)
    member_id = await seed.member()

    due = await fee_service.compute_due(store, member_id)

    assert due["amount"] == 5000
    assert due["plan_type"] == PlanType.INDIVIDUAL.value
    assert due["responsible_member_id"] == member_id
    assert due["payable_by_head"] is False


@pytest.mark.asyncio
async def test_base_price_falls_back_to_default(store, seed, monkeypatch):
    monkeypatch.delenv("BASE_DUE_PRICE", raising=False)
    member_id = await seed.member()

    due = await fee_service.compute_due(store, member_id)

    assert due["amount"] == 5000


@pytest.mark.asyncio
async def test_family_head_pays_discounted_group_total(store, seed):
    await _set_base_price(store, 5000)
    head_id, _, _ = await seed.family(group_id=7, size=3)

    due = await fee_service.compute_due(store, head_id)

    assert due["amount"] == 10500
    assert due["responsible_member_id"] == head_id
    assert due["payable_by_head"] is False
    assert due["breakdown"]["group_size"] == 3
    assert due["breakdown"]["subtotal"] == 15000
    assert due["breakdown"]["discount"] == 4500
    assert due["breakdown"]["discount_percent"] == 30


@pytest.mark.asyncio
async def test_family_non_head_owes_nothing(store, seed):
    await _set_base_price(store, 5000)
    head_id, child_id = await seed.family(group_id=8, size=2)

    due = await fee_service.compute_due(store, child_id)

    assert due["amount"] == 0
    assert due["payable_by_head"] is True
    assert due["responsible_member_id"] == head_id
    assert due["breakdown"]["total"] == 7000


@pytest.mark.asyncio
async def test_family_of_one_gets_discount(store, seed):
    await _set_base_price(store, 5000)
    (head_id,) = await seed.family(group_id=9, size=1)

    due = await fee_service.compute_due(store, head_id)

    assert due["amount"] == 3500


@pytest.mark.asyncio
async def test_due_reflects_price_change_without_restart(store, seed):
    member_id = await seed.member()
    await _set_base_price(store, 4000)
    assert (await fee_service.compute_due(store, member_id))["amount"] == 4000

    await _set_base_price(store, 4500)
    assert (await fee_service.compute_due(store, member_id))["amount"] == 4500


@pytest.mark.asyncio
async def test_unknown_member_raises_not_found(store):
    with pytest.raises(NotFoundError):
        await fee_service.compute_due(store, 999)


# ──────────────────────────────────────────────────────────────
# Inconsistent families
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_family_without_head_is_inconsistent(store, seed):
    a = await seed.member("A", PlanType.FAMILY, family_group_id=20)
    b = await seed.member("B", PlanType.FAMILY, family_group_id=20, head_of_family_id=a)
    # Point the only head at the other member, leaving no head at all
    async with store.transaction() as session:
        head = await session.get(Member, a)
        head.head_of_family_id = b

    with pytest.raises(InconsistentStateError):
        await fee_service.compute_due(store, a)


@pytest.mark.asyncio
async def test_family_with_two_heads_is_inconsistent(store, seed):
    a = await seed.member("A", PlanType.FAMILY, family_group_id=21)
    await seed.member("B", PlanType.FAMILY, family_group_id=21)

    with pytest.raises(InconsistentStateError):
        await fee_service.compute_due(store, a)


@pytest.mark.asyncio
async def test_family_member_without_group_is_inconsistent(store, seed):
    member_id = await seed.member("Lone", PlanType.FAMILY, family_group_id=None)

    with pytest.raises(InconsistentStateError):
        await fee_service.compute_due(store, member_id)


@pytest.mark.asyncio
async def test_individual_in_family_group_is_inconsistent(store, seed):
    head_id, _ = await seed.family(group_id=22, size=2)
    await seed.member("Outsider", PlanType.INDIVIDUAL, family_group_id=22, head_of_family_id=head_id)

    with pytest.raises(InconsistentStateError):
        await fee_service.compute_due(store, head_id)
