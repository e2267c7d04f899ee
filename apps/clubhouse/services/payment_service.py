"""
Payment recording against member obligations.

Payments are an append-only trail: every gateway attempt leaves a row, PAID
when approved and PENDING when declined. Whether an obligation is paid is
always decided by debt_service.is_obligation_paid over that trail.
"""

import enum
import logging
from typing import Dict, Optional, Union
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import (
    Due,
    Enrollment,
    ObligationKind,
    Payment,
    PaymentStatus,
    Reservation,
)
from clubhouse.services.debt_service import is_obligation_paid
from clubhouse.services.exceptions import (
    AlreadyPaidError,
    NotFoundError,
    PaymentDeclinedError,
    ValidationError,
)
from clubhouse.utils.constants import APPROVED_TEST_CARDS, DECLINED_TEST_CARDS
from clubhouse.utils.datetime_utils import iso_or_none, utcnow

logger = logging.getLogger(__name__)

Obligation = Union[Due, Enrollment, Reservation]


class ChargeOutcome(str, enum.Enum):
    APPROVED = "approved"
    DECLINED = "declined"


class StubPaymentGateway:
    """
    Simulated card gateway keyed on the card's last four digits.

    4242 is approved, 0002 and 0000 are declined, anything else is invalid.
    """

    def charge(self, card_last4: str, amount: int) -> ChargeOutcome:
        if not isinstance(card_last4, str) or len(card_last4) != 4 or not card_last4.isdigit():
            raise ValidationError("Card must be identified by its last four digits", card_last4=card_last4)
        if card_last4 in APPROVED_TEST_CARDS:
            logger.info(f"Charge of {amount} approved for card ending {card_last4}")
            return ChargeOutcome.APPROVED
        if card_last4 in DECLINED_TEST_CARDS:
            logger.info(f"Charge of {amount} declined for card ending {card_last4}")
            return ChargeOutcome.DECLINED
        raise ValidationError("Unknown test card", card_last4=card_last4)


_OBLIGATION_MODELS = {
    ObligationKind.DUE: (Due, "due_id"),
    ObligationKind.ENROLLMENT: (Enrollment, "enrollment_id"),
    ObligationKind.RESERVATION: (Reservation, "reservation_id"),
}


def parse_obligation_kind(kind: str) -> ObligationKind:
    try:
        return ObligationKind(kind)
    except ValueError:
        raise ValidationError(
            f"Unknown obligation kind '{kind}'",
            kind=kind,
            allowed=[k.value for k in ObligationKind],
        )


async def _lock_obligation(
    session: AsyncSession, kind: ObligationKind, obligation_id: int
) -> Optional[Obligation]:
    model, _ = _OBLIGATION_MODELS[kind]
    options = [selectinload(model.payments)]
    if kind == ObligationKind.ENROLLMENT:
        options.append(selectinload(Enrollment.practice))
    elif kind == ObligationKind.RESERVATION:
        options.append(selectinload(Reservation.court))

    result = await session.execute(
        select(model).where(model.id == obligation_id).options(*options).with_for_update()
    )
    return result.scalar_one_or_none()


def obligation_amount(kind: ObligationKind, obligation: Obligation) -> int:
    """The amount owed for an obligation, read from its source row."""
    if kind == ObligationKind.DUE:
        return obligation.amount
    if kind == ObligationKind.ENROLLMENT:
        if obligation.practice is None:
            raise ValidationError(
                "Enrollment belongs to a retired practice and can no longer be paid",
                enrollment_id=obligation.id,
            )
        return obligation.practice.price
    return obligation.court.price


async def record_payment(
    store: LedgerStore,
    kind: str,
    obligation_id: int,
    card_last4: str,
    gateway: Optional[StubPaymentGateway] = None,
) -> Dict:
    """
    Charge a card for one obligation and append the attempt to its trail.

    Args:
        store: Ledger store
        kind: "due", "enrollment" or "reservation"
        obligation_id: Id of the due, enrollment or reservation
        card_last4: Last four digits of the card
        gateway: Payment gateway; defaults to the stub gateway

    Returns:
        Dict describing the PAID payment

    Raises:
        ValidationError: Unknown kind or card; nothing is written
        NotFoundError: The obligation does not exist
        AlreadyPaidError: The obligation is already paid; no charge is made
        PaymentDeclinedError: The charge was declined; the PENDING attempt
            has been recorded before this is raised
    """
    obligation_kind = parse_obligation_kind(kind)
    gateway = gateway or StubPaymentGateway()

    async with store.transaction() as session:
        obligation = await _lock_obligation(session, obligation_kind, obligation_id)
        if obligation is None:
            raise NotFoundError(obligation_kind.value.capitalize(), obligation_id)

        if is_obligation_paid(obligation.payments):
            raise AlreadyPaidError(
                f"{obligation_kind.value.capitalize()} {obligation_id} is already paid",
                kind=obligation_kind.value,
                obligation_id=obligation_id,
            )

        amount = obligation_amount(obligation_kind, obligation)
        outcome = gateway.charge(card_last4, amount)
        status = (
            PaymentStatus.PAID if outcome == ChargeOutcome.APPROVED else PaymentStatus.PENDING
        )

        _, fk_column = _OBLIGATION_MODELS[obligation_kind]
        payment = Payment(
            status=status.value,
            amount=amount,
            method="card",
            card_last4=card_last4,
            paid_at=utcnow(),
            **{fk_column: obligation.id},
        )
        session.add(payment)
        await session.flush()
        payment_id = payment.id
        paid_at = payment.paid_at

    logger.info(
        f"Payment {payment_id} for {obligation_kind.value} {obligation_id}: {status.value}"
    )

    if status == PaymentStatus.PENDING:
        raise PaymentDeclinedError(
            "The card was declined",
            payment_id=payment_id,
            kind=obligation_kind.value,
            obligation_id=obligation_id,
        )

    return {
        "payment_id": payment_id,
        "kind": obligation_kind.value,
        "obligation_id": obligation_id,
        "amount": amount,
        "status": status.value,
        "card_last4": card_last4,
        "paid_at": iso_or_none(paid_at),
    }
