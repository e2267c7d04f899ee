"""Payment route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from clubhouse.database.db import LedgerStore, get_ledger_store
from clubhouse.services import payment_service
from clubhouse.services.exceptions import ClubError
from clubhouse.api.routes import limiter, to_http_exception
from clubhouse.models.schemas import PaymentCreate, PaymentResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/payments", response_model=PaymentResponse, status_code=201)
@limiter.limit("10/minute")
async def create_payment(
    request: Request, payload: PaymentCreate, store: LedgerStore = Depends(get_ledger_store)
):
    """
    Pay a due, enrollment or reservation by card.

    A declined card answers 402; the declined attempt is still recorded.
    """
    try:
        return await payment_service.record_payment(
            store, payload.kind, payload.obligation_id, payload.card_last4
        )
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error recording payment: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error recording payment")
