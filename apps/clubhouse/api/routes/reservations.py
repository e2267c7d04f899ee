"""Court reservation route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from clubhouse.database.db import LedgerStore, get_ledger_store
from clubhouse.services import reservation_service
from clubhouse.services.exceptions import ClubError
from clubhouse.api.routes import limiter, to_http_exception
from clubhouse.models.schemas import ReservationCreate, ReservationResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/reservations", response_model=ReservationResponse, status_code=201)
@limiter.limit("20/minute")
async def create_reservation(
    request: Request,
    payload: ReservationCreate,
    store: LedgerStore = Depends(get_ledger_store),
):
    """Book a court slot. A slot that is already booked answers 409."""
    try:
        return await reservation_service.reserve_court(
            store, payload.court_id, payload.member_id, payload.day, payload.start_time
        )
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating reservation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating reservation")
