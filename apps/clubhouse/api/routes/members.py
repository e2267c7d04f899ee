"""Member fee and debt route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from clubhouse.database.db import LedgerStore, get_ledger_store
from clubhouse.database.models import PaymentStatus
from clubhouse.services import debt_service, fee_service
from clubhouse.services.exceptions import ClubError
from clubhouse.api.routes import to_http_exception
from clubhouse.models.schemas import DebtItem, DueResponse, QuotaResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/members/{member_id}/due", response_model=DueResponse)
async def get_member_due(member_id: int, store: LedgerStore = Depends(get_ledger_store)):
    """Compute the member's monthly due from current ledger state."""
    try:
        return await fee_service.compute_due(store, member_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error computing due for member {member_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error computing due")


@router.get("/api/members/{member_id}/quota", response_model=QuotaResponse)
async def get_member_quota(member_id: int, store: LedgerStore = Depends(get_ledger_store)):
    """Describe the member's plan and what they pay."""
    try:
        return await debt_service.get_quota(store, member_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error getting quota for member {member_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error getting quota")


@router.get("/api/members/{member_id}/debts", response_model=List[DebtItem])
async def get_member_debts(
    member_id: int,
    status: Optional[str] = Query(None, description="Only show PAID or PENDING obligations"),
    store: LedgerStore = Depends(get_ledger_store),
):
    """
    List the member's obligations with their payment status.

    Paid obligations are included unless filtered out with ?status=PENDING.
    """
    if status is not None:
        status = status.upper()
        if status not in {s.value for s in PaymentStatus}:
            raise HTTPException(status_code=400, detail="status must be PAID or PENDING")

    try:
        debts = await debt_service.list_debts(store, member_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing debts for member {member_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing debts")

    if status is not None:
        debts = [d for d in debts if d["status"] == status]
    return debts


@router.get("/api/members/{member_id}/dues/pending", response_model=List[DebtItem])
async def get_member_pending_dues(
    member_id: int, store: LedgerStore = Depends(get_ledger_store)
):
    """Monthly dues still unpaid for the member (billed to the head for families)."""
    try:
        return await debt_service.list_unpaid_dues(store, member_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing pending dues for member {member_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing pending dues")
