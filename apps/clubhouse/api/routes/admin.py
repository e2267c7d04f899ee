"""Settings, notification log and health check route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import text

from clubhouse.database.db import LedgerStore, get_ledger_store
from clubhouse.services import notification_service, settings_service
from clubhouse.services.exceptions import ClubError
from clubhouse.api.auth_dependencies import require_admin
from clubhouse.api.routes import to_http_exception
from clubhouse.models.schemas import (
    BaseDuePriceResponse,
    BaseDuePriceUpdate,
    NotificationLogResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/settings/base-due-price", response_model=BaseDuePriceResponse)
async def get_base_due_price(store: LedgerStore = Depends(get_ledger_store)):
    """Current base monthly due price."""
    try:
        async with store.session() as session:
            price = await settings_service.get_base_due_price(session)
        return {"base_due_price": price}
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error reading base due price: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error reading base due price")


@router.put("/api/settings/base-due-price", response_model=BaseDuePriceResponse)
async def update_base_due_price(
    payload: BaseDuePriceUpdate,
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Update the base monthly due price (admin only). Rounded to a whole unit."""
    try:
        async with store.transaction() as session:
            price = await settings_service.set_base_due_price(session, payload.price)
        return {"base_due_price": price}
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating base due price: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating base due price")


@router.get("/api/notification-logs", response_model=List[NotificationLogResponse])
async def get_notification_logs(
    member_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="sent, failed or skipped"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
):
    """List notification attempts, newest first (admin only)."""
    try:
        offset = (page - 1) * page_size
        return await notification_service.list_notification_logs(
            store, member_id=member_id, status=status, limit=page_size, offset=offset
        )
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing notification logs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing notification logs")


@router.get("/api/health")
async def health_check(store: LedgerStore = Depends(get_ledger_store)):
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    try:
        async with store.session() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "healthy", "message": "API is running"}
    except Exception as e:
        return {"status": "unhealthy", "message": f"Error: {str(e)}"}
