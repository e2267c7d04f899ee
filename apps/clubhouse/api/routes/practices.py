"""Practice, enrollment and attendance route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from clubhouse.database.db import LedgerStore, get_ledger_store
from clubhouse.services import (
    attendance_service,
    enrollment_service,
    practice_service,
    retirement_service,
)
from clubhouse.services.exceptions import ClubError
from clubhouse.services.notification_service import Notifier
from clubhouse.api.auth_dependencies import require_admin
from clubhouse.api.routes import get_notifier, limiter, to_http_exception
from clubhouse.models.schemas import (
    AttendanceRecordRequest,
    AttendanceRecordResult,
    AttendanceSummaryResponse,
    EnrollmentRequest,
    EnrollmentResult,
    PracticeCreate,
    PracticeResponse,
    PracticeUpdate,
    RetirementResult,
    TrainerAssignmentResult,
    WithdrawalResult,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/practices", response_model=List[PracticeResponse])
async def get_practices(
    member_id: Optional[int] = Query(None, description="Flag practices this member is enrolled in"),
    store: LedgerStore = Depends(get_ledger_store),
):
    """List practices with schedule, trainers and free slots."""
    try:
        return await practice_service.list_practices(store, member_id=member_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing practices: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing practices")


@router.post("/api/practices", response_model=PracticeResponse, status_code=201)
async def create_practice(
    payload: PracticeCreate,
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Create a practice with its weekly slots (admin only)."""
    try:
        return await practice_service.create_practice(
            store,
            name=payload.name,
            description=payload.description,
            capacity=payload.capacity,
            price=payload.price,
            slots=[slot.model_dump() for slot in payload.slots],
        )
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating practice: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating practice")


@router.put("/api/practices/{practice_id}", response_model=PracticeResponse)
async def update_practice(
    practice_id: int,
    payload: PracticeUpdate,
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Change a practice's name, description, capacity, price or schedule (admin only)."""
    try:
        return await practice_service.update_practice(
            store,
            practice_id,
            name=payload.name,
            description=payload.description,
            capacity=payload.capacity,
            price=payload.price,
            slots=(
                [slot.model_dump() for slot in payload.slots]
                if payload.slots is not None
                else None
            ),
        )
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating practice {practice_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating practice")


@router.delete("/api/practices/{practice_id}", response_model=RetirementResult)
async def retire_practice(
    practice_id: int,
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
    notifier: Optional[Notifier] = Depends(get_notifier),
):
    """
    Retire a practice (admin only).

    Deactivates its enrollments, deletes its schedule and the practice, then
    notifies the affected members in the background.
    """
    try:
        return await retirement_service.retire(store, practice_id, notifier=notifier)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error retiring practice {practice_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error retiring practice")


@router.post("/api/practices/{practice_id}/enrollments", response_model=EnrollmentResult)
@limiter.limit("30/minute")
async def enroll_member(
    request: Request,
    practice_id: int,
    payload: EnrollmentRequest,
    store: LedgerStore = Depends(get_ledger_store),
):
    """Enroll a member in a practice if it has a free slot."""
    try:
        return await enrollment_service.enroll(store, payload.member_id, practice_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error enrolling in practice {practice_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error enrolling in practice")


@router.delete(
    "/api/practices/{practice_id}/enrollments/{member_id}", response_model=WithdrawalResult
)
async def withdraw_member(
    practice_id: int, member_id: int, store: LedgerStore = Depends(get_ledger_store)
):
    """Withdraw a member from a practice. Withdrawing twice is not an error."""
    try:
        return await enrollment_service.withdraw(store, member_id, practice_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error withdrawing from practice {practice_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error withdrawing from practice")


@router.post(
    "/api/practices/{practice_id}/trainers/{trainer_id}", response_model=TrainerAssignmentResult
)
async def assign_trainer(
    practice_id: int,
    trainer_id: int,
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Assign a trainer to a practice (admin only)."""
    try:
        return await practice_service.assign_trainer(store, practice_id, trainer_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error assigning trainer {trainer_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error assigning trainer")


@router.delete(
    "/api/practices/{practice_id}/trainers/{trainer_id}", response_model=TrainerAssignmentResult
)
async def unassign_trainer(
    practice_id: int,
    trainer_id: int,
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Remove a trainer from a practice (admin only)."""
    try:
        return await practice_service.unassign_trainer(store, practice_id, trainer_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error removing trainer {trainer_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error removing trainer")


@router.post(
    "/api/practices/{practice_id}/attendance", response_model=AttendanceRecordResult
)
async def record_attendance(
    practice_id: int,
    payload: AttendanceRecordRequest,
    _: bool = Depends(require_admin),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Record attendance for one class of a practice (admin only)."""
    try:
        return await attendance_service.record_attendance(
            store,
            practice_id,
            payload.class_date,
            [(entry.enrollment_id, entry.present) for entry in payload.entries],
        )
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error recording attendance for practice {practice_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error recording attendance")


@router.get(
    "/api/enrollments/{enrollment_id}/attendance", response_model=AttendanceSummaryResponse
)
async def get_attendance_summary(
    enrollment_id: int, store: LedgerStore = Depends(get_ledger_store)
):
    """Attendance totals and history for one enrollment."""
    try:
        return await attendance_service.attendance_summary(store, enrollment_id)
    except ClubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error getting attendance for enrollment {enrollment_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error getting attendance")
