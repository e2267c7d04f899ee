"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping, shared dependencies) lives
here; every sub-router imports what it needs from this package.
"""

import os
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from clubhouse.services.exceptions import (
    AlreadyPaidError,
    CapacityBelowEnrollmentsError,
    CapacityExceededError,
    ClubError,
    InconsistentStateError,
    NotFoundError,
    PaymentDeclinedError,
    SlotTakenError,
    TrainerStillAssignedError,
    TransientStoreFailure,
    ValidationError,
)
from clubhouse.services.notification_service import Notifier

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
ERROR_STATUS_CODES = (
    (NotFoundError, 404),
    (CapacityExceededError, 409),
    (CapacityBelowEnrollmentsError, 409),
    (SlotTakenError, 409),
    (InconsistentStateError, 409),
    (TrainerStillAssignedError, 409),
    (AlreadyPaidError, 409),
    (PaymentDeclinedError, 402),
    (TransientStoreFailure, 503),
    (ValidationError, 400),
)


def status_code_for(error: ClubError) -> int:
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_cls):
            return status_code
    return 500


def to_http_exception(error: ClubError) -> HTTPException:
    """Translate a service failure into an HTTPException carrying its details."""
    headers = {"Retry-After": "1"} if error.retryable else None
    return HTTPException(
        status_code=status_code_for(error), detail=error.to_dict(), headers=headers
    )


def get_notifier(request: Request) -> Optional[Notifier]:
    """Dependency returning the process-wide Notifier, if one was started."""
    return getattr(request.app.state, "notifier", None)


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from clubhouse.api.routes.members import router as members_router  # noqa: E402
from clubhouse.api.routes.practices import router as practices_router  # noqa: E402
from clubhouse.api.routes.payments import router as payments_router  # noqa: E402
from clubhouse.api.routes.reservations import router as reservations_router  # noqa: E402
from clubhouse.api.routes.admin import router as admin_router  # noqa: E402

router = APIRouter()
router.include_router(members_router)
router.include_router(practices_router)
router.include_router(payments_router)
router.include_router(reservations_router)
router.include_router(admin_router)
