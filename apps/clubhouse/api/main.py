"""
Clubhouse API Server

FastAPI server for membership dues, practice enrollments, payments and
practice retirement.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from clubhouse.api.routes import router, limiter as routes_limiter, status_code_for
from clubhouse.database.db import LedgerStore, init_database
from clubhouse.database.init_defaults import init_defaults
from clubhouse.services.exceptions import ClubError
from clubhouse.services.notification_service import Notifier

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Clubhouse API...")

    store = LedgerStore().open()
    app.state.ledger_store = store
    app.state.notifier = Notifier(store)

    # Initialize database (create tables if they don't exist)
    # This is a fallback for tables that might not be in migrations yet
    try:
        await init_database(store)
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - allow app to start; requests will fail with 503 until the store is back

    # Initialize default values (settings, etc.)
    try:
        await init_defaults(store)
        logger.info("✓ Default values initialized")
    except Exception as e:
        logger.error(f"Failed to initialize defaults: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Clubhouse API...")

    # Let in-flight notices finish before the store goes away
    try:
        await app.state.notifier.drain()
        logger.info("✓ Pending notifications drained")
    except Exception as e:
        logger.error(f"Error draining notifications: {e}", exc_info=True)

    try:
        await store.close()
        logger.info("✓ Ledger store closed")
    except Exception as e:
        logger.error(f"Error closing ledger store: {e}", exc_info=True)


app = FastAPI(
    title="Clubhouse API",
    description="API for club membership dues, practice capacity and debt tracking",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ClubError)
async def club_error_handler(request: Request, exc: ClubError):
    """Map service failures that escaped a route's own handling."""
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=status_code_for(exc), content={"detail": exc.to_dict()}, headers=headers
    )


# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
