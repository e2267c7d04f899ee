"""
Authorization dependencies for FastAPI routes.

Administrative routes are guarded by a shared admin token sent in the
X-Admin-Token header. Member identity is taken from the path; member
authentication happens in front of this service.
"""

import hmac
import os
import logging
from typing import Optional
from fastapi import Header, HTTPException, status
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def is_admin_token(token: Optional[str]) -> bool:
    """True iff the token matches ADMIN_API_TOKEN. No admin exists when it is unset."""
    expected = os.getenv("ADMIN_API_TOKEN")
    if not expected or not token:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


async def require_admin(x_admin_token: Optional[str] = Header(None)) -> bool:
    """Require the club admin capability."""
    if not is_admin_token(x_admin_token):
        logger.warning("Rejected admin request with missing or invalid admin token")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return True
