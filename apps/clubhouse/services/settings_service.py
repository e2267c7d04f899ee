"""
Settings service for runtime configuration with database overrides.

Checks the settings table first, then falls back to environment variables.
Values are read on every call; nothing is cached in-process.
"""

import math
import os
import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from dotenv import load_dotenv

from clubhouse.database.models import Setting
from clubhouse.services.exceptions import ValidationError
from clubhouse.utils.constants import BASE_DUE_PRICE_SETTING, DEFAULT_BASE_DUE_PRICE

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


async def get_setting(session: AsyncSession, key: str) -> Optional[str]:
    """
    Get a setting value.

    Args:
        session: Database session
        key: Setting key

    Returns:
        Setting value or None if not found
    """
    result = await session.execute(select(Setting).where(Setting.key == key))
    setting = result.scalar_one_or_none()
    return setting.value if setting else None


async def set_setting(session: AsyncSession, key: str, value: str) -> None:
    """
    Set a setting value (upsert). The caller owns the commit.

    Args:
        session: Database session
        key: Setting key
        value: Setting value
    """
    setting = await session.get(Setting, key)
    if setting is None:
        session.add(Setting(key=key, value=value))
    else:
        setting.value = value
    await session.flush()


async def get_setting_with_fallback(
    session: AsyncSession,
    key: str,
    env_var: Optional[str] = None,
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Get a setting value from database first, then env var, then default.

    Args:
        session: Database session
        key: Setting key in database
        env_var: Environment variable name to fall back to
        default: Default value if neither database nor env var is set

    Returns:
        Setting value as string, or None
    """
    value = await get_setting(session, key)
    if value is not None:
        return value

    if env_var:
        value = os.getenv(env_var)
        if value is not None:
            return value

    return default


async def get_int_setting(
    session: AsyncSession,
    key: str,
    env_var: Optional[str] = None,
    default: Optional[int] = None,
) -> Optional[int]:
    """
    Get an integer setting value, falling back to default on unparseable values.
    """
    value = await get_setting_with_fallback(session, key, env_var, None)
    if value is None:
        return default

    try:
        return int(float(value))
    except (ValueError, TypeError):
        logger.warning(f"Invalid integer value for setting {key}: {value}")
        return default


async def get_base_due_price(session: AsyncSession) -> int:
    """Base monthly due price for one member."""
    return await get_int_setting(
        session,
        BASE_DUE_PRICE_SETTING,
        env_var="BASE_DUE_PRICE",
        default=DEFAULT_BASE_DUE_PRICE,
    )


async def set_base_due_price(session: AsyncSession, price) -> int:
    """
    Update the base due price. The value is rounded to a whole currency unit.

    Raises:
        ValidationError: If the price is not a non-negative number
    """
    try:
        numeric = float(price)
    except (TypeError, ValueError):
        raise ValidationError("Base due price must be a number", price=price)
    if not math.isfinite(numeric) or numeric < 0:
        raise ValidationError("Base due price must be a non-negative number", price=price)

    rounded = int(numeric + 0.5)
    await set_setting(session, BASE_DUE_PRICE_SETTING, str(rounded))
    logger.info(f"Base due price set to {rounded}")
    return rounded
