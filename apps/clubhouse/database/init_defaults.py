#!/usr/bin/env python3
"""
Initialize default database values.
This script is run on startup to populate default settings.
"""

import asyncio
import logging
import os

from clubhouse.database.db import LedgerStore
from clubhouse.services import settings_service
from clubhouse.utils.constants import BASE_DUE_PRICE_SETTING, DEFAULT_BASE_DUE_PRICE

logger = logging.getLogger(__name__)


async def init_defaults(store: LedgerStore) -> None:
    """Seed the base due price unless an admin already set one."""
    async with store.transaction() as session:
        existing = await settings_service.get_setting(session, BASE_DUE_PRICE_SETTING)
        if existing is not None:
            logger.info(f"Base due price already configured: {existing}")
            return

        initial = os.getenv("BASE_DUE_PRICE", str(DEFAULT_BASE_DUE_PRICE))
        price = await settings_service.set_base_due_price(session, initial)
        logger.info(f"Seeded base due price: {price}")


if __name__ == "__main__":
    async def _main():
        store = LedgerStore().open()
        try:
            await init_defaults(store)
        finally:
            await store.close()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(_main())
