"""
Alembic entry point for the ledger schema.

Run from apps/clubhouse (``alembic upgrade head``). The target database is
DATABASE_URL unless overridden with ``alembic -x url=... upgrade head``.
Online migrations run through a LedgerStore, so SQLite targets get the same
connection setup the app uses and batch mode for ALTER statements.
"""

from logging.config import fileConfig
import asyncio
import logging
from sqlalchemy.engine import Connection
from alembic import context

from clubhouse.database.db import Base, DATABASE_URL, LedgerStore
from clubhouse.database import models  # noqa: F401

logger = logging.getLogger(__name__)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def target_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("url", DATABASE_URL)


def _configure(url: str, **kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    url = target_url()
    _configure(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})

    with context.begin_transaction():
        context.run_migrations()


def _run_on_connection(connection: Connection, url: str) -> None:
    _configure(url, connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    url = target_url()
    store = LedgerStore(url).open()
    logger.info(f"Migrating {store.display_url()}")
    try:
        async with store.engine.connect() as connection:
            await connection.run_sync(_run_on_connection, url)
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        raise
    finally:
        await store.close()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
