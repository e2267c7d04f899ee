"""
Shared pytest configuration for clubhouse tests.

Each test gets its own LedgerStore. By default that is a fresh SQLite file
(aiosqlite) under the test's tmp_path; set TEST_DATABASE_URL to run against
PostgreSQL instead.

SAFETY: When TEST_DATABASE_URL is set, this module REFUSES to run against any
database whose name does not contain the substring "test", since every test
drops all tables on teardown.
"""

import os

# Must be set before clubhouse.api is imported so rate limits are no-ops
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENABLE_EMAIL", "false")

from datetime import date, time
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from clubhouse.database.db import Base, LedgerStore
from clubhouse.database.models import (
    Court,
    Due,
    Enrollment,
    Member,
    NotificationStatus,
    Payment,
    PlanType,
    Practice,
    PracticeSchedule,
    PracticeTrainer,
    Reservation,
    Trainer,
)
from clubhouse.services.notification_service import Notifier


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if TEST_DATABASE_URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'ledger_test.db'}"

    # ── Safety gate: database name MUST contain "test" ──────────────────
    db_name = url.rsplit("/", 1)[-1].split("?")[0]  # strip query params
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Fix: set TEST_DATABASE_URL to a test database, e.g.:\n"
            f"    export TEST_DATABASE_URL=postgresql+asyncpg://.../{db_name}_test\n"
            f"  Or unset it to use a throwaway SQLite file.\n"
            f"{'=' * 70}"
        )
    return url


@pytest_asyncio.fixture
async def store(tmp_path):
    """An open LedgerStore on an empty schema."""
    ledger = LedgerStore(_resolve_test_database_url(tmp_path), echo=False).open()

    async with ledger.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield ledger

    if not ledger.is_sqlite:
        async with ledger.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await ledger.close()


class FakeSender:
    """Email sender double that records every send and can fail on demand."""

    def __init__(self):
        self.sent: List[Dict] = []
        self.fail_for = set()
        self.raise_for = set()

    async def __call__(self, to_address, subject, body):
        if to_address in self.raise_for:
            raise ConnectionError(f"SMTP relay unreachable for {to_address}")
        self.sent.append({"to": to_address, "subject": subject, "body": body})
        if to_address in self.fail_for:
            return NotificationStatus.FAILED
        return NotificationStatus.SENT


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def notifier(store, sender):
    return Notifier(store, sender=sender)


class LedgerSeeder:
    """Inserts ledger rows in their own committed transactions and returns ids."""

    def __init__(self, store: LedgerStore):
        self.store = store
        self._dni = 30000000

    async def _add(self, obj):
        async with self.store.transaction() as session:
            session.add(obj)
            await session.flush()
            return obj.id

    async def member(
        self,
        full_name: str = "Ana Torres",
        plan_type: PlanType = PlanType.INDIVIDUAL,
        family_group_id: Optional[int] = None,
        head_of_family_id: Optional[int] = None,
        email: Optional[str] = None,
    ) -> int:
        self._dni += 1
        return await self._add(
            Member(
                dni=str(self._dni),
                full_name=full_name,
                email=email if email is not None else f"member{self._dni}@example.com",
                plan_type=plan_type.value,
                family_group_id=family_group_id,
                head_of_family_id=head_of_family_id,
            )
        )

    async def family(self, group_id: int, size: int) -> List[int]:
        """Create a family group; the first id returned is the head."""
        head_id = await self.member(
            "Family Head", PlanType.FAMILY, family_group_id=group_id
        )
        ids = [head_id]
        for i in range(size - 1):
            ids.append(
                await self.member(
                    f"Family Member {i + 1}",
                    PlanType.FAMILY,
                    family_group_id=group_id,
                    head_of_family_id=head_id,
                )
            )
        return ids

    async def practice(
        self,
        name: str = "Swimming",
        capacity: int = 10,
        price: int = 3000,
        slots=(("MONDAY", time(18, 0), time(19, 0)),),
    ) -> int:
        async with self.store.transaction() as session:
            practice = Practice(name=name, capacity=capacity, price=price)
            session.add(practice)
            await session.flush()
            for position, (weekday, start, end) in enumerate(slots):
                session.add(
                    PracticeSchedule(
                        practice_id=practice.id,
                        weekday=weekday,
                        start_time=start,
                        end_time=end,
                        position=position,
                    )
                )
            return practice.id

    async def trainer(self, full_name: str = "Coach Rivera", practice_id: Optional[int] = None) -> int:
        trainer_id = await self._add(Trainer(full_name=full_name))
        if practice_id is not None:
            await self._add(PracticeTrainer(practice_id=practice_id, trainer_id=trainer_id))
        return trainer_id

    async def enrollment(self, member_id: int, practice_id: int, active: bool = True) -> int:
        return await self._add(
            Enrollment(member_id=member_id, practice_id=practice_id, active=active)
        )

    async def due(self, member_id: int, month: int = 3, year: int = 2026, amount: int = 5000) -> int:
        return await self._add(
            Due(
                member_id=member_id,
                month=month,
                year=year,
                amount=amount,
                due_date=date(year, month, 10),
            )
        )

    async def court(self, name: str = "Court 1", price: int = 1200) -> int:
        return await self._add(Court(name=name, price=price))

    async def reservation(
        self, court_id: int, member_id: Optional[int], day: date = date(2026, 3, 14),
        start: time = time(10, 0),
    ) -> int:
        return await self._add(
            Reservation(court_id=court_id, member_id=member_id, date=day, start_time=start)
        )

    async def payment(self, status: str, amount: int = 5000, **obligation) -> int:
        return await self._add(Payment(status=status, amount=amount, **obligation))


@pytest.fixture
def seed(store):
    return LedgerSeeder(store)
