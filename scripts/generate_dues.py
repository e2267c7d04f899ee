#!/usr/bin/env python3
"""
Generate the monthly dues for one month.

Usage:
    python scripts/generate_dues.py                 # current month
    python scripts/generate_dues.py --month 3 --year 2026

Idempotent: members already billed for the month are skipped.
"""

import asyncio
import argparse
import sys
from pathlib import Path

# Add the apps directory to the path so we can import clubhouse modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "apps"))

from clubhouse.database.db import LedgerStore, init_database
from clubhouse.services import due_service
from clubhouse.services.exceptions import ValidationError
from clubhouse.utils.datetime_utils import utcnow


async def generate(month: int, year: int) -> int:
    store = LedgerStore().open()
    try:
        await init_database(store)
        summary = await due_service.generate_monthly_dues(store, month, year)
    except ValidationError as e:
        print(f"❌ {e.message}")
        return 1
    finally:
        await store.close()

    print(f"✅ Dues for {month:02d}/{year} (base price {summary['base_price']})")
    print(f"   Created: {summary['created']}")
    print(f"   Already existed: {summary['skipped_existing']}")
    if summary["inconsistent_member_ids"]:
        print(
            f"   ⚠️  Skipped (inconsistent family data): "
            f"{', '.join(str(i) for i in summary['inconsistent_member_ids'])}"
        )
    return 0


def main():
    now = utcnow()
    parser = argparse.ArgumentParser(description="Generate monthly membership dues")
    parser.add_argument("--month", type=int, default=now.month, help="Month to bill (1-12)")
    parser.add_argument("--year", type=int, default=now.year, help="Year to bill")
    args = parser.parse_args()

    sys.exit(asyncio.run(generate(args.month, args.year)))


if __name__ == "__main__":
    main()
