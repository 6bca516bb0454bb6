"""
Credit paid Stripe checkout sessions whose webhook never arrived
Usage: python reconcile.py [--hours N] [session_id ...]
"""
import asyncio
import logging
import sys
from pathlib import Path

# Project root on the path
sys.path.insert(0, str(Path(__file__).parent))

import db
from db import init_db, close_db
from services.payments import StripePaymentService
from settings import Settings


async def reconcile(lookback_hours=None, session_ids=None):
    settings = Settings()
    init_db(settings.database)
    try:
        async with db.SessionLocal() as session:
            return await StripePaymentService(settings).reconcile_recent_sessions(
                session,
                lookback_hours=lookback_hours,
                session_ids=session_ids
            )
    finally:
        await close_db()


def parse_args(argv):
    """Returns (lookback_hours, session_ids)"""
    lookback_hours = None
    session_ids = []
    args = iter(argv)
    for arg in args:
        if arg == "--hours":
            value = next(args, None)
            if value is None or not value.isdigit():
                raise ValueError("--hours needs a positive integer")
            lookback_hours = int(value)
        elif arg.startswith("cs_"):
            session_ids.append(arg)
        else:
            raise ValueError(f"Unknown argument: {arg}")
    return lookback_hours, session_ids or None


def main():
    logging.basicConfig(level=logging.INFO)

    try:
        lookback_hours, session_ids = parse_args(sys.argv[1:])
    except ValueError as e:
        print(f"✗ {e}")
        print(__doc__.strip().splitlines()[-1])
        sys.exit(1)

    try:
        summary = asyncio.run(reconcile(lookback_hours, session_ids))
    except Exception as e:
        print(f"✗ Reconciliation failed: {e}")
        sys.exit(1)

    print(
        f"✓ Checked {summary['checked']}, credited {summary['credited']}, "
        f"skipped {summary['skipped']}, failed {summary['failed']}"
    )
    if summary["failed"]:
        sys.exit(2)


if __name__ == "__main__":
    main()
