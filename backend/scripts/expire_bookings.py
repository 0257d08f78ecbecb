#!/usr/bin/env python3
"""
Run one expiry sweep against the configured database and exit.

Usage:
  python scripts/expire_bookings.py

Exit code is 1 if the sweep itself failed or any candidate could not be
expired.
"""

import asyncio
import sys

from tripbook.core.logging import setup_logging, get_logger
from tripbook.db.session import dispose_engine, get_transaction_coordinator
from tripbook.services.cache_service import close_redis, invalidate_trip_availability
from tripbook.services.expiry_service import ExpirySweeper


async def main() -> int:
    setup_logging()
    logger = get_logger("expire_bookings")
    logger.info("manual_expiry_sweep_starting")

    try:
        report = await ExpirySweeper(get_transaction_coordinator()).run_once()
        for trip_id in report.released_trip_ids:
            await invalidate_trip_availability(trip_id)
    except Exception:
        logger.exception("manual_expiry_sweep_failed")
        return 1
    finally:
        await close_redis()
        await dispose_engine()

    logger.info(
        "manual_expiry_sweep_finished",
        expired=len(report.expired),
        skipped=len(report.skipped),
        failed=len(report.failed),
    )
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
