#!/usr/bin/env python3
"""
Materialize daily stock snapshots from the command line

Usage:
    python scripts/run_daily_snapshot.py                 # yesterday
    python scripts/run_daily_snapshot.py --date 2024-03-01 --force
"""
import argparse
import sys
from pathlib import Path

# Add project root to path when run from a checkout
sys.path.append(str(Path(__file__).parent.parent))

from stockledger.core.database import SessionLocal, init_db
from stockledger.core.exceptions import StockLedgerException
from stockledger.core.logging import get_logger, setup_logging
from stockledger.services.batch.snapshot_job import DailySnapshotJob

logger = get_logger("scripts.run_daily_snapshot")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--date", help="Day to materialize (YYYY-MM-DD), defaults to yesterday")
    parser.add_argument("--force", action="store_true", help="Rewrite the day even if snapshots exist")
    args = parser.parse_args(argv)

    setup_logging()
    init_db()

    db = SessionLocal()
    try:
        execution, result = DailySnapshotJob(db).run(args.date, force=args.force)
        for message in result.errors:
            logger.warning(message)
        logger.info(
            f"Execution {execution.id}: {execution.status} for {result.snapshot_date.isoformat()}, "
            f"{result.processed_count} snapshots written"
        )
    except StockLedgerException as e:
        logger.error(f"Snapshot run rejected: {e}")
        return 2
    finally:
        db.close()

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
