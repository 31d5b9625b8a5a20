"""
Periodic shift monitoring.

    python scripts/run_monitoring.py --once
    python scripts/run_monitoring.py --interval 5
"""
import argparse
import logging
import time

from shiftwatch.core.config import settings
from shiftwatch.core.logging import setup_logging
from shiftwatch.database import SessionLocal, init_db
from shiftwatch.services.monitoring import run_global_monitoring

logger = logging.getLogger("shiftwatch.monitoring")


def main():
    parser = argparse.ArgumentParser(description="Detect shift violations for all companies")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.engine.monitoring_interval_minutes,
        help="Minutes between passes",
    )
    args = parser.parse_args()

    setup_logging()
    init_db()

    while True:
        try:
            run_global_monitoring(SessionLocal)
        except Exception as e:
            logger.error(f"Monitoring pass failed: {e}", exc_info=True)
            if args.once:
                raise
        if args.once:
            break
        time.sleep(args.interval * 60)


if __name__ == "__main__":
    main()
