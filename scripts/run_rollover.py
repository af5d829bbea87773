import argparse
import logging
import sys

from app.core.dates import parse_date
from app.core.errors import InvalidDateError
from app.core.logging import setup_logging
from app.database import Base, engine, ensure_sqlite_schema
from app.models import import_all_models
from app.scheduler.nightly_job import run_daily_rollover

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(
        description="Close yesterday's stock and open today's for every branch. Meant to run from cron after midnight."
    )
    parser.add_argument(
        "--date",
        help="Day to open (YYYY-MM-DD or DD/MM/YYYY). Defaults to today in STOCK_TIMEZONE.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()

    today = None
    if args.date:
        try:
            today = parse_date(args.date)
        except InvalidDateError as exc:
            logger.error("%s", exc)
            return 2

    import_all_models()
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema()

    try:
        run_daily_rollover(today=today)
    except RuntimeError:
        logger.exception("Daily rollover finished with failures.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
