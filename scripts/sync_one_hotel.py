import argparse

import structlog

from sync_beds24.db.engine import engine
from sync_beds24.logging_config import setup_logging
from sync_beds24.services.bootstrap import bootstrap_property
from sync_beds24.services.delta_sync import delta_sync

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Run a bootstrap or a delta sync for a single hotel from the command line.

    Examples:
        python scripts/sync_one_hotel.py hotel-1 --scope bookings
        python scripts/sync_one_hotel.py hotel-1 --bootstrap 123456
    """
    parser = argparse.ArgumentParser(description="Sync one hotel with Beds24")
    parser.add_argument("hotel_id")
    parser.add_argument("--scope", choices=["all", "bookings", "calendar"], default="all")
    parser.add_argument("--bootstrap", metavar="PROPERTY_ID", help="Bootstrap this property")
    args = parser.parse_args()

    try:
        if args.bootstrap:
            result = bootstrap_property(
                engine, args.hotel_id, args.bootstrap, initiated_by="cli"
            )
            logger.info("cli_bootstrap_done", **result.counts)
        else:
            sync = delta_sync(engine, args.hotel_id, scope=args.scope)
            logger.info(
                "cli_sync_done",
                status=sync.status,
                bookings=sync.bookings_processed,
                calendar_days=sync.calendar_days,
                failures=len(sync.failures),
            )
    except Exception:
        logger.exception("cli_sync_failed", hotel_id=args.hotel_id)
        raise


if __name__ == "__main__":
    main()
