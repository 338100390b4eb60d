import structlog

from sync_beds24.db.engine import engine
from sync_beds24.logging_config import setup_logging
from sync_beds24.services.scheduler import run_scheduled

# Setup logging
setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    # One scheduler tick across all enabled hotels; meant to be run from cron
    summary = run_scheduled(engine)
    logger.info(
        "scheduled_run_finished",
        hotels=summary["hotels"],
        failed=summary["failed"],
        skipped=len(summary["skipped"]),
    )


if __name__ == "__main__":
    main()
