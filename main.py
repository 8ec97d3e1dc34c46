"""
Spa scheduler entry point.

Usage:
    Console demo:     python main.py console [--scenario booking|conflict|block]
    Create database:  python main.py init-db
    Expire pendings:  python main.py expire
"""

import logging
import sys

from spa_scheduler.config import settings

logger = logging.getLogger(__name__)


def _open_sql_store():
    """Open the SQL store at DATABASE_URL, creating tables if needed."""
    from spa_scheduler.store.sql_store import SqlStore

    store = SqlStore(settings.database.url)
    store.create_schema()
    return store


def _run_init_db() -> None:
    """Create the schema and load the starter catalog."""
    from spa_scheduler.scheduling.scheduler import SpaScheduler
    from spa_scheduler.seed import seed_catalog

    scheduler = SpaScheduler(_open_sql_store())
    seeded = seed_catalog(scheduler.catalog)
    logger.info(
        "Database ready at %s (%d technicians)",
        settings.database.url, len(seeded.technicians),
    )


def _run_expiry() -> None:
    """Cancel pending bookings past the hold window. Meant for cron."""
    from spa_scheduler.scheduling.scheduler import SpaScheduler

    scheduler = SpaScheduler(_open_sql_store())
    expired = scheduler.expire_stale_pending_bookings()
    logger.info("Expired %d booking(s)", len(expired))


def _run_console_mode(argv: list[str]) -> None:
    """Start the offline console demo (no database required)."""
    import console_demo

    sys.argv = [sys.argv[0], *argv]
    console_demo.main()


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "console"
    if command == "init-db":
        _run_init_db()
    elif command == "expire":
        _run_expiry()
    elif command == "console":
        _run_console_mode(sys.argv[2:])
    else:
        print(__doc__)
        sys.exit(2)
