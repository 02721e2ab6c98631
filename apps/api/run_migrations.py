#!/usr/bin/env python3
"""Database bootstrap: run Alembic migrations (production-safe).

- Wait for the database to accept connections.
- Always run `alembic upgrade head` on startup.
- If migrations fail, fail fast (don't start with an unknown schema).
"""

import logging
import os
import sys
import time

from dotenv import load_dotenv

load_dotenv()

from core.database import check_db_connection  # noqa: E402
from core.logging import setup_logging  # noqa: E402

logger = logging.getLogger("run_migrations")


def _get_alembic_config():
    """Load Alembic config for programmatic migrations."""
    from alembic.config import Config

    here = os.path.dirname(os.path.abspath(__file__))
    cfg = Config(os.path.join(here, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(here, "alembic"))
    # Logging is already configured by setup_logging().
    cfg.attributes["configure_logger"] = False
    return cfg


def alembic_upgrade_head() -> None:
    """Apply all pending migrations."""
    from alembic import command

    command.upgrade(_get_alembic_config(), "head")


def wait_for_database(max_retries: int = 30, delay: float = 1.0) -> bool:
    for attempt in range(1, max_retries + 1):
        if check_db_connection():
            logger.info("Database is ready")
            return True
        logger.warning(f"Database is unavailable - sleeping (attempt {attempt}/{max_retries})")
        time.sleep(delay)
    return False


def main():
    setup_logging()

    if not wait_for_database():
        logger.error("Database is not ready after maximum retries")
        sys.exit(1)

    try:
        alembic_upgrade_head()
    except Exception as e:
        logger.error(f"Alembic upgrade failed: {e}", exc_info=True)
        sys.exit(1)
    logger.info("Migrations completed successfully")


if __name__ == '__main__':
    main()
