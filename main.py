import asyncio
import logging
import sys

from campus_store.config import ConfigurationError, get_settings
from campus_store.db import Storage, open_pool


async def main() -> None:
    """Load configuration, bootstrap the database and report readiness."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logger = logging.getLogger(__name__)

    pool = await open_pool(settings.db)
    try:
        storage = Storage(pool)
        campuses = await storage.get_all_campuses()
        logger.info("Data store ready at %s (%d campuses)", settings.db.path, len(campuses))
    finally:
        await pool.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except ConfigurationError as e:
        logging.critical("Startup failed: %s", e)
        sys.exit(1)
    except (KeyboardInterrupt, SystemExit):
        logging.info("Stopped.")
