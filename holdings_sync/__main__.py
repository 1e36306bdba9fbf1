# python -m holdings_sync : one full refresh run
import asyncio
import sys

from loguru import logger

from holdings_sync.core.errors import OrchestratorFailure
from holdings_sync.core.settings import settings
from holdings_sync.services.refresh import run_once


def main() -> int:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())
    try:
        asyncio.run(run_once(settings))
    except OrchestratorFailure as e:
        logger.error(f"Holdings refresh failed: {e}")
        return 1
    logger.info("Daily update completed successfully")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
