"""
Referral API entry point.

Runs the aiohttp application until interrupted.
"""

import asyncio
import sys

from aiohttp import web
from loguru import logger

from app.api import create_app
from app.config.database import async_engine
from app.config.logging import setup_logging
from app.config.settings import settings


async def main() -> None:
    """Initialize and serve the referral API."""
    setup_logging("api")

    app = create_app()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.api_host, settings.api_port)
    await site.start()

    logger.info(
        f"Referral API listening on http://{settings.api_host}:{settings.api_port}"
    )

    try:
        # Serve until cancelled
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down referral API...")
        await runner.cleanup()
        await async_engine.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Referral API stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Referral API crashed: {e}")
        sys.exit(1)
