"""
Worker Initialization - Shutdown Module.

Module: shutdown.py
Handles graceful shutdown of the settlement worker.
Stops the loop and closes network and database connections.
"""

from aiohttp import web
from loguru import logger

from jobs.health import stop_health_server
from jobs.initialization.services import Services


async def shutdown_handler(services: Services, health_runner: web.AppRunner | None = None) -> None:
    """Handle graceful shutdown."""
    logger.info("Graceful shutdown initiated...")

    await services.worker.stop()
    logger.info("Settlement worker stopped")

    if health_runner is not None:
        await stop_health_server(health_runner)

    try:
        await services.gateway.close()
    except Exception as e:
        logger.warning(f"Error closing gateway session: {e}")

    try:
        await services.chain.close()
    except Exception as e:
        logger.warning(f"Error closing chain client: {e}")

    await services.engine.dispose()
    logger.info("Database connections closed")

    logger.info("Graceful shutdown complete")
