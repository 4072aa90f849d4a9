"""
Settlement worker entry point.

Builds the components from settings, starts the settlement loop and the
health server, and shuts both down on SIGINT / SIGTERM.
"""

import asyncio
import signal
import sys

from loguru import logger

from dedata.config.settings import get_settings
from dedata.utils.exceptions import DedataError
from jobs.health import start_health_server
from jobs.initialization.logging import setup_logging
from jobs.initialization.services import initialize_all_services, verify_chain_id
from jobs.initialization.shutdown import shutdown_handler


async def main() -> None:
    """Initialize and run the settlement worker."""
    settings = get_settings()
    setup_logging(settings)

    services = initialize_all_services(settings)
    try:
        await verify_chain_id(services.chain, settings.chain_id)
    except DedataError:
        await shutdown_handler(services)
        raise

    # Graceful shutdown event
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            logger.debug(f"Signal handler for {sig.name} not supported")

    health_runner = None
    try:
        health_runner = await start_health_server(
            services.worker,
            host=settings.health_check_host,
            port=settings.health_check_port,
        )
    except OSError as e:
        logger.warning(f"Failed to start health check server: {e}")

    worker_task = services.worker.start()
    stop_waiter = asyncio.create_task(stop_event.wait())

    try:
        done, _ = await asyncio.wait(
            {worker_task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED
        )
        if worker_task in done and not worker_task.cancelled() and worker_task.exception():
            logger.error(f"Settlement worker exited: {worker_task.exception()}")
        else:
            logger.info("Shutdown signal received")
    finally:
        stop_waiter.cancel()
        await shutdown_handler(services, health_runner)


def cli() -> None:
    """Console entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Worker crashed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
