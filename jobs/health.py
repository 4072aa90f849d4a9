"""
Health check server for the settlement worker.

Provides HTTP endpoint for health checks and monitoring.
"""

import asyncio

from aiohttp import web
from loguru import logger

from dedata.services.settlement_worker import SettlementWorker

WORKER_KEY = web.AppKey("worker", SettlementWorker)


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with worker status
    """
    worker = request.app.get(WORKER_KEY)
    if worker is None:
        return web.json_response(
            {
                "status": "unhealthy",
                "error": "Worker not initialized",
            },
            status=503,
        )

    status = worker.status()
    healthy = status["running"] and status["last_error"] is None
    return web.json_response(
        {
            "status": "healthy" if healthy else "degraded" if status["running"] else "stopped",
            "worker": status,
        },
        status=200 if status["running"] else 503,
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """
    Readiness check endpoint.

    Ready once the worker has completed its first pass.
    """
    worker = request.app.get(WORKER_KEY)
    if worker is None or not worker.running or worker.last_run_at is None:
        return web.json_response(
            {
                "status": "not_ready",
                "ready": False,
            },
            status=503,
        )

    return web.json_response(
        {
            "status": "ready",
            "ready": True,
        }
    )


async def liveness_handler(request: web.Request) -> web.Response:
    """Liveness check endpoint."""
    return web.json_response(
        {
            "status": "alive",
            "alive": True,
        }
    )


def create_health_app(worker: SettlementWorker) -> web.Application:
    """
    Build the health check application.

    Args:
        worker: Worker to report on

    Returns:
        aiohttp Application
    """
    app = web.Application()
    app[WORKER_KEY] = worker
    app.router.add_get("/health", health_handler)
    app.router.add_get("/ready", readiness_handler)
    app.router.add_get("/live", liveness_handler)
    return app


async def start_health_server(
    worker: SettlementWorker,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start health check server.

    Args:
        worker: Worker to report on
        host: Host to bind to
        port: Port to bind to

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(create_health_app(worker))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    logger.info(f"  - Health: http://{host}:{port}/health")
    logger.info(f"  - Readiness: http://{host}:{port}/ready")
    logger.info(f"  - Liveness: http://{host}:{port}/live")

    return runner


async def stop_health_server(
    runner: web.AppRunner,
    timeout: int = 5,
) -> None:
    """
    Stop health check server gracefully.

    Args:
        runner: AppRunner to cleanup
        timeout: Maximum time to wait for cleanup in seconds
    """
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped successfully")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
