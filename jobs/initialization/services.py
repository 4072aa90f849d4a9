"""
Worker Initialization - Services Module.

Module: services.py
Builds every component from settings and wires them together.
Validates environment variables.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from dedata.config.database import create_engine, create_session_maker
from dedata.config.settings import Settings
from dedata.repositories.ledger import sql_ledger_scope
from dedata.services.blockchain import ChainClient, Web3ChainClient
from dedata.services.blockchain.token_issuer import TokenIssuer
from dedata.services.checkin.service import CheckInService
from dedata.services.payment_gateway import PaymentGatewayClient
from dedata.services.settlement_worker import SettlementProcessor, SettlementWorker
from dedata.utils.exceptions import ChainMismatchError


@dataclass
class Services:
    """Components owned by the composition root."""

    engine: AsyncEngine
    chain: Web3ChainClient
    gateway: PaymentGatewayClient
    issuer: TokenIssuer
    checkin_service: CheckInService
    worker: SettlementWorker


def validate_environment(settings: Settings) -> None:
    """Log configuration problems that do not prevent startup."""
    if not settings.issuer_private_key:
        logger.warning(
            "ISSUER_PRIVATE_KEY is not configured. "
            "Worker will start, but every issuance attempt will fail and be retried."
        )
    if not settings.gateway_api_token or "your_" in settings.gateway_api_token.lower():
        logger.error("GATEWAY_API_TOKEN is not properly configured")


async def verify_chain_id(chain: ChainClient, expected: int) -> None:
    """
    Check that the RPC node serves the configured chain.

    Raises:
        ChainMismatchError: Node reports another chain id
        ChainClientError: Chain id lookup failed
    """
    actual = await chain.chain_id()
    if actual != expected:
        raise ChainMismatchError(f"RPC node reports chain id {actual}, CHAIN_ID is {expected}")
    logger.info(f"Connected to chain {actual}")


def initialize_all_services(settings: Settings) -> Services:
    """
    Build engine, clients, issuer, check-in service and worker.

    Args:
        settings: Application settings

    Returns:
        Services container
    """
    validate_environment(settings)

    engine = create_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
    )
    ledger_scope = sql_ledger_scope(create_session_maker(engine))
    logger.info("Database engine initialized")

    chain = Web3ChainClient(settings.rpc_url, settings.reward_token_address)
    issuer = TokenIssuer.from_settings(chain, settings)
    gateway = PaymentGatewayClient.from_settings(settings)

    checkin_service = CheckInService(
        ledger_scope,
        gateway,
        payment_window_minutes=settings.payment_window_minutes,
    )

    processor = SettlementProcessor(
        ledger_scope,
        issuer,
        reward_amount=settings.checkin_reward_amount,
        max_retry_count=settings.checkin_max_retry_count,
    )
    worker = SettlementWorker(
        processor,
        interval=settings.worker_interval_seconds,
        shutdown_grace=settings.worker_shutdown_grace_seconds,
    )
    logger.info("All services initialized")

    return Services(
        engine=engine,
        chain=chain,
        gateway=gateway,
        issuer=issuer,
        checkin_service=checkin_service,
        worker=worker,
    )
