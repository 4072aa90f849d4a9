"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

import re
from decimal import Decimal
from functools import lru_cache

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dedata.config.constants import DEFAULT_PAYMENT_WINDOW_MINUTES

PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False
    database_pool_size: int = Field(default=5, ge=1, le=100)

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = "logs/settlement.log"
    health_check_host: str = "0.0.0.0"
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Health check HTTP server port"
    )

    # Blockchain
    rpc_url: str
    chain_id: int = Field(default=137, gt=0, description="EIP-155 chain id (Polygon=137)")
    issuer_private_key: str | None = None
    reward_token_address: str
    gas_limit: int = Field(
        default=100_000, gt=21_000, description="Fallback gas limit when estimation fails"
    )
    max_gas_price_gwei: int = Field(
        default=50, gt=0, description="Cap for the legacy gas price (Gwei)"
    )
    priority_fee_gwei: int = Field(
        default=35, ge=0, description="EIP-1559 priority fee (Gwei)"
    )

    # Confirmation polling (legacy fee path)
    confirmation_poll_interval: float = Field(default=3.0, gt=0)
    confirmation_timeout: float = Field(default=120.0, gt=0)
    confirmation_nonce_check_every: int = Field(
        default=10, ge=1, description="Cross-check presence and nonce every Nth poll"
    )

    # Ambiguous status re-checks (found, not pending, no receipt)
    ambiguous_recheck_attempts: int = Field(default=3, ge=0)
    ambiguous_recheck_delay: float = Field(default=2.0, ge=0)

    # Payment gateway
    gateway_base_url: str
    gateway_api_token: str
    gateway_merchant_id: str
    gateway_timeout: int = Field(default=30, gt=0, description="HTTP timeout in seconds")

    # Check-in
    checkin_reward_amount: Decimal = Field(default=Decimal("10"), gt=0)
    checkin_max_retry_count: int = Field(default=3, ge=1)
    payment_window_minutes: int = Field(default=DEFAULT_PAYMENT_WINDOW_MINUTES, gt=0)

    # Settlement worker
    worker_interval_seconds: float = Field(default=30.0, gt=0)
    worker_shutdown_grace_seconds: float = Field(default=10.0, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("reward_token_address")
    @classmethod
    def validate_eth_address(cls, v: str) -> str:
        """Validate contract address format."""
        if not v.startswith("0x") or len(v) != 42:
            raise ValueError(f"Invalid address format: {v}")
        return v

    @field_validator("issuer_private_key")
    @classmethod
    def validate_private_key(cls, v: str | None) -> str | None:
        """Validate private key format (32 bytes hex)."""
        if v is None or v == "":
            return None
        if not PRIVATE_KEY_PATTERN.match(v):
            raise ValueError("ISSUER_PRIVATE_KEY must be 32 bytes of hex")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Require an async driver."""
        if not (v.startswith("postgresql+asyncpg://") or v.startswith("sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must use an async driver "
                "(postgresql+asyncpg:// or sqlite+aiosqlite://)"
            )
        return v

    @field_validator("gateway_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize gateway base URL."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Validate production-specific requirements."""
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "DEBUG must be False in production environment. "
                    "Set DEBUG=false in your .env file."
                )
            if not self.issuer_private_key:
                raise ValueError(
                    "ISSUER_PRIVATE_KEY is required in production. "
                    "Set the reward issuer key in .env file."
                )
            if self.rpc_url.startswith("http://"):
                logger.warning("RPC_URL is not using TLS in production")
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Load settings once per process.

    Returns:
        Settings instance
    """
    return Settings()
