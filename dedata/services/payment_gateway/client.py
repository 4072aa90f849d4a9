"""
Payment gateway client.

Stateless wrapper over the x402 merchant API. No retries or backoff here;
callers respect the documented verify rate limits.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp
from loguru import logger
from pydantic import ValidationError

from dedata.config.constants import (
    GATEWAY_CHECKIN_PATH,
    GATEWAY_NETWORKS_PATH,
    GATEWAY_PAYMENT_PATH,
    GATEWAY_SETTLE_PATH,
    GATEWAY_VERIFY_PATH,
)
from dedata.services.payment_gateway.models import (
    MESSAGE_RATE_LIMIT_EXCEEDED,
    CheckInRequestResult,
    GatewayResponse,
    PaymentChallenge,
    VerificationResult,
)
from dedata.utils.datetime_utils import utc_now
from dedata.utils.exceptions import GatewayError, RateLimitedError

if TYPE_CHECKING:
    from dedata.config.settings import Settings

HTTP_OK = 200
HTTP_PAYMENT_REQUIRED = 402
HTTP_TOO_MANY_REQUESTS = 429


class PaymentGateway(Protocol):
    """Payment gateway operations used by the check-in service."""

    async def request_check_in(
        self, user_id: str, checkin_date: date | None = None
    ) -> CheckInRequestResult: ...

    async def verify_payment(self, order_id: str, user_id: str) -> VerificationResult: ...

    async def settle(self, order_id: str) -> None: ...

    async def close(self) -> None: ...


class PaymentGatewayClient:
    """
    HTTP client for the x402 merchant API.

    Features:
    - Daily check-in request with payment challenge
    - Payment verification and settlement
    - Standalone challenge creation and network listing
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        merchant_id: str,
        timeout: int = 30,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        Initialize gateway client.

        Args:
            base_url: Gateway base URL
            api_token: Merchant API token
            merchant_id: Merchant identifier
            timeout: Request timeout in seconds
            session: Shared aiohttp session (created lazily if None)
        """
        self.base_url = base_url.rstrip("/")
        self.merchant_id = merchant_id
        self._api_token = api_token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PaymentGatewayClient":
        """Build client from application settings."""
        return cls(
            base_url=settings.gateway_base_url,
            api_token=settings.gateway_api_token,
            merchant_id=settings.gateway_merchant_id,
            timeout=settings.gateway_timeout,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Token": self._api_token,
            "X-Merchant-ID": self.merchant_id,
        }

    async def _post(self, path: str, payload: dict[str, Any]) -> tuple[int, str]:
        """POST JSON, return (status, body text)."""
        url = f"{self.base_url}{path}"
        logger.debug(f"Gateway POST {path}")

        session = await self._get_session()
        try:
            async with session.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                return response.status, await response.text()
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error(f"Gateway request {path} failed: {e}")
            raise GatewayError(f"Gateway request failed: {e}") from e

    @staticmethod
    def _parse(body: str, status: int) -> GatewayResponse:
        try:
            return GatewayResponse.model_validate_json(body)
        except ValidationError as e:
            raise GatewayError(f"Malformed gateway response: {body[:200]}", status) from e

    @staticmethod
    def _challenge(response: GatewayResponse, status: int) -> PaymentChallenge:
        data = response.data or {}
        try:
            return PaymentChallenge.model_validate(data.get("l402_challenge"))
        except ValidationError as e:
            raise GatewayError("Payment challenge missing or malformed", status) from e

    async def request_check_in(
        self, user_id: str, checkin_date: date | None = None
    ) -> CheckInRequestResult:
        """
        Ask the gateway for today's check-in.

        Args:
            user_id: Merchant user id
            checkin_date: Check-in day (today in UTC by default)

        Returns:
            CheckInRequestResult: already done, or a payment challenge

        Raises:
            GatewayError: Transport failure or unexpected answer
        """
        checkin_date = checkin_date or utc_now().date()
        status, body = await self._post(
            GATEWAY_CHECKIN_PATH,
            {
                "merchant_id": self.merchant_id,
                "merchant_user_id": user_id,
                "checkin_date": checkin_date.isoformat(),
            },
        )

        if status == HTTP_OK:
            logger.info(f"Gateway reports user {user_id} already checked in on {checkin_date}")
            return CheckInRequestResult(already_done=True)

        if status == HTTP_PAYMENT_REQUIRED:
            challenge = self._challenge(self._parse(body, status), status)
            logger.info(
                f"Payment challenge for user {user_id}: order {challenge.order_id}, "
                f"{challenge.price_amount} {challenge.token_symbol} on {challenge.blockchain_name}"
            )
            return CheckInRequestResult(already_done=False, challenge=challenge)

        logger.error(f"Unexpected daily-checkin status {status}: {body[:200]}")
        raise GatewayError(f"Unexpected response from gateway: status {status}", status)

    async def create_payment_challenge(
        self,
        user_id: str,
        price_amount: Decimal | str,
        blockchain_type: int,
        token_symbol: str,
    ) -> PaymentChallenge:
        """
        Create a payment challenge outside the daily check-in flow.

        Args:
            user_id: Merchant user id
            price_amount: Price
            blockchain_type: Gateway network id
            token_symbol: Payment token

        Returns:
            PaymentChallenge

        Raises:
            GatewayError: Anything but a 402 challenge
        """
        status, body = await self._post(
            GATEWAY_PAYMENT_PATH,
            {
                "merchant_id": self.merchant_id,
                "merchant_user_id": user_id,
                "price_amount": str(price_amount),
                "blockchain_type": blockchain_type,
                "token_symbol": token_symbol,
            },
        )

        if status != HTTP_PAYMENT_REQUIRED:
            logger.error(f"Unexpected payment status {status}: {body[:200]}")
            raise GatewayError(f"Unexpected status code: {status}", status)

        challenge = self._challenge(self._parse(body, status), status)
        logger.info(f"Payment challenge created: order {challenge.order_id}")
        return challenge

    async def verify_payment(self, order_id: str, user_id: str) -> VerificationResult:
        """
        Ask whether an order has been paid.

        Args:
            order_id: Gateway order id
            user_id: Merchant user id

        Returns:
            VerificationResult

        Raises:
            RateLimitedError: Verify rate limit exceeded
            GatewayError: Transport failure or malformed answer
        """
        status, body = await self._post(
            GATEWAY_VERIFY_PATH,
            {
                "order_id": order_id,
                "merchant_id": self.merchant_id,
                "merchant_user_id": user_id,
            },
        )

        if status == HTTP_TOO_MANY_REQUESTS:
            logger.warning(f"Verify rate limit exceeded for order {order_id}")
            raise RateLimitedError(
                f"{MESSAGE_RATE_LIMIT_EXCEEDED}: please wait 30 seconds before retrying",
                status,
            )

        response = self._parse(body, status)
        result = VerificationResult(success=response.success, message=response.message)
        logger.info(
            f"Payment verification for order {order_id}: "
            f"success={result.success}, message={result.message!r}, status={status}"
        )
        return result

    async def settle(self, order_id: str) -> None:
        """
        Settle a verified order. Safe to repeat.

        Args:
            order_id: Gateway order id

        Raises:
            GatewayError: Settlement refused or failed
        """
        status, body = await self._post(GATEWAY_SETTLE_PATH, {"order_id": order_id})
        response = self._parse(body, status)

        if not response.success:
            logger.error(f"Payment settlement failed for order {order_id}: {response.message}")
            raise GatewayError(f"Settle failed: {response.message}", status)

        logger.info(f"Payment settled for order {order_id}")

    async def get_networks(self) -> Any:
        """
        List supported payment networks (public endpoint).

        Returns:
            Decoded JSON body

        Raises:
            GatewayError: Non-200 answer or transport failure
        """
        session = await self._get_session()
        try:
            async with session.get(
                f"{self.base_url}{GATEWAY_NETWORKS_PATH}", timeout=self._timeout
            ) as response:
                if response.status != HTTP_OK:
                    body = await response.text()
                    logger.error(f"Failed to get networks: {response.status} {body[:200]}")
                    raise GatewayError(f"Unexpected status code: {response.status}", response.status)
                return await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            logger.error(f"Gateway networks request failed: {e}")
            raise GatewayError(f"Gateway request failed: {e}") from e

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("Payment gateway session closed")
