"""
Payment gateway module.

- client.py - aiohttp client for the x402 merchant API
- models.py - response payloads
"""

from dedata.services.payment_gateway.client import PaymentGateway, PaymentGatewayClient
from dedata.services.payment_gateway.models import (
    CheckInRequestResult,
    PaymentChallenge,
    VerificationResult,
    VerifyOutcome,
)

__all__ = [
    "CheckInRequestResult",
    "PaymentChallenge",
    "PaymentGateway",
    "PaymentGatewayClient",
    "VerificationResult",
    "VerifyOutcome",
]
