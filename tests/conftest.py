"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Установить минимальные переменные окружения для тестов
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RPC_URL", "https://polygon-rpc.com")
os.environ.setdefault("REWARD_TOKEN_ADDRESS", "0xc2132D05D31c914a87C6611C10748AEb04B58e8F")
os.environ.setdefault("GATEWAY_BASE_URL", "https://gateway.test")
os.environ.setdefault("GATEWAY_API_TOKEN", "test_api_token")
os.environ.setdefault("GATEWAY_MERCHANT_ID", "merchant-1")

# Добавить корень проекта в PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from tests.fakes import (  # noqa: E402
    FakeChainClient,
    FakeGateway,
    FakeIssuer,
    InMemoryCheckInLedger,
    InMemoryUserStore,
    USER_WALLET,
    make_scope_factory,
)


@pytest.fixture
def sample_wallet_address():
    """Valid wallet address (lowercase hex)."""
    return USER_WALLET


@pytest.fixture
def ledger():
    """Empty in-memory check-in ledger."""
    return InMemoryCheckInLedger()


@pytest.fixture
def users():
    """User store with one account bound to a wallet."""
    store = InMemoryUserStore()
    store.add("user-1", USER_WALLET)
    return store


@pytest.fixture
def scope_factory(ledger, users):
    """Ledger scope factory over the in-memory stores."""
    return make_scope_factory(ledger, users)


@pytest.fixture
def gateway():
    """Scriptable payment gateway."""
    return FakeGateway()


@pytest.fixture
def fake_issuer():
    """Scriptable token issuer."""
    return FakeIssuer()


@pytest.fixture
def chain():
    """In-memory chain with a funded issuer wallet."""
    return FakeChainClient()


@pytest.fixture
def reward_amount():
    """Configured reward per check-in."""
    return Decimal("10")
