"""Fixtures for tests that run against a real SQLite database."""

from decimal import Decimal

import pytest_asyncio

from dedata.config.database import create_engine, create_session_maker
from dedata.models import Base, User
from tests.fakes import USER_WALLET


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh SQLite file with the schema created."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = create_session_maker(engine)
    async with factory() as session:
        session.add(User(id="user-1", wallet_address=USER_WALLET, total_rewards=Decimal("0")))
        await session.commit()

    yield factory
    await engine.dispose()
