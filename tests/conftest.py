"""Shared fixtures: in-memory database and a fixed-key vault."""
import base64

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from portfolio_sync.db.sessions import session_factory
from portfolio_sync.security import SecretVault

TEST_KEY = base64.b64encode(bytes(range(32))).decode("ascii")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def get_session(engine):
    return session_factory(engine)


@pytest.fixture
def vault() -> SecretVault:
    return SecretVault.from_base64(TEST_KEY)

