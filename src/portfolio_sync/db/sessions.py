"""Database engine and session management."""
from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from portfolio_sync.db.models import (  # noqa: F401  # pylint: disable=unused-import
    BrokerCredential, CashBalance, Holding, HoldingTransaction, Position,
    SyncHistoryEntry)

SessionFactory = Callable[[], AbstractContextManager[Session]]


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite URLs get the thread flag FastAPI needs."""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def session_factory(engine: Engine) -> SessionFactory:
    """Return a get_session() bound to the given engine."""

    @contextmanager
    def get_session() -> Generator[Session, None, None]:
        """Yield a database session; commits on success, rolls back on error."""
        session = Session(engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return get_session


def init_db(engine: Engine) -> None:
    """Create all tables. Safe to call on startup (idempotent for existing tables)."""
    SQLModel.metadata.create_all(engine)
