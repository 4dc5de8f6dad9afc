"""Database models for the portfolio synchronization engine.

Identity keys are unique constraints so every upsert by natural key is
commutative across concurrent writers.
"""
from datetime import date, datetime
from enum import Enum

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from portfolio_sync.brokers.core.utils import utcnow


class Broker(str, Enum):
    """Supported external brokers (stored as the holding source)."""

    IBKR = "ibkr"
    BINANCE = "binance"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class TransactionKind(str, Enum):
    BUY = "buy"
    SELL = "sell"


class BrokerCredential(SQLModel, table=True):
    """Encrypted credentials of one user for one broker."""

    __tablename__ = "broker_credential"
    __table_args__ = (UniqueConstraint("user_id", "broker"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    broker: str = Field(index=True)
    secrets: dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_sync_at: datetime | None = None


class Holding(SQLModel, table=True):
    """A position in the unified portfolio, keyed by (user_id, source, external_id)."""

    __table_args__ = (UniqueConstraint("user_id", "source", "external_id"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    source: str  # ibkr | binance | myinvestor | manual
    external_id: str  # conid | asset | isin
    symbol: str
    name: str
    asset_class: str = "other"  # stock | etf | fund | crypto | bond | other
    isin: str | None = None
    exchange: str | None = None
    quantity: float = 0.0
    cost_basis: float | None = None
    current_price: float | None = None
    currency: str = "USD"
    last_price_update: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CashBalance(SQLModel, table=True):
    """Cash per currency held at a source, keyed by (user_id, source, currency)."""

    __tablename__ = "cash_balance"
    __table_args__ = (UniqueConstraint("user_id", "source", "currency"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    source: str
    currency: str
    amount: float
    last_sync_at: datetime = Field(default_factory=utcnow)


class Position(SQLModel, table=True):
    """Brokerage position detail (IBKR), keyed by (user_id, external_security_id)."""

    __table_args__ = (UniqueConstraint("user_id", "external_security_id"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    symbol: str
    external_security_id: str  # IBKR conid
    isin: str | None = None
    description: str = ""
    quantity: float
    current_price: float
    cost_basis_price: float
    market_value: float
    unrealized_pnl: float
    unrealized_pnl_percent: float | None = None
    asset_category: str
    currency: str
    exchange: str = ""
    last_sync_at: datetime = Field(default_factory=utcnow)


class HoldingTransaction(SQLModel, table=True):
    """A buy or sell against a holding; deduplicated by (holding_id, transaction_date, amount)."""

    __tablename__ = "holding_transaction"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    holding_id: int = Field(foreign_key="holding.id", index=True)
    kind: str  # buy | sell
    quantity: float
    price: float
    amount: float
    transaction_date: datetime
    source_note: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class FundPrice(SQLModel, table=True):
    """Daily close of a fund by ISIN, one row per (isin, price_date)."""

    __tablename__ = "fund_price"
    __table_args__ = (UniqueConstraint("isin", "price_date"),)

    id: int | None = Field(default=None, primary_key=True)
    isin: str = Field(index=True)
    price_date: date
    close: float
    ticker: str | None = None  # CODE.EXCHANGE at the price provider
    updated_at: datetime = Field(default_factory=utcnow)


class SyncHistoryEntry(SQLModel, table=True):
    """Append-only audit row for one sync attempt."""

    __tablename__ = "sync_history"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    broker: str = Field(index=True)
    positions_count: int = 0
    total_value: float = 0.0
    total_cost: float = 0.0
    total_pnl: float = 0.0
    cash_by_currency: dict[str, float] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    status: str  # success | error
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
