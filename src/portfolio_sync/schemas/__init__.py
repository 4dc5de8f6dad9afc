"""Pydantic schemas for API and runtime use. Not persisted to DB."""
from datetime import date, datetime

from pydantic import BaseModel, Field

from portfolio_sync.db import SyncStatus


class SyncSummary(BaseModel):
    """Result of a successful sync for one user."""

    success: bool = True
    created: int = 0
    updated: int = 0
    total: int = 0
    total_value_usd: float | None = None


class SyncFailure(BaseModel):
    """Body returned when a sync fails."""

    success: bool = False
    error: str


class UserSyncResult(BaseModel):
    """One user's outcome inside a scheduled batch."""

    user_id: str
    status: SyncStatus
    positions: int | None = None
    error: str | None = None


class BatchSyncResult(BaseModel):
    """Outcome of a scheduled run across every configured user of a broker."""

    success: bool = True
    synced: int = 0
    errors: int = 0
    total: int = 0
    results: list[UserSyncResult] = Field(default_factory=list)


class CredentialsIn(BaseModel):
    """Plaintext credential fields for a broker (e.g. token/query_id, api_key/api_secret)."""

    fields: dict[str, str]


class SaveCredentialsResponse(BaseModel):
    success: bool = True
    message: str


class SyncHistoryOut(BaseModel):
    """A sync history entry as exposed to the UI."""

    id: int
    broker: str
    positions_count: int
    total_value: float
    total_cost: float
    total_pnl: float
    cash_by_currency: dict[str, float]
    status: SyncStatus
    error_message: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class StatementMovement(BaseModel):
    """An already-parsed movement from a manual fund statement."""

    isin: str
    movement_date: date = Field(alias="date")
    shares: float
    amount: float
    name: str | None = None
    status: str = "completed"

    model_config = {"populate_by_name": True}


class StatementImportIn(BaseModel):
    """Request body of a statement import."""

    movements: list[StatementMovement] = Field(min_length=1)


class StatementImportResult(BaseModel):
    success: bool = True
    imported: int = 0
    duplicates: int = 0
    errors: int = 0
    new_funds: list[str] = Field(default_factory=list)


class FundPriceRefreshResult(BaseModel):
    """Outcome of one fund price refresh across every holding of a source."""

    success: bool = True
    updated: int = 0
    errors: int = 0
    isins_processed: int = 0


__all__ = [
    "BatchSyncResult",
    "CredentialsIn",
    "FundPriceRefreshResult",
    "SaveCredentialsResponse",
    "StatementImportIn",
    "StatementImportResult",
    "StatementMovement",
    "SyncFailure",
    "SyncHistoryOut",
    "SyncSummary",
    "UserSyncResult",
]
