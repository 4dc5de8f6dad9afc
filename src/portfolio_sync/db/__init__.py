"""Database package: models, session management and the keyed store."""
from portfolio_sync.db.models import (Broker, BrokerCredential, CashBalance,
                                      FundPrice, Holding, HoldingTransaction,
                                      Position, SyncHistoryEntry, SyncStatus,
                                      TransactionKind)
from portfolio_sync.db.store import PortfolioStore

__all__ = [
    "Broker",
    "BrokerCredential",
    "CashBalance",
    "FundPrice",
    "Holding",
    "HoldingTransaction",
    "PortfolioStore",
    "Position",
    "SyncHistoryEntry",
    "SyncStatus",
    "TransactionKind",
]
