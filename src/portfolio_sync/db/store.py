"""Natural-key access to the sync tables over a SQLModel session.

The store is the only place that builds queries; the reconciliation engine
decides what to write and the store provides lookups and inserts.
"""
from collections.abc import Iterable
from datetime import date, datetime

from sqlmodel import Session, col, select

from portfolio_sync.brokers.core.utils import round_amount, utcnow
from portfolio_sync.db.models import (BrokerCredential, CashBalance,
                                      FundPrice, Holding, HoldingTransaction,
                                      Position, SyncHistoryEntry)

TransactionKey = tuple[int, datetime, float]


def transaction_key(holding_id: int, transaction_date: datetime, amount: float) -> TransactionKey:
    """Natural dedupe key of a holding transaction."""
    return (holding_id, transaction_date, round_amount(amount))


class PortfolioStore:
    """Keyed store for credentials, holdings, positions, cash, transactions and history."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # Credentials

    def get_credential(self, user_id: str, broker: str) -> BrokerCredential | None:
        return self.session.exec(
            select(BrokerCredential).where(
                BrokerCredential.user_id == user_id,
                BrokerCredential.broker == broker,
            )
        ).first()

    def list_credentials(self, broker: str) -> list[BrokerCredential]:
        """All users' credentials for a broker (service-level access for scheduled runs)."""
        return list(
            self.session.exec(
                select(BrokerCredential)
                .where(BrokerCredential.broker == broker)
                .order_by(BrokerCredential.id)
            )
        )

    def save_credential(self, user_id: str, broker: str, secrets: dict[str, str]) -> BrokerCredential:
        """Upsert the encrypted secrets of a user for a broker."""
        credential = self.get_credential(user_id, broker)
        if credential is None:
            credential = BrokerCredential(user_id=user_id, broker=broker, secrets=secrets)
        else:
            credential.secrets = dict(secrets)
            credential.updated_at = utcnow()
        self.session.add(credential)
        self.session.flush()
        return credential

    def mark_synced(self, user_id: str, broker: str, when: datetime) -> None:
        credential = self.get_credential(user_id, broker)
        if credential is not None:
            credential.last_sync_at = when
            self.session.add(credential)

    # Holdings, positions and cash

    def get_holding(self, user_id: str, source: str, external_id: str) -> Holding | None:
        return self.session.exec(
            select(Holding).where(
                Holding.user_id == user_id,
                Holding.source == source,
                Holding.external_id == external_id,
            )
        ).first()

    def list_holdings(self, user_id: str, source: str | None = None) -> list[Holding]:
        query = select(Holding).where(Holding.user_id == user_id)
        if source is not None:
            query = query.where(Holding.source == source)
        return list(self.session.exec(query.order_by(Holding.id)))

    def list_isin_holdings(self, source: str, isin: str | None = None) -> list[Holding]:
        """Holdings of every user at a source that carry an ISIN, optionally one ISIN only."""
        query = select(Holding).where(Holding.source == source, col(Holding.isin).is_not(None))
        if isin is not None:
            query = query.where(Holding.isin == isin)
        return list(self.session.exec(query.order_by(Holding.id)))

    def get_position(self, user_id: str, external_security_id: str) -> Position | None:
        return self.session.exec(
            select(Position).where(
                Position.user_id == user_id,
                Position.external_security_id == external_security_id,
            )
        ).first()

    def list_positions(self, user_id: str) -> list[Position]:
        return list(
            self.session.exec(
                select(Position).where(Position.user_id == user_id).order_by(Position.id)
            )
        )

    def get_cash_balance(self, user_id: str, source: str, currency: str) -> CashBalance | None:
        return self.session.exec(
            select(CashBalance).where(
                CashBalance.user_id == user_id,
                CashBalance.source == source,
                CashBalance.currency == currency,
            )
        ).first()

    def upsert_cash_balance(
        self, user_id: str, source: str, currency: str, amount: float, when: datetime
    ) -> CashBalance:
        cash = self.get_cash_balance(user_id, source, currency)
        if cash is None:
            cash = CashBalance(user_id=user_id, source=source, currency=currency, amount=amount)
        cash.amount = amount
        cash.last_sync_at = when
        self.session.add(cash)
        return cash

    def add(self, row: Holding | Position | HoldingTransaction) -> None:
        """Stage a row and flush so generated ids are available."""
        self.session.add(row)
        self.session.flush()

    # Transactions

    def existing_transaction_keys(self, holding_ids: Iterable[int]) -> set[TransactionKey]:
        """Dedupe keys of every stored transaction of the given holdings, in one query."""
        ids = list(holding_ids)
        if not ids:
            return set()
        rows = self.session.exec(
            select(
                HoldingTransaction.holding_id,
                HoldingTransaction.transaction_date,
                HoldingTransaction.amount,
            ).where(col(HoldingTransaction.holding_id).in_(ids))
        )
        return {transaction_key(h, d, a) for h, d, a in rows}

    def list_transactions(self, holding_id: int) -> list[HoldingTransaction]:
        return list(
            self.session.exec(
                select(HoldingTransaction)
                .where(HoldingTransaction.holding_id == holding_id)
                .order_by(HoldingTransaction.transaction_date)
            )
        )

    # Fund prices

    def upsert_fund_price(
        self, isin: str, price_date: date, close: float, ticker: str | None = None
    ) -> FundPrice:
        price = self.session.exec(
            select(FundPrice).where(FundPrice.isin == isin, FundPrice.price_date == price_date)
        ).first()
        if price is None:
            price = FundPrice(isin=isin, price_date=price_date, close=close)
        price.close = close
        price.ticker = ticker
        price.updated_at = utcnow()
        self.session.add(price)
        return price

    def list_fund_prices(self, isin: str) -> list[FundPrice]:
        return list(
            self.session.exec(
                select(FundPrice).where(FundPrice.isin == isin).order_by(FundPrice.price_date)
            )
        )

    # History

    def append_history(self, entry: SyncHistoryEntry) -> SyncHistoryEntry:
        self.session.add(entry)
        return entry

    def list_history(
        self, broker: str, user_id: str | None = None, limit: int = 50
    ) -> list[SyncHistoryEntry]:
        query = select(SyncHistoryEntry).where(SyncHistoryEntry.broker == broker)
        if user_id is not None:
            query = query.where(SyncHistoryEntry.user_id == user_id)
        query = query.order_by(col(SyncHistoryEntry.id).desc()).limit(limit)
        return list(self.session.exec(query))

    def has_history(self, broker: str, user_id: str) -> bool:
        return bool(self.list_history(broker, user_id, limit=1))
