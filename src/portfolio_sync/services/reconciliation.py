"""Reconciliation of broker snapshots into stored holdings, positions, cash and transactions.

Sync passes replace quantities with the freshly aggregated totals; only the
explicit additive path (add_to_holding) increments a quantity. Nothing here
deletes rows: an asset missing from a snapshot keeps its last stored state.
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel

from portfolio_sync.brokers.binance.models import (BinanceAccount,
                                                   BinanceBalance,
                                                   BinanceTrade, asset_name,
                                                   is_stablecoin)
from portfolio_sync.brokers.core.utils import (from_epoch_ms, round_amount,
                                               utcnow)
from portfolio_sync.brokers.ibkr.models import (FlexPosition, FlexReport,
                                                map_asset_category)
from portfolio_sync.db.models import (Broker, Holding, HoldingTransaction,
                                      Position, TransactionKind)
from portfolio_sync.db.store import PortfolioStore, transaction_key

logger = logging.getLogger(__name__)

DUST_THRESHOLD_USD = 1.0
CASH_THRESHOLD = 1.0


@dataclass
class ReconcileResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    transactions_imported: int = 0
    transactions_skipped: int = 0


@dataclass(frozen=True)
class TransactionCandidate:
    """A transaction to insert unless its natural key already exists."""

    kind: TransactionKind
    quantity: float
    price: float
    amount: float
    transaction_date: datetime
    source_note: str | None = None


class ReconciliationEngine:
    """Applies broker snapshots to a PortfolioStore."""

    def __init__(
        self,
        dust_threshold_usd: float = DUST_THRESHOLD_USD,
        cash_threshold: float = CASH_THRESHOLD,
    ) -> None:
        self._dust_threshold_usd = dust_threshold_usd
        self._cash_threshold = cash_threshold

    def apply(self, store: PortfolioStore, user_id: str, snapshot: BaseModel) -> ReconcileResult:
        """Write a snapshot for a user. Dispatches on the snapshot type."""
        now = utcnow()
        if isinstance(snapshot, FlexReport):
            return self.apply_flex_report(store, user_id, snapshot, now)
        if isinstance(snapshot, BinanceAccount):
            return self.apply_binance_account(store, user_id, snapshot, now)
        raise TypeError(f"Unsupported snapshot type: {type(snapshot).__name__}")

    # IBKR

    def apply_flex_report(
        self, store: PortfolioStore, user_id: str, report: FlexReport, now: datetime
    ) -> ReconcileResult:
        result = ReconcileResult()
        for pos in report.positions:
            if pos.quantity == 0:
                result.skipped += 1
                continue
            self._upsert_position(store, user_id, pos, now)
            _, created = self._upsert_holding(
                store,
                user_id,
                Broker.IBKR.value,
                pos.conid,
                symbol=pos.symbol,
                name=pos.description or pos.symbol,
                asset_class=map_asset_category(pos.asset_category),
                quantity=pos.quantity,
                cost_basis=pos.cost_basis_price,
                current_price=pos.mark_price,
                currency=pos.currency or "USD",
                isin=pos.isin,
                exchange=pos.exchange,
                now=now,
            )
            if created:
                result.created += 1
            else:
                result.updated += 1

        for currency, amount in report.cash_balances.items():
            if amount > 0:
                store.upsert_cash_balance(user_id, Broker.IBKR.value, currency, amount, now)
        logger.info(
            "IBKR reconcile for %s: %d created, %d updated, %d skipped",
            user_id, result.created, result.updated, result.skipped,
        )
        return result

    @staticmethod
    def _upsert_position(
        store: PortfolioStore, user_id: str, pos: FlexPosition, now: datetime
    ) -> Position:
        position = store.get_position(user_id, pos.conid)
        if position is None:
            position = Position(
                user_id=user_id,
                external_security_id=pos.conid,
                symbol=pos.symbol,
                quantity=pos.quantity,
                current_price=pos.mark_price,
                cost_basis_price=pos.cost_basis_price,
                market_value=pos.position_value,
                unrealized_pnl=pos.unrealized_pnl,
                asset_category=pos.asset_category,
                currency=pos.currency,
            )
        position.symbol = pos.symbol
        position.isin = pos.isin
        position.description = pos.description
        position.quantity = pos.quantity
        position.current_price = pos.mark_price
        position.cost_basis_price = pos.cost_basis_price
        position.market_value = pos.position_value
        position.unrealized_pnl = pos.unrealized_pnl
        position.unrealized_pnl_percent = pos.unrealized_pnl_percent
        position.asset_category = pos.asset_category
        position.currency = pos.currency
        position.exchange = pos.exchange
        position.last_sync_at = now
        store.add(position)
        return position

    # Binance

    def apply_binance_account(
        self, store: PortfolioStore, user_id: str, account: BinanceAccount, now: datetime
    ) -> ReconcileResult:
        result = ReconcileResult()
        source = Broker.BINANCE.value
        written: dict[str, Holding] = {}
        for balance in account.balances:
            if self._is_dust(balance):
                result.skipped += 1
                continue
            holding, created = self._upsert_holding(
                store,
                user_id,
                source,
                balance.asset,
                symbol=balance.asset,
                name=asset_name(balance.asset),
                asset_class="crypto",
                quantity=balance.total,
                cost_basis=balance.cost_basis,
                current_price=balance.price_usd,
                currency="USD",
                now=now,
            )
            if created:
                result.created += 1
            else:
                result.updated += 1
            written[balance.asset] = holding

        stable_total = sum(
            b.total
            for b in account.balances
            if is_stablecoin(b.asset) and b.total >= self._cash_threshold
        )
        if stable_total > 0:
            store.upsert_cash_balance(user_id, source, "USD", stable_total, now)

        candidates = {
            written[asset].id: [self._trade_candidate(t) for t in trades]
            for asset, trades in account.trades.items()
            if asset in written
        }
        imported, skipped = self.import_transactions(store, user_id, candidates)
        result.transactions_imported += imported
        result.transactions_skipped += skipped
        logger.info(
            "Binance reconcile for %s: %d created, %d updated, %d dust, %d trades imported",
            user_id, result.created, result.updated, result.skipped, imported,
        )
        return result

    def _is_dust(self, balance: BinanceBalance) -> bool:
        return balance.total == 0 or balance.value_usd < self._dust_threshold_usd

    @staticmethod
    def _trade_candidate(trade: BinanceTrade) -> TransactionCandidate:
        amount = trade.quote_qty if trade.quote_qty is not None else trade.qty * trade.price
        return TransactionCandidate(
            kind=TransactionKind.BUY if trade.is_buyer else TransactionKind.SELL,
            quantity=trade.qty,
            price=trade.price,
            amount=amount,
            transaction_date=from_epoch_ms(trade.time),
            source_note=f"binance:{trade.symbol}:{trade.id}",
        )

    # Shared

    @staticmethod
    def _upsert_holding(
        store: PortfolioStore,
        user_id: str,
        source: str,
        external_id: str,
        *,
        symbol: str,
        name: str,
        asset_class: str,
        quantity: float,
        cost_basis: float | None,
        current_price: float | None,
        currency: str,
        now: datetime,
        isin: str | None = None,
        exchange: str | None = None,
    ) -> tuple[Holding, bool]:
        """Insert or update a holding by natural key; the flag is True if it was created.

        The quantity is replaced with the aggregated total of this pass.
        """
        holding = store.get_holding(user_id, source, external_id)
        created = holding is None
        if holding is None:
            holding = Holding(
                user_id=user_id,
                source=source,
                external_id=external_id,
                symbol=symbol,
                name=name,
            )
        holding.symbol = symbol
        holding.name = name
        holding.asset_class = asset_class
        holding.quantity = quantity
        if cost_basis is not None:
            holding.cost_basis = cost_basis
        holding.current_price = current_price
        holding.currency = currency
        holding.isin = isin if isin is not None else holding.isin
        holding.exchange = exchange if exchange is not None else holding.exchange
        holding.last_price_update = now
        holding.updated_at = now
        store.add(holding)
        return holding, created

    @staticmethod
    def add_to_holding(holding: Holding, quantity: float, amount: float) -> Holding:
        """Additive update: add quantity and blend the cost basis with the new amount."""
        old_quantity = holding.quantity
        old_cost = holding.cost_basis or 0.0
        new_quantity = old_quantity + quantity
        holding.quantity = new_quantity
        if new_quantity > 0:
            holding.cost_basis = (old_quantity * old_cost + amount) / new_quantity
        holding.updated_at = utcnow()
        return holding

    @staticmethod
    def import_transactions(
        store: PortfolioStore,
        user_id: str,
        candidates: dict[int, Iterable[TransactionCandidate]],
    ) -> tuple[int, int]:
        """Insert candidate transactions whose natural key is not already stored.

        Existing keys for all affected holdings are fetched in one query, and
        keys inserted during this call are tracked so a repeated candidate in
        the same batch is also skipped.

        Args:
            candidates: Candidate transactions keyed by holding id.

        Returns:
            (imported, duplicates)
        """
        existing = store.existing_transaction_keys(candidates)
        imported = 0
        duplicates = 0
        for holding_id, items in candidates.items():
            for candidate in items:
                key = transaction_key(holding_id, candidate.transaction_date, candidate.amount)
                if key in existing:
                    duplicates += 1
                    continue
                store.add(
                    HoldingTransaction(
                        user_id=user_id,
                        holding_id=holding_id,
                        kind=candidate.kind.value,
                        quantity=candidate.quantity,
                        price=candidate.price,
                        amount=round_amount(candidate.amount),
                        transaction_date=candidate.transaction_date,
                        source_note=candidate.source_note,
                    )
                )
                existing.add(key)
                imported += 1
        return imported, duplicates
