"""Import of already-parsed fund statement movements (e.g. MyInvestor exports).

Each completed movement is a buy of fund shares. Movements whose transaction
already exists are counted as duplicates and do not touch the holding again,
so importing the same statement twice leaves quantities unchanged. Funds seen
for the first time take their name and asset class from an ISIN lookup when
one is configured.
"""
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, time

from portfolio_sync.brokers.core import SyncError
from portfolio_sync.db import Holding, HoldingTransaction, PortfolioStore, TransactionKind
from portfolio_sync.db.sessions import SessionFactory
from portfolio_sync.db.store import transaction_key
from portfolio_sync.pricing import EodhdClient, EodhdSearchResult
from portfolio_sync.schemas import StatementImportResult, StatementMovement
from portfolio_sync.services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = frozenset({"completed", "finalizada"})
FUND_CURRENCY = "EUR"


def is_completed(movement: StatementMovement) -> bool:
    return movement.status.strip().lower() in COMPLETED_STATUSES


class StatementImportService:
    """Creates or tops up fund holdings from statement movements."""

    def __init__(
        self, session_factory: SessionFactory, fund_lookup: EodhdClient | None = None
    ) -> None:
        self._session_factory = session_factory
        self._fund_lookup = fund_lookup

    async def import_movements(
        self, user_id: str, source: str, movements: Iterable[StatementMovement]
    ) -> StatementImportResult:
        """Import movements for a user under the given holding source.

        Args:
            user_id: Owner of the holdings.
            source: Holding source the funds belong to (e.g. "myinvestor").
            movements: Parsed movements; only completed ones are imported.

        Returns:
            Counts of imported and duplicate transactions, invalid movements,
            and the ISINs of holdings created by this import.
        """
        result = StatementImportResult()
        by_isin: dict[str, list[StatementMovement]] = defaultdict(list)
        for movement in movements:
            if not is_completed(movement):
                continue
            if movement.shares <= 0 or not movement.isin.strip():
                result.errors += 1
                continue
            by_isin[movement.isin.strip().upper()].append(movement)

        fund_info = await self._lookup_new_funds(user_id, source, by_isin)

        with self._session_factory() as session:
            store = PortfolioStore(session)
            holdings: dict[str, Holding] = {}
            for isin, group in by_isin.items():
                holding = store.get_holding(user_id, source, isin)
                if holding is None:
                    info = fund_info.get(isin)
                    holding = Holding(
                        user_id=user_id,
                        source=source,
                        external_id=isin,
                        isin=isin,
                        symbol=isin,
                        name=(info.name if info else None)
                        or next((m.name for m in group if m.name), None)
                        or f"Fund {isin}",
                        asset_class=info.asset_class if info else "fund",
                        currency=FUND_CURRENCY,
                    )
                    store.add(holding)
                    result.new_funds.append(isin)
                holdings[isin] = holding

            existing = store.existing_transaction_keys(h.id for h in holdings.values())
            for isin, group in by_isin.items():
                holding = holdings[isin]
                for movement in group:
                    when = datetime.combine(movement.movement_date, time.min)
                    key = transaction_key(holding.id, when, movement.amount)
                    if key in existing:
                        result.duplicates += 1
                        continue
                    ReconciliationEngine.add_to_holding(holding, movement.shares, movement.amount)
                    store.add(
                        HoldingTransaction(
                            user_id=user_id,
                            holding_id=holding.id,
                            kind=TransactionKind.BUY.value,
                            quantity=movement.shares,
                            price=movement.amount / movement.shares,
                            amount=key[2],
                            transaction_date=when,
                            source_note=f"{source}:{movement.shares} shares",
                        )
                    )
                    existing.add(key)
                    result.imported += 1
                store.add(holding)

        logger.info(
            "%s import for user %s: %d imported, %d duplicates, %d errors, %d new funds",
            source, user_id, result.imported, result.duplicates, result.errors,
            len(result.new_funds),
        )
        return result

    async def _lookup_new_funds(
        self, user_id: str, source: str, isins: Iterable[str]
    ) -> dict[str, EodhdSearchResult]:
        """Instrument info for ISINs the user does not hold yet; lookup failures are skipped."""
        if self._fund_lookup is None or not self._fund_lookup.configured:
            return {}
        with self._session_factory() as session:
            store = PortfolioStore(session)
            new_isins = [isin for isin in isins if store.get_holding(user_id, source, isin) is None]

        found: dict[str, EodhdSearchResult] = {}
        for isin in new_isins:
            try:
                info = await self._fund_lookup.search(isin)
            except SyncError as exc:
                logger.warning("Fund lookup failed for %s: %s", isin, exc)
                continue
            if info is not None:
                found[isin] = info
        return found
