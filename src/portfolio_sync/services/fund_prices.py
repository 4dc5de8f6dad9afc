"""Daily fund price refresh for holdings identified by ISIN (e.g. MyInvestor funds).

Holdings of every user are grouped by ISIN so each fund costs one search and
one end-of-day call. A failure for one ISIN is counted and the run moves on.
"""
import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from portfolio_sync.brokers.core import ConfigurationError, SyncError
from portfolio_sync.brokers.core.utils import utcnow
from portfolio_sync.db import PortfolioStore
from portfolio_sync.db.sessions import SessionFactory
from portfolio_sync.pricing import EodhdClient
from portfolio_sync.schemas import FundPriceRefreshResult

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "myinvestor"
REQUEST_DELAY_SECONDS = 0.2


class FundPriceService:
    """Prices ISIN holdings of a source with the latest EODHD daily close."""

    def __init__(
        self,
        session_factory: SessionFactory,
        client: EodhdClient,
        *,
        request_delay: float = REQUEST_DELAY_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._client = client
        self._request_delay = request_delay

    @property
    def enabled(self) -> bool:
        return self._client.configured

    async def refresh_prices(self, source: str = DEFAULT_SOURCE) -> FundPriceRefreshResult:
        """Fetch one price per ISIN and write it to every holding of that ISIN.

        Raises:
            ConfigurationError: No EODHD API token is configured.
        """
        if not self.enabled:
            raise ConfigurationError("EODHD_API_TOKEN not configured")

        with self._session_factory() as session:
            isins = list(
                dict.fromkeys(h.isin for h in PortfolioStore(session).list_isin_holdings(source))
            )

        result = FundPriceRefreshResult()
        if not isins:
            logger.info("No %s holdings with an ISIN, nothing to price", source)
            return result
        logger.info("Refreshing %s fund prices: %d ISINs", source, len(isins))

        for index, isin in enumerate(isins):
            if index > 0 and self._request_delay > 0:
                await asyncio.sleep(self._request_delay)
            result.isins_processed += 1
            try:
                quote = await self._client.latest_price(isin)
            except SyncError as exc:
                logger.error("Could not price %s: %s", isin, exc)
                result.errors += 1
                continue
            if quote is None:
                result.errors += 1
                continue

            try:
                with self._session_factory() as session:
                    store = PortfolioStore(session)
                    store.upsert_fund_price(isin, quote.price_date, quote.close, quote.ticker)
                    now = utcnow()
                    holdings = store.list_isin_holdings(source, isin)
                    for holding in holdings:
                        holding.current_price = quote.close
                        holding.last_price_update = now
                        holding.updated_at = now
                        store.add(holding)
            except SQLAlchemyError as exc:
                logger.error("Could not store the price of %s: %s", isin, exc)
                result.errors += 1
                continue
            result.updated += len(holdings)
            logger.info("%s: %.4f (%s, %s)", isin, quote.close, quote.ticker, quote.price_date)

        logger.info(
            "%s fund prices: %d holdings updated, %d errors, %d ISINs",
            source, result.updated, result.errors, result.isins_processed,
        )
        return result
