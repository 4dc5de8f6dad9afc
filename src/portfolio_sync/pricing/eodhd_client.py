"""EODHD client: instrument search by ISIN and latest end-of-day close."""
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from portfolio_sync.brokers.core import (AuthenticationError,
                                         ConfigurationError, ProtocolError,
                                         RateLimitedError)
from portfolio_sync.pricing.models import EodBar, EodhdSearchResult, FundQuote

logger = logging.getLogger(__name__)


class EodhdClient:
    """Resolves funds by ISIN and prices them with the most recent daily close.

    The API token travels as the ``api_token`` query parameter; it never
    appears in raised messages or logs, which only name the endpoint path.
    """

    BASE_URL = "https://eodhd.com/api"
    SEARCH_PATH = "/search/{query}"
    EOD_PATH = "/eod/{ticker}"

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str = BASE_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the EODHD client.

        Args:
            api_token: EODHD API token; without one the client is not configured.
            base_url: API root, e.g. https://eodhd.com/api.
            client: Optional preconfigured httpx client (tests inject a mock transport).
        """
        self._api_token = api_token
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Accept": "application/json"},
            timeout=30.0,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_token)

    async def search(self, isin: str) -> EodhdSearchResult | None:
        """Instrument matching the ISIN, else the first search hit; None when nothing matches."""
        rows = await self._get(self.SEARCH_PATH.format(query=isin))
        if not isinstance(rows, list) or not rows:
            return None
        try:
            results = [EodhdSearchResult.model_validate(row) for row in rows]
        except ValidationError as exc:
            raise ProtocolError(
                f"EODHD API error (search): unexpected payload for {isin}", endpoint="search"
            ) from exc
        return next((r for r in results if (r.isin or "").upper() == isin.upper()), results[0])

    async def eod_close(self, code: str, exchange: str) -> EodBar | None:
        """Most recent daily bar of CODE.EXCHANGE, or None if the provider has none."""
        rows = await self._get(
            self.EOD_PATH.format(ticker=f"{code}.{exchange}"),
            {"period": "d", "order": "d", "limit": 1},
        )
        if not isinstance(rows, list) or not rows:
            return None
        try:
            return EodBar.model_validate(rows[0])
        except ValidationError as exc:
            raise ProtocolError(
                f"EODHD API error (eod): no valid close for {code}.{exchange}", endpoint="eod"
            ) from exc

    async def latest_price(self, isin: str) -> FundQuote | None:
        """Search the ISIN, then fetch the latest close of the instrument found."""
        match = await self.search(isin)
        if match is None:
            logger.warning("No EODHD instrument found for ISIN %s", isin)
            return None
        bar = await self.eod_close(match.code, match.exchange)
        if bar is None:
            logger.warning("No EODHD close for %s (%s)", isin, match.ticker)
            return None
        return FundQuote(isin=isin, ticker=match.ticker, price_date=bar.bar_date, close=bar.close)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if not self._api_token:
            raise ConfigurationError("EODHD_API_TOKEN not configured")
        endpoint = path.split("/")[1]
        query = {"api_token": self._api_token, "fmt": "json", **(params or {})}
        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as exc:
            raise ProtocolError(
                f"EODHD request failed ({endpoint}): {type(exc).__name__}", endpoint=endpoint
            ) from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(f"EODHD rejected the API token ({endpoint}): {status}")
        if status == 429:
            raise RateLimitedError(f"EODHD rate limit reached ({endpoint})")
        if status == 404:
            return None
        if not response.is_success:
            raise ProtocolError(
                f"EODHD API error ({endpoint}): {status}", endpoint=endpoint, status_code=status
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProtocolError(
                f"EODHD API error ({endpoint}): invalid JSON", endpoint=endpoint, status_code=status
            ) from exc

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "EodhdClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()
