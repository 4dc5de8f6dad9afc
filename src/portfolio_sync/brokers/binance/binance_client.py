"""Binance exchange client (spot + Simple Earn balances, prices, trade history)."""
import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from portfolio_sync.brokers.binance.models import (QUOTE_ASSET,
                                                   STABLECOINS,
                                                   BinanceAccount,
                                                   BinanceBalance,
                                                   BinanceTrade,
                                                   EarnPositionParams,
                                                   MyTradesParams,
                                                   is_stablecoin)
from portfolio_sync.brokers.binance.signing import API_KEY_HEADER, signed_query
from portfolio_sync.brokers.core import (AuthenticationError, BrokerClientABC,
                                         ProtocolError, RateLimitedError,
                                         SyncError)
from portfolio_sync.brokers.core.utils import to_float
from portfolio_sync.services.cost_basis import Trade, weighted_average_cost

logger = logging.getLogger(__name__)

# Binance error codes for a bad key, bad signature or missing permissions.
_AUTH_ERROR_CODES = frozenset({-1022, -2014, -2015})
_UNAVAILABLE_STATUSES = frozenset({400, 404})
_RATE_LIMIT_STATUSES = frozenset({418, 429})


class BinanceClient(BrokerClientABC):
    """Aggregates a user's Binance holdings into priced per-asset balances.

    Authenticated calls are signed with HMAC-SHA256 (see signing.py). Spot
    balances and the ticker are required; the two Simple Earn tiers and the
    per-asset trade history are optional and never abort a sync.
    """

    BASE_URL = "https://api.binance.com"
    ACCOUNT_PATH = "/api/v3/account"
    EARN_FLEXIBLE_PATH = "/sapi/v1/simple-earn/flexible/position"
    EARN_LOCKED_PATH = "/sapi/v1/simple-earn/locked/position"
    TICKER_PATH = "/api/v3/ticker/price"
    MY_TRADES_PATH = "/api/v3/myTrades"

    source = "binance"
    credential_fields = ("api_key", "api_secret")

    def __init__(
        self,
        trade_fetch_delay: float = 0.1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Binance client.

        Args:
            trade_fetch_delay: Seconds to pause between per-asset trade history calls.
            client: Optional preconfigured httpx client (tests inject a mock transport).
        """
        self._trade_fetch_delay = trade_fetch_delay
        self._client = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={"Accept": "application/json"},
            timeout=30.0,
        )

    async def fetch_snapshot(
        self,
        credentials: Mapping[str, str],
        *,
        include_cost_basis: bool = True,
    ) -> BinanceAccount:
        """Fetch balances across spot and earn, price them, and derive cost basis.

        Args:
            credentials: Decrypted ``api_key`` and ``api_secret``.
            include_cost_basis: Fetch trade history per asset for cost basis
                (on-demand syncs); scheduled syncs skip it by default.

        Returns:
            BinanceAccount with every asset holding a positive total.
        """
        api_key = credentials["api_key"]
        api_secret = credentials["api_secret"]

        balances = await self._fetch_spot_balances(api_key, api_secret)
        await self._add_earn_balances(
            balances, api_key, api_secret, self.EARN_FLEXIBLE_PATH, "totalAmount", "earn_flexible"
        )
        await self._add_earn_balances(
            balances, api_key, api_secret, self.EARN_LOCKED_PATH, "amount", "earn_locked"
        )

        prices = await self._fetch_prices()
        for balance in balances.values():
            balance.price_usd = prices.get(balance.asset, 0.0)

        trades: dict[str, list[BinanceTrade]] = {}
        if include_cost_basis:
            tradable = [
                b.asset for b in balances.values() if b.total > 0 and not is_stablecoin(b.asset)
            ]
            trades = await self._fetch_trade_history(api_key, api_secret, tradable)
            for asset, asset_trades in trades.items():
                balances[asset].cost_basis = weighted_average_cost(
                    Trade(quantity=t.qty, price=t.price, is_buy=t.is_buyer)
                    for t in asset_trades
                )

        account = BinanceAccount(
            balances=[b for b in balances.values() if b.total > 0],
            trades=trades,
        )
        logger.info(
            "Binance snapshot: %d assets, $%.2f total value",
            len(account.balances),
            account.total_value_usd,
        )
        return account

    async def _fetch_spot_balances(
        self, api_key: str, api_secret: str
    ) -> dict[str, BinanceBalance]:
        data = await self._signed_get(self.ACCOUNT_PATH, api_key, api_secret)
        if not isinstance(data, dict) or "balances" not in data:
            raise ProtocolError(
                f"Binance API error ({self.ACCOUNT_PATH}): missing balances",
                endpoint=self.ACCOUNT_PATH,
            )
        balances: dict[str, BinanceBalance] = {}
        for row in data["balances"]:
            free = to_float(row.get("free"))
            locked = to_float(row.get("locked"))
            if free > 0 or locked > 0:
                balances[row["asset"]] = BinanceBalance(asset=row["asset"], free=free, locked=locked)
        return balances

    async def _add_earn_balances(
        self,
        balances: dict[str, BinanceBalance],
        api_key: str,
        api_secret: str,
        path: str,
        amount_field: str,
        tier: str,
    ) -> None:
        """Add one Simple Earn tier to the accumulator; failures only skip the tier."""
        try:
            data = await self._signed_get(
                path, api_key, api_secret, EarnPositionParams().model_dump(), optional=True
            )
        except (SyncError, httpx.HTTPError) as exc:
            logger.warning("Could not fetch %s from Binance: %s", tier, exc)
            return
        if not isinstance(data, dict) or not data.get("rows"):
            return
        for row in data["rows"]:
            amount = to_float(row.get(amount_field))
            if amount <= 0:
                continue
            balance = balances.setdefault(row["asset"], BinanceBalance(asset=row["asset"]))
            setattr(balance, tier, getattr(balance, tier) + amount)
            logger.debug("Binance %s: %s %s", tier, amount, row["asset"])

    async def _fetch_prices(self) -> dict[str, float]:
        """USD prices from the public ticker; stablecoins are pinned to 1."""
        try:
            response = await self._client.get(self.TICKER_PATH)
        except httpx.HTTPError as exc:
            raise ProtocolError(f"Binance request failed: {exc}", endpoint=self.TICKER_PATH) from exc
        self._raise_for_status(self.TICKER_PATH, response)
        prices: dict[str, float] = {}
        rows = self._json(self.TICKER_PATH, response)
        if not isinstance(rows, list):
            raise ProtocolError(
                f"Binance API error ({self.TICKER_PATH}): unexpected ticker payload",
                endpoint=self.TICKER_PATH,
                status_code=response.status_code,
            )
        for row in rows:
            symbol = row.get("symbol", "")
            if symbol.endswith(QUOTE_ASSET) and len(symbol) > len(QUOTE_ASSET):
                prices[symbol[: -len(QUOTE_ASSET)]] = to_float(row.get("price"))
        for stable in STABLECOINS:
            prices[stable] = 1.0
        return prices

    async def _fetch_trade_history(
        self, api_key: str, api_secret: str, assets: list[str]
    ) -> dict[str, list[BinanceTrade]]:
        """Trades per asset against USDT; assets without trades or with errors are skipped."""
        trades: dict[str, list[BinanceTrade]] = {}
        for i, asset in enumerate(assets):
            if i > 0:
                await asyncio.sleep(self._trade_fetch_delay)
            params = MyTradesParams().model_dump() | {"symbol": f"{asset}{QUOTE_ASSET}"}
            try:
                rows = await self._signed_get(
                    self.MY_TRADES_PATH, api_key, api_secret, params, optional=True
                )
                if not rows:
                    continue
                parsed = sorted(
                    (BinanceTrade.model_validate(row) for row in rows),
                    key=lambda t: t.time,
                )
            except (SyncError, httpx.HTTPError, ValidationError) as exc:
                logger.info("No trades for %s: %s", asset, exc)
                continue
            trades[asset] = parsed
            logger.debug("Fetched %d trades for %s", len(parsed), asset)
        return trades

    async def _signed_get(
        self,
        path: str,
        api_key: str,
        api_secret: str,
        params: dict[str, Any] | None = None,
        *,
        optional: bool = False,
    ) -> Any:
        """GET an authenticated endpoint.

        Returns None for 400/404 on optional endpoints (feature not available
        for the account); raises for every other non-2xx response.
        """
        url = f"{path}?{signed_query(params or {}, api_secret)}"
        try:
            response = await self._client.get(url, headers={API_KEY_HEADER: api_key})
        except httpx.HTTPError as exc:
            raise ProtocolError(f"Binance request failed: {exc}", endpoint=path) from exc
        if optional and response.status_code in _UNAVAILABLE_STATUSES:
            logger.info("Endpoint %s not available: %s", path, response.text[:200])
            return None
        self._raise_for_status(path, response)
        return self._json(path, response)

    @staticmethod
    def _json(path: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProtocolError(
                f"Binance API error ({path}): invalid JSON",
                endpoint=path,
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _raise_for_status(path: str, response: httpx.Response) -> None:
        if response.is_success:
            return
        status = response.status_code
        text = response.text
        if status in _RATE_LIMIT_STATUSES:
            raise RateLimitedError(f"Binance rate limit reached ({path}): {status}")
        code = None
        try:
            body = response.json()
            if isinstance(body, dict):
                code = body.get("code")
        except ValueError:
            pass
        if status == 401 or code in _AUTH_ERROR_CODES:
            raise AuthenticationError(f"Binance rejected the API credentials ({path}): {text}")
        raise ProtocolError(
            f"Binance API error ({path}): {status} - {text}",
            endpoint=path,
            status_code=status,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
