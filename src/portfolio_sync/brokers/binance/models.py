"""Models for the Binance client (aggregated balances, trades and API params)."""
from pydantic import BaseModel, Field, computed_field

QUOTE_ASSET = "USDT"
STABLECOINS = frozenset({"USDT", "USDC", "BUSD", "TUSD", "DAI", "FDUSD"})

_ASSET_NAMES = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "BNB": "Binance Coin",
    "SOL": "Solana",
    "XRP": "Ripple",
    "ADA": "Cardano",
    "DOGE": "Dogecoin",
    "DOT": "Polkadot",
    "MATIC": "Polygon",
    "LINK": "Chainlink",
    "AVAX": "Avalanche",
    "UNI": "Uniswap",
    "ATOM": "Cosmos",
    "LTC": "Litecoin",
    "USDT": "Tether USD",
    "USDC": "USD Coin",
    "BUSD": "Binance USD",
    "DAI": "Dai",
    "FDUSD": "First Digital USD",
}


def is_stablecoin(asset: str) -> bool:
    return asset in STABLECOINS


def asset_name(asset: str) -> str:
    """Human-readable name for well-known assets; falls back to the symbol."""
    return _ASSET_NAMES.get(asset, asset)


class BinanceTrade(BaseModel):
    """One fill from /api/v3/myTrades."""

    id: int
    symbol: str
    price: float
    qty: float
    quote_qty: float | None = Field(default=None, alias="quoteQty")
    time: int  # ms since epoch
    is_buyer: bool = Field(alias="isBuyer")

    model_config = {"populate_by_name": True}


class BinanceBalance(BaseModel):
    """Per-asset total across spot and both earn tiers, priced in USD."""

    asset: str
    free: float = 0.0
    locked: float = 0.0
    earn_flexible: float = 0.0
    earn_locked: float = 0.0
    price_usd: float = 0.0
    cost_basis: float | None = None

    @computed_field
    @property
    def total(self) -> float:
        return self.free + self.locked + self.earn_flexible + self.earn_locked

    @computed_field
    @property
    def value_usd(self) -> float:
        return self.total * self.price_usd


class BinanceAccount(BaseModel):
    """Snapshot of a Binance account as returned by BinanceClient.fetch_snapshot."""

    balances: list[BinanceBalance] = Field(default_factory=list)
    trades: dict[str, list[BinanceTrade]] = Field(default_factory=dict)

    @computed_field
    @property
    def total_value_usd(self) -> float:
        return sum(b.value_usd for b in self.balances)

    @computed_field
    @property
    def positions_count(self) -> int:
        return len(self.balances)

    @computed_field
    @property
    def total_value(self) -> float:
        return self.total_value_usd

    @computed_field
    @property
    def total_cost(self) -> float:
        return sum(b.total * b.cost_basis for b in self.balances if b.cost_basis is not None)

    @computed_field
    @property
    def total_pnl(self) -> float:
        return sum(
            b.value_usd - b.total * b.cost_basis
            for b in self.balances
            if b.cost_basis is not None
        )

    @computed_field
    @property
    def cash_balances(self) -> dict[str, float]:
        stable = sum(b.total for b in self.balances if is_stablecoin(b.asset))
        return {"USD": stable} if stable else {}


class EarnPositionParams(BaseModel):
    """Params for the simple-earn position endpoints."""

    size: int = 100


class MyTradesParams(BaseModel):
    """Params for /api/v3/myTrades. Merge with 'symbol' at call site."""

    limit: int = 1000
