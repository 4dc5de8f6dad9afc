"""Models for the IBKR Flex client (parsed report and request params)."""
from pydantic import BaseModel, Field, computed_field

TRACKED_CURRENCIES = ("EUR", "USD")

_ASSET_CLASSES = {
    "STK": "stock",
    "ETF": "etf",
    "BOND": "bond",
    "CRYPTO": "crypto",
    "FUND": "fund",
}


def map_asset_category(category: str | None) -> str:
    """Map an IBKR assetCategory code to the holding asset class."""
    return _ASSET_CLASSES.get((category or "").upper(), "other")


class FlexPosition(BaseModel):
    """One <OpenPosition/> record of a Flex statement."""

    symbol: str
    description: str = ""
    conid: str
    isin: str | None = None
    quantity: float
    mark_price: float
    cost_basis_price: float
    unrealized_pnl: float = 0.0
    asset_category: str = "STK"
    currency: str = "USD"
    exchange: str = ""

    @computed_field
    @property
    def position_value(self) -> float:
        return self.quantity * self.mark_price

    @computed_field
    @property
    def cost_value(self) -> float:
        return self.quantity * self.cost_basis_price

    @computed_field
    @property
    def unrealized_pnl_percent(self) -> float | None:
        if not self.cost_value:
            return None
        return self.unrealized_pnl / abs(self.cost_value) * 100


class FlexReport(BaseModel):
    """Positions and cash balances parsed from a ready Flex statement."""

    positions: list[FlexPosition] = Field(default_factory=list)
    cash_balances: dict[str, float] = Field(
        default_factory=lambda: {c: 0.0 for c in TRACKED_CURRENCIES}
    )

    @computed_field
    @property
    def positions_count(self) -> int:
        return len(self.positions)

    @computed_field
    @property
    def total_value(self) -> float:
        return sum(p.position_value for p in self.positions)

    @computed_field
    @property
    def total_cost(self) -> float:
        return sum(p.cost_value for p in self.positions)

    @computed_field
    @property
    def total_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self.positions)


class FlexRequestParams(BaseModel):
    """Params for FlexStatementService.SendRequest."""

    token: str = Field(serialization_alias="t")
    query_id: str = Field(serialization_alias="q")
    version: int = Field(default=3, serialization_alias="v")

    model_config = {"populate_by_name": True}


class FlexStatementParams(BaseModel):
    """Params for FlexStatementService.GetStatement."""

    reference_code: str = Field(serialization_alias="q")
    token: str = Field(serialization_alias="t")
    version: int = Field(default=3, serialization_alias="v")

    model_config = {"populate_by_name": True}
