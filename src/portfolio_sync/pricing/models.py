"""Models for the EODHD fundamentals and end-of-day price API."""
from datetime import date

from pydantic import BaseModel, Field


def map_asset_type(eodhd_type: str | None) -> str:
    """Map an EODHD instrument Type to a holding asset class; unknown types are "fund"."""
    if not eodhd_type:
        return "fund"
    kind = eodhd_type.upper()
    if "ETF" in kind:
        return "etf"
    if "STOCK" in kind or "EQUITY" in kind:
        return "stock"
    if "CRYPTO" in kind:
        return "crypto"
    if "BOND" in kind:
        return "bond"
    if "FUND" in kind or "MUTUAL" in kind:
        return "fund"
    return "other"


class EodhdSearchResult(BaseModel):
    """One instrument from /search/{query}."""

    code: str = Field(alias="Code")
    exchange: str = Field(alias="Exchange")
    name: str | None = Field(default=None, alias="Name")
    type: str | None = Field(default=None, alias="Type")
    isin: str | None = Field(default=None, alias="ISIN")
    currency: str | None = Field(default=None, alias="Currency")

    model_config = {"populate_by_name": True}

    @property
    def ticker(self) -> str:
        return f"{self.code}.{self.exchange}"

    @property
    def asset_class(self) -> str:
        return map_asset_type(self.type)


class EodBar(BaseModel):
    """One daily bar from /eod/{CODE.EXCHANGE}."""

    bar_date: date = Field(alias="date")
    close: float

    model_config = {"populate_by_name": True}


class FundQuote(BaseModel):
    """Latest close of a fund, resolved from its ISIN."""

    isin: str
    ticker: str
    price_date: date
    close: float
