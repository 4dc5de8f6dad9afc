"""Fund lookups and end-of-day prices from EODHD."""
from portfolio_sync.pricing.eodhd_client import EodhdClient
from portfolio_sync.pricing.models import (EodBar, EodhdSearchResult,
                                           FundQuote, map_asset_type)

__all__ = [
    "EodBar",
    "EodhdClient",
    "EodhdSearchResult",
    "FundQuote",
    "map_asset_type",
]
