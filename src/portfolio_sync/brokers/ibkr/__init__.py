from portfolio_sync.brokers.ibkr.ibkr_flex_client import IbkrFlexClient
from portfolio_sync.brokers.ibkr.models import (FlexPosition, FlexReport,
                                                map_asset_category)

__all__ = ["FlexPosition", "FlexReport", "IbkrFlexClient", "map_asset_category"]
