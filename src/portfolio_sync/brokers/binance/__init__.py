from portfolio_sync.brokers.binance.binance_client import BinanceClient
from portfolio_sync.brokers.binance.models import (STABLECOINS, BinanceAccount,
                                                   BinanceBalance,
                                                   BinanceTrade, asset_name,
                                                   is_stablecoin)

__all__ = [
    "STABLECOINS",
    "BinanceAccount",
    "BinanceBalance",
    "BinanceClient",
    "BinanceTrade",
    "asset_name",
    "is_stablecoin",
]
