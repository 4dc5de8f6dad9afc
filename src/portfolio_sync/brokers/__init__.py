"""Broker clients for external portfolio synchronization.

- IbkrFlexClient: Interactive Brokers positions and cash via the Flex Web Service
  (asynchronous request -> poll -> parse)
- BinanceClient: Binance spot and Simple Earn balances via the signed REST API

All clients implement BrokerClientABC and return a parsed snapshot model; they
never write to the store.

Example:
    async with BinanceClient() as client:
        account = await client.fetch_snapshot({"api_key": key, "api_secret": secret})
        print(f"${account.total_value_usd:.2f}")
"""
from portfolio_sync.brokers.binance import BinanceClient
from portfolio_sync.brokers.core import BrokerClientABC
from portfolio_sync.brokers.ibkr import IbkrFlexClient

__all__ = [
    "BinanceClient",
    "BrokerClientABC",
    "IbkrFlexClient",
]
