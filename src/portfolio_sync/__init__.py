"""Portfolio synchronization engine.

Pulls positions, balances and trades from external brokers (IBKR Flex, Binance),
reconciles them into locally stored holdings and keeps credentials encrypted.
"""
