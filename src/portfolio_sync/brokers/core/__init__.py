"""Core broker abstractions."""
from portfolio_sync.brokers.core.broker_client_abc import BrokerClientABC
from portfolio_sync.brokers.core.error_mapper import SyncErrorMapper
from portfolio_sync.brokers.core.exceptions import (AuthenticationError,
                                                    ConfigurationError,
                                                    CredentialsNotFoundError,
                                                    ProtocolError,
                                                    RateLimitedError,
                                                    SyncError,
                                                    SyncNotAllowedError,
                                                    SyncTimeoutError)

__all__ = [
    "AuthenticationError",
    "BrokerClientABC",
    "ConfigurationError",
    "CredentialsNotFoundError",
    "ProtocolError",
    "RateLimitedError",
    "SyncError",
    "SyncErrorMapper",
    "SyncNotAllowedError",
    "SyncTimeoutError",
]
