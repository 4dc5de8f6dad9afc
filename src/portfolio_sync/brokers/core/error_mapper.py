"""Domain concept for mapping sync exceptions to HTTP responses."""
from dataclasses import dataclass

from fastapi import HTTPException

from portfolio_sync.brokers.core.exceptions import (AuthenticationError,
                                                    ConfigurationError,
                                                    CredentialsNotFoundError,
                                                    ProtocolError,
                                                    RateLimitedError,
                                                    SyncError,
                                                    SyncNotAllowedError,
                                                    SyncTimeoutError)


@dataclass(frozen=True)
class SyncErrorMapper:
    """Maps sync exceptions to HTTP (status_code, detail).

    The detail keeps the exception message, which for protocol errors carries
    the raw broker message so the user sees what the broker said.
    """

    api_name: str = "Broker"

    def to_http(self, exc: Exception) -> tuple[int, str]:
        """Map a sync exception to (status_code, detail) for HTTP responses.

        Args:
            exc: The exception raised by the orchestrator or a client.

        Returns:
            (status_code, detail) suitable for a JSON error response.
        """
        if isinstance(exc, CredentialsNotFoundError):
            return (404, str(exc))
        if isinstance(exc, SyncNotAllowedError):
            return (409, str(exc))
        if isinstance(exc, AuthenticationError):
            return (401, str(exc))
        if isinstance(exc, RateLimitedError):
            return (429, str(exc))
        if isinstance(exc, SyncTimeoutError):
            return (504, str(exc))
        if isinstance(exc, ProtocolError):
            return (502, str(exc) or f"{self.api_name} error")
        if isinstance(exc, ConfigurationError):
            return (500, str(exc))
        if isinstance(exc, SyncError):
            return (500, str(exc))
        if isinstance(exc, ValueError):
            return (422, str(exc))
        return (500, "Internal server error")

    def raise_http(self, exc: Exception) -> None:
        """Map exception to HTTP and raise HTTPException. Never returns."""
        status_code, detail = self.to_http(exc)
        raise HTTPException(status_code=status_code, detail=detail) from exc
