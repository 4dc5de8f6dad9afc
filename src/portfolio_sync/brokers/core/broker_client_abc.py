"""Abstract base class for broker clients."""
from abc import ABC, abstractmethod
from collections.abc import Mapping

from pydantic import BaseModel


class BrokerClientABC(ABC):
    """Base interface for all broker clients.

    Each client speaks one broker's protocol and returns a parsed snapshot of
    the account. Clients never touch storage; the reconciliation engine does.

    Subclasses set ``source`` (the broker identifier stored on rows) and
    ``credential_fields`` (names of the secrets the client needs).
    """

    source: str = ""
    credential_fields: tuple[str, ...] = ()

    @abstractmethod
    async def fetch_snapshot(
        self,
        credentials: Mapping[str, str],
        *,
        include_cost_basis: bool = True,
    ) -> BaseModel:
        """Fetch the current state of the account.

        Args:
            credentials: Decrypted credential fields keyed by name.
            include_cost_basis: Whether to spend extra calls deriving cost basis
                from trade history (ignored by brokers that report it directly).

        Returns:
            A broker-specific snapshot model.
        """

    async def close(self) -> None:
        """Clean up resources (HTTP clients).

        Override in subclasses if cleanup is needed.
        """

    async def __aenter__(self) -> "BrokerClientABC":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        """Async context manager exit - calls close()."""
        await self.close()
