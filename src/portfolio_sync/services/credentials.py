"""Saving broker credentials encrypted at rest."""
import logging
from collections.abc import Mapping

from portfolio_sync.db import PortfolioStore
from portfolio_sync.db.sessions import SessionFactory
from portfolio_sync.security import SecretVault

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS: dict[str, tuple[str, ...]] = {
    "ibkr": ("token", "query_id"),
    "binance": ("api_key", "api_secret"),
}


class CredentialService:
    """Validates, encrypts and stores the credential fields of a broker."""

    def __init__(
        self,
        vault: SecretVault,
        session_factory: SessionFactory,
        credential_fields: Mapping[str, tuple[str, ...]] | None = None,
    ) -> None:
        self._vault = vault
        self._session_factory = session_factory
        self._credential_fields = dict(credential_fields or CREDENTIAL_FIELDS)

    def save(self, user_id: str, broker: str, fields: Mapping[str, str]) -> None:
        """Encrypt each required field and upsert the user's credential row.

        Raises:
            ValueError: Unknown broker, or a required field is missing or blank.
        """
        if broker not in self._credential_fields:
            raise ValueError(f"Unknown broker: {broker}")
        required = self._credential_fields[broker]
        missing = [name for name in required if not (fields.get(name) or "").strip()]
        if missing:
            raise ValueError(f"Missing required {broker} fields: {', '.join(missing)}")

        secrets = {name: self._vault.encrypt(fields[name].strip()) for name in required}
        with self._session_factory() as session:
            PortfolioStore(session).save_credential(user_id, broker, secrets)
        logger.info("Saved %s credentials for user %s", broker, user_id)
