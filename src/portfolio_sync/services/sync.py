"""Sync orchestration: credentials -> broker client -> reconciliation -> history.

On-demand syncs propagate failures to the caller after recording them;
scheduled batches catch failures per user so one bad account never aborts
the run. Decrypted credentials only live for the duration of one user's sync.
"""
import asyncio
import logging
from collections.abc import Collection, Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from portfolio_sync.brokers.core import (AuthenticationError,
                                         BrokerClientABC,
                                         CredentialsNotFoundError,
                                         SyncNotAllowedError)
from portfolio_sync.brokers.core.utils import utcnow
from portfolio_sync.db import PortfolioStore, SyncHistoryEntry, SyncStatus
from portfolio_sync.db.sessions import SessionFactory
from portfolio_sync.schemas import BatchSyncResult, SyncSummary, UserSyncResult
from portfolio_sync.security import SecretVault
from portfolio_sync.services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)

USER_PACING_SECONDS = 2.0


class SyncService:
    """Runs on-demand and scheduled syncs for the configured broker clients."""

    def __init__(
        self,
        vault: SecretVault,
        session_factory: SessionFactory,
        clients: Mapping[str, BrokerClientABC],
        engine: ReconciliationEngine,
        *,
        user_pacing_seconds: float = USER_PACING_SECONDS,
        scheduled_cost_basis: bool = False,
        manual_sync_once: Collection[str] = (),
    ) -> None:
        """Initialize the service.

        Args:
            vault: Decrypts stored credential fields.
            session_factory: Context manager yielding a committed-on-exit session.
            clients: Broker clients keyed by broker id ("ibkr", "binance").
            engine: Writes snapshots to the store.
            user_pacing_seconds: Pause between users in a scheduled batch.
            scheduled_cost_basis: Fetch trade history during scheduled runs too.
            manual_sync_once: Brokers whose on-demand sync is only allowed before
                the user has any sync history.
        """
        self._vault = vault
        self._session_factory = session_factory
        self._clients = dict(clients)
        self._engine = engine
        self._user_pacing_seconds = user_pacing_seconds
        self._scheduled_cost_basis = scheduled_cost_basis
        self._manual_sync_once = frozenset(manual_sync_once)

    @property
    def brokers(self) -> list[str]:
        return list(self._clients)

    def client(self, broker: str) -> BrokerClientABC:
        """Return the client for a broker id; unknown ids raise ValueError."""
        if broker not in self._clients:
            raise ValueError(
                f"Unknown broker: {broker}. Available: {', '.join(self._clients)}"
            )
        return self._clients[broker]

    async def sync_user(self, broker: str, user_id: str) -> SyncSummary:
        """Sync one user's account now, with cost basis.

        Any failure is appended to the history and re-raised for display.
        """
        client = self.client(broker)
        try:
            secrets = self._load_secrets(broker, user_id, on_demand=True)
            return await self._sync_one(client, user_id, secrets, include_cost_basis=True)
        except Exception as exc:
            logger.warning("%s sync failed for user %s: %s", broker, user_id, exc)
            self._record_failure(broker, user_id, exc)
            raise

    async def sync_all(self, broker: str) -> BatchSyncResult:
        """Sync every user that has credentials for the broker, one at a time."""
        client = self.client(broker)
        with self._session_factory() as session:
            configs = [
                (credential.user_id, dict(credential.secrets))
                for credential in PortfolioStore(session).list_credentials(broker)
            ]
        logger.info("Scheduled %s sync: %d users", broker, len(configs))

        result = BatchSyncResult(total=len(configs))
        for index, (user_id, secrets) in enumerate(configs):
            if index > 0 and self._user_pacing_seconds > 0:
                await asyncio.sleep(self._user_pacing_seconds)
            try:
                summary = await self._sync_one(
                    client,
                    user_id,
                    secrets,
                    include_cost_basis=self._scheduled_cost_basis,
                )
            except Exception as exc:  # pylint: disable=broad-except
                # One user's failure is recorded and the batch moves on.
                logger.error("Scheduled %s sync failed for user %s: %s", broker, user_id, exc)
                self._record_failure(broker, user_id, exc)
                result.errors += 1
                result.results.append(
                    UserSyncResult(user_id=user_id, status=SyncStatus.ERROR, error=_error_text(exc))
                )
                continue
            result.synced += 1
            result.results.append(
                UserSyncResult(user_id=user_id, status=SyncStatus.SUCCESS, positions=summary.total)
            )
        logger.info(
            "Scheduled %s sync complete: %d synced, %d errors", broker, result.synced, result.errors
        )
        return result

    def history(self, broker: str, user_id: str, limit: int = 50) -> list[SyncHistoryEntry]:
        """Most recent history entries of a user for a broker, newest first."""
        with self._session_factory() as session:
            return PortfolioStore(session).list_history(broker, user_id, limit=limit)

    def _load_secrets(self, broker: str, user_id: str, *, on_demand: bool) -> dict[str, str]:
        with self._session_factory() as session:
            store = PortfolioStore(session)
            credential = store.get_credential(user_id, broker)
            if credential is None:
                raise CredentialsNotFoundError(broker)
            if on_demand and broker in self._manual_sync_once and store.has_history(broker, user_id):
                raise SyncNotAllowedError()
            return dict(credential.secrets)

    def _decrypt(self, client: BrokerClientABC, secrets: Mapping[str, str]) -> dict[str, str]:
        missing = [field for field in client.credential_fields if not secrets.get(field)]
        if missing:
            raise AuthenticationError(
                f"Stored {client.source} credentials are incomplete, please reconfigure them"
            )
        return {field: self._vault.decrypt(secrets[field]) for field in client.credential_fields}

    async def _sync_one(
        self,
        client: BrokerClientABC,
        user_id: str,
        secrets: Mapping[str, str],
        *,
        include_cost_basis: bool,
    ) -> SyncSummary:
        broker = client.source
        credentials = self._decrypt(client, secrets)
        try:
            snapshot: Any = await client.fetch_snapshot(
                credentials, include_cost_basis=include_cost_basis
            )
        finally:
            credentials.clear()

        with self._session_factory() as session:
            store = PortfolioStore(session)
            reconciled = self._engine.apply(store, user_id, snapshot)
            now = utcnow()
            store.mark_synced(user_id, broker, now)
            store.append_history(
                SyncHistoryEntry(
                    user_id=user_id,
                    broker=broker,
                    positions_count=snapshot.positions_count,
                    total_value=snapshot.total_value,
                    total_cost=snapshot.total_cost,
                    total_pnl=snapshot.total_pnl,
                    cash_by_currency=dict(snapshot.cash_balances),
                    status=SyncStatus.SUCCESS.value,
                    created_at=now,
                )
            )
        logger.info(
            "%s sync for user %s: %d created, %d updated",
            broker, user_id, reconciled.created, reconciled.updated,
        )
        return SyncSummary(
            created=reconciled.created,
            updated=reconciled.updated,
            total=snapshot.positions_count,
            total_value_usd=getattr(snapshot, "total_value_usd", None),
        )

    def _record_failure(self, broker: str, user_id: str, exc: Exception) -> None:
        try:
            with self._session_factory() as session:
                PortfolioStore(session).append_history(
                    SyncHistoryEntry(
                        user_id=user_id,
                        broker=broker,
                        status=SyncStatus.ERROR.value,
                        error_message=_error_text(exc),
                    )
                )
        except SQLAlchemyError as db_exc:
            logger.error("Could not record %s sync failure for user %s: %s", broker, user_id, db_exc)


def _error_text(exc: Exception) -> str:
    return str(exc) or type(exc).__name__
