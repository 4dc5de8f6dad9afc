"""DI container. Build via init_container(); routes resolve services through deps.py."""
from dependency_injector import containers, providers

from portfolio_sync.brokers import BinanceClient, IbkrFlexClient
from portfolio_sync.config import get_settings
from portfolio_sync.db import sessions
from portfolio_sync.pricing import EodhdClient
from portfolio_sync.security import SecretVault
from portfolio_sync.services.credentials import CredentialService
from portfolio_sync.services.fund_prices import FundPriceService
from portfolio_sync.services.reconciliation import ReconciliationEngine
from portfolio_sync.services.statement_import import StatementImportService
from portfolio_sync.services.sync import SyncService


class Container(containers.DeclarativeContainer):
    settings = providers.Singleton(get_settings)

    db_engine = providers.Singleton(
        sessions.build_engine,
        settings.provided.database_url,
        echo=settings.provided.sql_echo,
    )
    session_factory = providers.Singleton(sessions.session_factory, db_engine)

    vault = providers.Singleton(SecretVault.from_base64, settings.provided.encryption_key)

    ibkr_client = providers.Singleton(
        IbkrFlexClient,
        poll_interval=settings.provided.ibkr_poll_interval_seconds,
        max_attempts=settings.provided.ibkr_max_poll_attempts,
    )
    binance_client = providers.Singleton(
        BinanceClient,
        trade_fetch_delay=settings.provided.binance_trade_fetch_delay_seconds,
    )
    broker_clients = providers.Dict(ibkr=ibkr_client, binance=binance_client)

    reconciliation_engine = providers.Singleton(ReconciliationEngine)

    sync_service = providers.Singleton(
        SyncService,
        vault,
        session_factory,
        broker_clients,
        reconciliation_engine,
        user_pacing_seconds=settings.provided.user_pacing_seconds,
        scheduled_cost_basis=settings.provided.scheduled_cost_basis,
        manual_sync_once=settings.provided.manual_sync_once,
    )
    credential_service = providers.Singleton(CredentialService, vault, session_factory)
    eodhd_client = providers.Singleton(
        EodhdClient,
        api_token=settings.provided.eodhd_api_token,
        base_url=settings.provided.eodhd_base_url,
    )
    fund_price_service = providers.Singleton(
        FundPriceService,
        session_factory,
        eodhd_client,
        request_delay=settings.provided.eodhd_request_delay_seconds,
    )
    statement_import_service = providers.Singleton(
        StatementImportService, session_factory, fund_lookup=eodhd_client
    )


def init_container() -> Container:
    """Create the container; the vault is resolved eagerly so a bad key fails at startup."""
    container = Container()
    container.vault()
    return container
