"""FastAPI dependency injection: the container on app.state holds singletons.

The lifespan (main.py) builds the container once; these getters resolve services
from it for Depends(). The caller's identity comes from the X-User-Id header set
by the gateway in front of this service.
"""
import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from portfolio_sync.container import Container
from portfolio_sync.services.credentials import CredentialService
from portfolio_sync.services.fund_prices import FundPriceService
from portfolio_sync.services.statement_import import StatementImportService
from portfolio_sync.services.sync import SyncService


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_sync_service(request: Request) -> SyncService:
    """Resolve the SyncService singleton."""
    return get_container(request).sync_service()


def get_credential_service(request: Request) -> CredentialService:
    """Resolve the CredentialService singleton."""
    return get_container(request).credential_service()


def get_statement_import_service(request: Request) -> StatementImportService:
    """Resolve the StatementImportService singleton."""
    return get_container(request).statement_import_service()


def get_fund_price_service(request: Request) -> FundPriceService:
    """Resolve the FundPriceService singleton."""
    return get_container(request).fund_price_service()


def get_current_user(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Current user id; requests without one are rejected with 401."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


def require_service_token(
    request: Request,
    x_service_token: Annotated[str | None, Header()] = None,
) -> None:
    """Guard for service-level endpoints (batch syncs)."""
    expected = get_container(request).settings().service_token
    if not expected:
        raise HTTPException(status_code=503, detail="Service token not configured")
    if not x_service_token or not hmac.compare_digest(x_service_token, expected):
        raise HTTPException(status_code=403, detail="Invalid service token")


# Type aliases for route injection
SyncServiceDep = Annotated[SyncService, Depends(get_sync_service)]
CredentialServiceDep = Annotated[CredentialService, Depends(get_credential_service)]
StatementImportServiceDep = Annotated[StatementImportService, Depends(get_statement_import_service)]
FundPriceServiceDep = Annotated[FundPriceService, Depends(get_fund_price_service)]
CurrentUser = Annotated[str, Depends(get_current_user)]
ServiceToken = Depends(require_service_token)
