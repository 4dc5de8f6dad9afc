"""Manual statement import and fund price routes."""
from fastapi import APIRouter, HTTPException

from portfolio_sync.deps import (CurrentUser, FundPriceServiceDep,
                                 ServiceToken, StatementImportServiceDep)
from portfolio_sync.schemas import (FundPriceRefreshResult, StatementImportIn,
                                    StatementImportResult)

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("/{source}/movements", response_model=StatementImportResult)
async def import_movements(
    source: str,
    body: StatementImportIn,
    user_id: CurrentUser,
    service: StatementImportServiceDep,
) -> StatementImportResult:
    """Import parsed fund movements (e.g. a MyInvestor export) as holdings and buys."""
    return await service.import_movements(user_id, source.lower(), body.movements)


@router.post(
    "/{source}/prices/refresh",
    response_model=FundPriceRefreshResult,
    dependencies=[ServiceToken],
)
async def refresh_fund_prices(source: str, service: FundPriceServiceDep) -> FundPriceRefreshResult:
    """Price every ISIN holding of the source with its latest close (service token required)."""
    if not service.enabled:
        raise HTTPException(status_code=503, detail="EODHD_API_TOKEN not configured")
    return await service.refresh_prices(source.lower())
