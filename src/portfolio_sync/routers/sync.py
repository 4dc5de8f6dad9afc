"""Broker sync routes: on-demand sync, scheduled batch trigger and history."""
import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from portfolio_sync.brokers.core import SyncError, SyncErrorMapper
from portfolio_sync.deps import CurrentUser, ServiceToken, SyncServiceDep
from portfolio_sync.schemas import (BatchSyncResult, SyncFailure,
                                    SyncHistoryOut, SyncSummary)
from portfolio_sync.services.sync import SyncService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["sync"])

_error_mapper = SyncErrorMapper(api_name="Broker")


def _require_broker(service: SyncService, broker: str) -> str:
    broker = broker.lower()
    if broker not in service.brokers:
        raise HTTPException(
            404,
            detail=f"Unknown broker: {broker}. Available: {', '.join(service.brokers)}",
        )
    return broker


@router.post(
    "/{broker}",
    response_model=SyncSummary,
    responses={code: {"model": SyncFailure} for code in (401, 404, 409, 429, 500, 502, 504)},
)
async def sync_broker(broker: str, user_id: CurrentUser, service: SyncServiceDep):
    """Sync the current user's account at a broker now.

    Failures are returned as {success: false, error} with a status matching
    the failure (404 no credentials, 401 rejected credentials, 429 rate limited,
    502 unexpected broker response, 504 report timeout).
    """
    broker = _require_broker(service, broker)
    try:
        return await service.sync_user(broker, user_id)
    except Exception as exc:  # pylint: disable=broad-except
        if not isinstance(exc, SyncError):
            logger.exception("Unexpected %s sync error for user %s", broker, user_id)
        status_code, detail = _error_mapper.to_http(exc)
        return JSONResponse(
            status_code=status_code,
            content=SyncFailure(error=detail).model_dump(),
        )


@router.post("/{broker}/all", response_model=BatchSyncResult, dependencies=[ServiceToken])
async def sync_broker_all(broker: str, service: SyncServiceDep) -> BatchSyncResult:
    """Run the scheduled batch for every user with credentials (service token required)."""
    broker = _require_broker(service, broker)
    return await service.sync_all(broker)


@router.get("/{broker}/history", response_model=list[SyncHistoryOut])
def get_sync_history(
    broker: str,
    user_id: CurrentUser,
    service: SyncServiceDep,
    limit: int = Query(default=20, ge=1, le=200, description="Number of entries"),
) -> list[SyncHistoryOut]:
    """Most recent sync attempts of the current user, newest first."""
    broker = _require_broker(service, broker)
    return [SyncHistoryOut.model_validate(e) for e in service.history(broker, user_id, limit)]
