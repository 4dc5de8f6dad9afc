"""Broker credential routes."""
import logging

from fastapi import APIRouter

from portfolio_sync.brokers.core import SyncErrorMapper
from portfolio_sync.deps import CredentialServiceDep, CurrentUser
from portfolio_sync.schemas import CredentialsIn, SaveCredentialsResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/brokers", tags=["credentials"])

_error_mapper = SyncErrorMapper()


@router.put("/{broker}/credentials", response_model=SaveCredentialsResponse)
def save_credentials(
    broker: str,
    body: CredentialsIn,
    user_id: CurrentUser,
    service: CredentialServiceDep,
) -> SaveCredentialsResponse:
    """Store the current user's credentials for a broker, encrypted.

    Args:
        broker: Broker id ("ibkr" needs token and query_id; "binance" needs
            api_key and api_secret).
        body: Plaintext credential fields.
    """
    broker = broker.lower()
    try:
        service.save(user_id, broker, body.fields)
    except Exception as exc:  # pylint: disable=broad-except
        _error_mapper.raise_http(exc)
    return SaveCredentialsResponse(message=f"{broker} credentials saved")
