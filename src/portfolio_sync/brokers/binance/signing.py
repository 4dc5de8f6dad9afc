"""HMAC-SHA256 request signing for authenticated Binance endpoints."""
import hashlib
import hmac
import time
from collections.abc import Mapping
from urllib.parse import urlencode

API_KEY_HEADER = "X-MBX-APIKEY"


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def create_signature(query_string: str, api_secret: str) -> str:
    """Hex HMAC-SHA256 of the query string keyed by the API secret."""
    return hmac.new(
        api_secret.encode("utf-8"),
        query_string.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def signed_query(
    params: Mapping[str, object],
    api_secret: str,
    timestamp: int | None = None,
) -> str:
    """Build ``<params>&timestamp=<ms>&signature=<hex>`` for a signed call.

    The signature covers every parameter including the timestamp; the API key
    is sent separately in the API_KEY_HEADER header, never in the URL.
    """
    query_string = urlencode(
        {**params, "timestamp": timestamp if timestamp is not None else timestamp_ms()}
    )
    return f"{query_string}&signature={create_signature(query_string, api_secret)}"
