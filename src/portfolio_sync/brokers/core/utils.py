"""Shared utilities for broker clients."""
from datetime import datetime, timezone

DECIMALS = 8


def to_float(value: str | float | int | None, default: float = 0.0) -> float:
    """Parse a numeric field from a broker payload; empty or invalid values yield default."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def round_amount(x: float) -> float:
    """Round a monetary amount to a stable precision so it can be used in dedupe keys."""
    return round(float(x), DECIMALS)


def utcnow() -> datetime:
    """Timezone-naive UTC now, matching what the store persists."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_epoch_ms(ms: int | float) -> datetime:
    """Convert a millisecond Unix timestamp into a naive UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).replace(tzinfo=None)
