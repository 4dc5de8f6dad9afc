"""State machine for the Flex request -> poll -> parse protocol.

The client feeds each raw response into a pure transition function and acts
on the resulting state, so every terminal condition (ready, rate limited,
broker error, attempt budget exhausted) can be exercised without HTTP.
"""
import xml.etree.ElementTree as ET
from dataclasses import dataclass, replace
from enum import Enum

from portfolio_sync.brokers.core.exceptions import (ProtocolError,
                                                    RateLimitedError,
                                                    SyncError,
                                                    SyncTimeoutError)

MAX_POLL_ATTEMPTS = 30
POLL_INTERVAL_SECONDS = 5.0

RATE_LIMITED_CODE = "1018"
IN_PROGRESS_CODE = "1019"
READY_MARKER = "<FlexStatements"
RATE_LIMITED_TEXT = "Too many requests"
IN_PROGRESS_TEXT = "Statement generation in progress"


class FlexPhase(str, Enum):
    """Phase of a single Flex statement retrieval."""

    REQUESTING = "requesting"
    POLLING = "polling"
    READY = "ready"
    FAILED = "failed"


class ResponseKind(str, Enum):
    """Classification of one raw response from the Flex service."""

    READY = "ready"
    REFERENCE = "reference"
    IN_PROGRESS = "in_progress"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedResponse:
    kind: ResponseKind
    reference_code: str | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class PollingState:
    """Immutable snapshot of a retrieval; advanced by the on_* transitions."""

    phase: FlexPhase = FlexPhase.REQUESTING
    attempts: int = 0
    max_attempts: int = MAX_POLL_ATTEMPTS
    reference_code: str | None = None
    statement: str | None = None
    error: SyncError | None = None

    @property
    def done(self) -> bool:
        return self.phase in (FlexPhase.READY, FlexPhase.FAILED)


def _fields(xml: str) -> dict[str, str]:
    """Top-level child texts of a small status document; empty if not parseable."""
    try:
        root = ET.fromstring(xml)
    except ET.ParseError:
        return {}
    return {child.tag: (child.text or "").strip() for child in root}


def classify_response(xml: str) -> ClassifiedResponse:
    """Classify a SendRequest or GetStatement response body."""
    if READY_MARKER in xml:
        return ClassifiedResponse(ResponseKind.READY)

    fields = _fields(xml)
    error_code = fields.get("ErrorCode") or None
    message = fields.get("ErrorMessage") or None

    if error_code == RATE_LIMITED_CODE or RATE_LIMITED_TEXT in xml:
        return ClassifiedResponse(
            ResponseKind.RATE_LIMITED, error_code=error_code, message=message
        )
    if error_code == IN_PROGRESS_CODE or IN_PROGRESS_TEXT in xml:
        return ClassifiedResponse(
            ResponseKind.IN_PROGRESS, error_code=error_code, message=message
        )
    if fields.get("ReferenceCode"):
        return ClassifiedResponse(
            ResponseKind.REFERENCE, reference_code=fields["ReferenceCode"]
        )
    if error_code or message or "ErrorMessage" in xml:
        return ClassifiedResponse(
            ResponseKind.ERROR,
            error_code=error_code,
            message=message or xml[:200],
        )
    return ClassifiedResponse(ResponseKind.UNKNOWN)


def _failed(state: PollingState, error: SyncError) -> PollingState:
    return replace(state, phase=FlexPhase.FAILED, error=error)


def _rate_limited() -> RateLimitedError:
    return RateLimitedError(
        "IBKR is rate limiting requests. Please wait 2-3 minutes before syncing again."
    )


def on_request_response(state: PollingState, xml: str) -> PollingState:
    """Transition out of REQUESTING given the SendRequest response."""
    response = classify_response(xml)
    if response.kind is ResponseKind.RATE_LIMITED:
        return _failed(state, _rate_limited())
    if response.kind is ResponseKind.REFERENCE:
        return replace(
            state, phase=FlexPhase.POLLING, reference_code=response.reference_code
        )
    if response.kind is ResponseKind.ERROR or response.message:
        return _failed(state, ProtocolError(f"IBKR error: {response.message}"))
    return _failed(state, ProtocolError("Failed to get reference code from IBKR"))


def on_statement_response(state: PollingState, xml: str) -> PollingState:
    """Transition a POLLING state given one GetStatement response.

    Every response consumes one attempt; once the budget is spent without a
    ready statement the state fails with SyncTimeoutError.
    """
    attempts = state.attempts + 1
    response = classify_response(xml)
    if response.kind is ResponseKind.READY:
        return replace(state, phase=FlexPhase.READY, attempts=attempts, statement=xml)
    if response.kind is ResponseKind.RATE_LIMITED:
        return _failed(replace(state, attempts=attempts), _rate_limited())
    if response.kind is ResponseKind.ERROR:
        return _failed(
            replace(state, attempts=attempts),
            ProtocolError(f"IBKR error: {response.message}"),
        )
    if attempts >= state.max_attempts:
        return _failed(
            replace(state, attempts=attempts),
            SyncTimeoutError(
                f"Timeout: IBKR did not generate the statement after {attempts} attempts. "
                "This can happen with large accounts, please try again in a few minutes."
            ),
        )
    return replace(state, attempts=attempts)
