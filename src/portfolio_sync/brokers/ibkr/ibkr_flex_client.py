"""Interactive Brokers Flex Web Service client."""
import asyncio
import logging
from collections.abc import Mapping

import httpx

from portfolio_sync.brokers.core import BrokerClientABC, ProtocolError
from portfolio_sync.brokers.ibkr.models import (FlexReport, FlexRequestParams,
                                                FlexStatementParams)
from portfolio_sync.brokers.ibkr.parser import parse_statement
from portfolio_sync.brokers.ibkr.polling import (MAX_POLL_ATTEMPTS,
                                                 POLL_INTERVAL_SECONDS,
                                                 FlexPhase, PollingState,
                                                 on_request_response,
                                                 on_statement_response)

logger = logging.getLogger(__name__)


class IbkrFlexClient(BrokerClientABC):
    """Fetches positions and cash from an IBKR Flex Query.

    Flex statements are generated asynchronously: a request returns a
    reference code, and the statement has to be polled for until the broker
    finishes generating it. The client performs no storage.
    """

    BASE_URL = "https://gdcdyn.interactivebrokers.com/Universal/servlet"
    REQUEST_PATH = "/FlexStatementService.SendRequest"
    STATEMENT_PATH = "/FlexStatementService.GetStatement"

    source = "ibkr"
    credential_fields = ("token", "query_id")

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Flex client.

        Args:
            poll_interval: Seconds to wait between statement polls.
            max_attempts: Maximum number of statement polls before timing out.
            client: Optional preconfigured httpx client (tests inject a mock transport).
        """
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._client = client or httpx.AsyncClient(base_url=self.BASE_URL, timeout=30.0)

    async def fetch_snapshot(
        self,
        credentials: Mapping[str, str],
        *,
        include_cost_basis: bool = True,
    ) -> FlexReport:
        """Request, wait for and parse the Flex statement.

        Cost basis comes with the statement, so include_cost_basis is ignored.

        Raises:
            RateLimitedError: IBKR throttled the request or a poll.
            ProtocolError: No reference code, or the broker reported an error.
            SyncTimeoutError: The statement was not ready within max_attempts polls.
        """
        state = await self.run(credentials["token"], credentials["query_id"])
        return parse_statement(state.statement or "")

    async def run(self, token: str, query_id: str) -> PollingState:
        """Drive the polling state machine to a READY state or raise its error."""
        state = PollingState(max_attempts=self._max_attempts)
        params = FlexRequestParams(token=token, query_id=query_id).model_dump(by_alias=True)
        xml = await self._get_text(self.REQUEST_PATH, params)
        state = on_request_response(state, xml)

        while state.phase is FlexPhase.POLLING:
            if state.attempts > 0:
                await asyncio.sleep(self._poll_interval)
            logger.info(
                "Polling IBKR statement %s (attempt %d/%d)",
                state.reference_code,
                state.attempts + 1,
                state.max_attempts,
            )
            params = FlexStatementParams(
                reference_code=state.reference_code or "", token=token
            ).model_dump(by_alias=True)
            xml = await self._get_text(self.STATEMENT_PATH, params)
            state = on_statement_response(state, xml)

        if state.phase is FlexPhase.FAILED and state.error is not None:
            logger.warning("IBKR statement retrieval failed: %s", state.error)
            raise state.error
        logger.info("IBKR statement ready after %d attempts", state.attempts)
        return state

    async def _get_text(self, path: str, params: dict) -> str:
        """GET a Flex endpoint and return the body; only empty server errors are fatal here."""
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise ProtocolError(f"IBKR request failed: {exc}", endpoint=path) from exc
        text = response.text
        if response.status_code >= 500 and not text.strip():
            raise ProtocolError(
                f"IBKR error ({path}): {response.status_code}",
                endpoint=path,
                status_code=response.status_code,
            )
        return text

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
