import httpx
import pytest

from portfolio_sync.brokers.binance import BinanceClient
from portfolio_sync.brokers.binance.signing import (API_KEY_HEADER,
                                                    create_signature)
from portfolio_sync.brokers.core import (AuthenticationError, ProtocolError,
                                         RateLimitedError)

CREDENTIALS = {"api_key": "key-abc", "api_secret": "secret-xyz"}

ACCOUNT = {
    "balances": [
        {"asset": "BTC", "free": "0.5", "locked": "0.1"},
        {"asset": "USDT", "free": "50", "locked": "0"},
        {"asset": "SHIB", "free": "0", "locked": "0"},
    ]
}
FLEXIBLE = {"rows": [{"asset": "ETH", "totalAmount": "2"}, {"asset": "BTC", "totalAmount": "0.4"}]}
LOCKED = {"rows": [{"asset": "DOT", "amount": "10"}], "total": 1}
TICKER = [
    {"symbol": "BTCUSDT", "price": "30000"},
    {"symbol": "ETHUSDT", "price": "2000"},
    {"symbol": "DOTUSDT", "price": "5"},
    {"symbol": "ETHBTC", "price": "0.06"},
]
TRADES = {
    "BTCUSDT": [
        {"id": 2, "symbol": "BTCUSDT", "price": "40000", "qty": "0.5",
         "quoteQty": "20000", "time": 1700000100000, "isBuyer": True},
        {"id": 1, "symbol": "BTCUSDT", "price": "20000", "qty": "0.5",
         "quoteQty": "10000", "time": 1700000000000, "isBuyer": True},
    ],
}


class FakeBinance:
    """Routes Binance endpoints to canned payloads and records what was called."""

    def __init__(self, overrides=None):
        self.overrides = overrides or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.overrides:
            override = self.overrides[path]
            return override() if callable(override) else override
        if path == BinanceClient.ACCOUNT_PATH:
            return httpx.Response(200, json=ACCOUNT)
        if path == BinanceClient.EARN_FLEXIBLE_PATH:
            return httpx.Response(200, json=FLEXIBLE)
        if path == BinanceClient.EARN_LOCKED_PATH:
            return httpx.Response(200, json=LOCKED)
        if path == BinanceClient.TICKER_PATH:
            return httpx.Response(200, json=TICKER)
        if path == BinanceClient.MY_TRADES_PATH:
            symbol = request.url.params["symbol"]
            if symbol in TRADES:
                return httpx.Response(200, json=TRADES[symbol])
            return httpx.Response(400, json={"code": -1121, "msg": "Invalid symbol."})
        return httpx.Response(404)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def make_client(fake: FakeBinance) -> BinanceClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake), base_url=BinanceClient.BASE_URL)
    return BinanceClient(trade_fetch_delay=0, client=http)


@pytest.mark.asyncio
async def test_aggregates_spot_and_earn_balances():
    fake = FakeBinance()
    async with make_client(fake) as client:
        account = await client.fetch_snapshot(CREDENTIALS, include_cost_basis=False)
    by_asset = {b.asset: b for b in account.balances}
    assert set(by_asset) == {"BTC", "USDT", "ETH", "DOT"}
    assert by_asset["BTC"].total == pytest.approx(1.0)
    assert by_asset["BTC"].earn_flexible == pytest.approx(0.4)
    assert by_asset["DOT"].earn_locked == pytest.approx(10)
    assert by_asset["ETH"].value_usd == pytest.approx(4000)
    assert by_asset["USDT"].price_usd == 1.0
    assert account.total_value_usd == pytest.approx(30000 + 50 + 4000 + 50)
    assert account.cash_balances == {"USD": 50}
    assert BinanceClient.MY_TRADES_PATH not in fake.paths()


@pytest.mark.asyncio
async def test_signed_requests_carry_key_header_and_signature():
    fake = FakeBinance()
    async with make_client(fake) as client:
        await client.fetch_snapshot(CREDENTIALS, include_cost_basis=False)
    account_request = fake.requests[0]
    assert account_request.headers[API_KEY_HEADER] == "key-abc"
    query = account_request.url.query.decode()
    unsigned, _, signature = query.rpartition("&signature=")
    assert "timestamp=" in unsigned
    assert signature == create_signature(unsigned, "secret-xyz")
    ticker_request = next(r for r in fake.requests if r.url.path == BinanceClient.TICKER_PATH)
    assert API_KEY_HEADER not in ticker_request.headers


@pytest.mark.asyncio
async def test_cost_basis_from_sorted_trade_history():
    fake = FakeBinance()
    async with make_client(fake) as client:
        account = await client.fetch_snapshot(CREDENTIALS, include_cost_basis=True)
    by_asset = {b.asset: b for b in account.balances}
    assert by_asset["BTC"].cost_basis == pytest.approx(30000)
    assert [t.id for t in account.trades["BTC"]] == [1, 2]
    # Pairs without trades are skipped, stablecoins are never queried
    assert by_asset["ETH"].cost_basis is None
    symbols = [
        r.url.params["symbol"] for r in fake.requests if r.url.path == BinanceClient.MY_TRADES_PATH
    ]
    assert "USDTUSDT" not in symbols
    assert set(symbols) == {"BTCUSDT", "ETHUSDT", "DOTUSDT"}


@pytest.mark.asyncio
async def test_unavailable_earn_endpoints_are_skipped():
    fake = FakeBinance(
        {
            BinanceClient.EARN_FLEXIBLE_PATH: httpx.Response(404),
            BinanceClient.EARN_LOCKED_PATH: httpx.Response(500, text="boom"),
        }
    )
    async with make_client(fake) as client:
        account = await client.fetch_snapshot(CREDENTIALS, include_cost_basis=False)
    assert {b.asset for b in account.balances} == {"BTC", "USDT"}


@pytest.mark.asyncio
async def test_rejected_key_is_authentication_error():
    fake = FakeBinance(
        {
            BinanceClient.ACCOUNT_PATH: httpx.Response(
                401, json={"code": -2015, "msg": "Invalid API-key, IP, or permissions for action."}
            )
        }
    )
    async with make_client(fake) as client:
        with pytest.raises(AuthenticationError):
            await client.fetch_snapshot(CREDENTIALS)


@pytest.mark.asyncio
async def test_bad_signature_code_is_authentication_error():
    fake = FakeBinance(
        {BinanceClient.ACCOUNT_PATH: httpx.Response(400, json={"code": -1022, "msg": "Signature"})}
    )
    async with make_client(fake) as client:
        with pytest.raises(AuthenticationError):
            await client.fetch_snapshot(CREDENTIALS)


@pytest.mark.asyncio
async def test_rate_limit_status():
    fake = FakeBinance({BinanceClient.ACCOUNT_PATH: httpx.Response(429, json={"code": -1003})})
    async with make_client(fake) as client:
        with pytest.raises(RateLimitedError):
            await client.fetch_snapshot(CREDENTIALS)


@pytest.mark.asyncio
async def test_required_endpoint_failure_names_endpoint_and_status():
    fake = FakeBinance({BinanceClient.TICKER_PATH: httpx.Response(503, text="unavailable")})
    async with make_client(fake) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.fetch_snapshot(CREDENTIALS)
    assert excinfo.value.endpoint == BinanceClient.TICKER_PATH
    assert excinfo.value.status_code == 503
    assert "503" in str(excinfo.value)


@pytest.mark.asyncio
async def test_empty_earn_body_skips_the_tier():
    fake = FakeBinance({BinanceClient.EARN_FLEXIBLE_PATH: httpx.Response(200, content=b"")})
    async with make_client(fake) as client:
        account = await client.fetch_snapshot(CREDENTIALS, include_cost_basis=False)
    by_asset = {b.asset: b for b in account.balances}
    assert set(by_asset) == {"BTC", "USDT", "DOT"}
    assert by_asset["BTC"].earn_flexible == 0


@pytest.mark.asyncio
async def test_earn_list_body_skips_the_tier():
    fake = FakeBinance({BinanceClient.EARN_LOCKED_PATH: httpx.Response(200, json=[])})
    async with make_client(fake) as client:
        account = await client.fetch_snapshot(CREDENTIALS, include_cost_basis=False)
    assert {b.asset for b in account.balances} == {"BTC", "USDT", "ETH"}


@pytest.mark.asyncio
async def test_html_trade_pages_leave_cost_basis_empty():
    fake = FakeBinance(
        {
            BinanceClient.MY_TRADES_PATH: lambda: httpx.Response(
                200, text="<html>maintenance</html>"
            )
        }
    )
    async with make_client(fake) as client:
        account = await client.fetch_snapshot(CREDENTIALS, include_cost_basis=True)
    assert account.trades == {}
    assert all(b.cost_basis is None for b in account.balances)
    assert fake.paths().count(BinanceClient.MY_TRADES_PATH) == 3


@pytest.mark.asyncio
async def test_html_account_page_is_protocol_error():
    fake = FakeBinance(
        {BinanceClient.ACCOUNT_PATH: httpx.Response(200, text="<html>maintenance</html>")}
    )
    async with make_client(fake) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.fetch_snapshot(CREDENTIALS)
    assert excinfo.value.endpoint == BinanceClient.ACCOUNT_PATH
    assert excinfo.value.status_code == 200
    assert "invalid JSON" in str(excinfo.value)


@pytest.mark.asyncio
async def test_invalid_ticker_json_is_protocol_error():
    fake = FakeBinance({BinanceClient.TICKER_PATH: httpx.Response(200, text="not json")})
    async with make_client(fake) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.fetch_snapshot(CREDENTIALS)
    assert excinfo.value.endpoint == BinanceClient.TICKER_PATH
    assert "invalid JSON" in str(excinfo.value)
