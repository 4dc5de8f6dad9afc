import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from portfolio_sync.brokers.core import ProtocolError, SyncTimeoutError
from portfolio_sync.config import Settings
from portfolio_sync.container import Container
from portfolio_sync.main import app
from portfolio_sync.schemas import FundPriceRefreshResult
from conftest import TEST_KEY
from test_sync_service import FakeBinanceClient

SERVICE_TOKEN = "service-token"
USER = {"X-User-Id": "u1"}
BINANCE_FIELDS = {"fields": {"api_key": "key", "api_secret": "secret"}}


def build_client(engine, binance):
    container = Container()
    container.settings.override(
        providers.Object(
            Settings(
                encryption_key=TEST_KEY,
                service_token=SERVICE_TOKEN,
                user_pacing_seconds=0,
                eodhd_api_token=None,
            )
        )
    )
    container.db_engine.override(providers.Object(engine))
    container.broker_clients.override(providers.Dict(binance=providers.Object(binance)))
    app.state.container = container
    return TestClient(app)


@pytest.fixture
def binance():
    return FakeBinanceClient()


@pytest.fixture
def client(engine, binance):
    with build_client(engine, binance) as c:
        yield c
    del app.state.container


def test_health(client):
    assert client.get("/").json() == {"status": "ok"}


def test_save_credentials_then_sync(client):
    r = client.put("/brokers/binance/credentials", json=BINANCE_FIELDS, headers=USER)
    assert r.status_code == 200
    assert r.json()["success"] is True

    r = client.post("/sync/binance", headers=USER)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["created"] == 2
    assert body["total_value_usd"] == pytest.approx(3025)

    history = client.get("/sync/binance/history", headers=USER).json()
    assert [h["status"] for h in history] == ["success"]
    assert history[0]["cash_by_currency"] == {"USD": 25}


def test_requests_without_user_are_rejected(client):
    assert client.post("/sync/binance").status_code == 401


def test_missing_required_field_is_422(client):
    r = client.put(
        "/brokers/binance/credentials", json={"fields": {"api_key": "key"}}, headers=USER
    )
    assert r.status_code == 422


def test_sync_without_credentials_is_404(client):
    r = client.post("/sync/binance", headers=USER)
    assert r.status_code == 404
    assert r.json() == {
        "success": False,
        "error": "No binance config found. Please configure binance first.",
    }


def test_unknown_broker_is_404(client):
    assert client.post("/sync/degiro", headers=USER).status_code == 404


@pytest.mark.parametrize(
    "error, status_code",
    [(ProtocolError("IBKR error: Token has expired."), 502), (SyncTimeoutError(), 504)],
)
def test_broker_failures_are_mapped(client, binance, error, status_code):
    client.put("/brokers/binance/credentials", json=BINANCE_FIELDS, headers=USER)
    binance.error = error
    r = client.post("/sync/binance", headers=USER)
    assert r.status_code == status_code
    assert r.json()["success"] is False
    assert r.json()["error"] == str(error)


def test_batch_requires_service_token(client):
    assert client.post("/sync/binance/all").status_code == 403
    r = client.post("/sync/binance/all", headers={"X-Service-Token": SERVICE_TOKEN})
    assert r.status_code == 200
    assert r.json()["total"] == 0


def test_batch_syncs_every_user(client):
    for user_id in ("u1", "u2"):
        client.put(
            "/brokers/binance/credentials", json=BINANCE_FIELDS, headers={"X-User-Id": user_id}
        )
    r = client.post("/sync/binance/all", headers={"X-Service-Token": SERVICE_TOKEN})
    assert r.json()["synced"] == 2


def test_import_movements(client):
    payload = {
        "movements": [
            {"isin": "IE00B03HCZ61", "date": "2024-01-15", "shares": 10, "amount": 1000,
             "status": "Finalizada"},
        ]
    }
    r = client.post("/imports/myinvestor/movements", json=payload, headers=USER)
    assert r.status_code == 200
    assert r.json() == {
        "success": True, "imported": 1, "duplicates": 0, "errors": 0,
        "new_funds": ["IE00B03HCZ61"],
    }


def test_import_requires_movements(client):
    r = client.post("/imports/myinvestor/movements", json={"movements": []}, headers=USER)
    assert r.status_code == 422


class FakeFundPriceService:
    enabled = True

    def __init__(self):
        self.sources = []

    async def refresh_prices(self, source="myinvestor"):
        self.sources.append(source)
        return FundPriceRefreshResult(updated=3, errors=1, isins_processed=2)


def test_fund_price_refresh_requires_service_token(client):
    r = client.post("/imports/myinvestor/prices/refresh", headers=USER)
    assert r.status_code == 403


def test_fund_price_refresh_without_eodhd_token(client):
    r = client.post(
        "/imports/myinvestor/prices/refresh", headers={"X-Service-Token": SERVICE_TOKEN}
    )
    assert r.status_code == 503


def test_fund_price_refresh(client):
    fake = FakeFundPriceService()
    app.state.container.fund_price_service.override(providers.Object(fake))
    r = client.post(
        "/imports/MyInvestor/prices/refresh", headers={"X-Service-Token": SERVICE_TOKEN}
    )
    assert r.status_code == 200
    assert r.json() == {"success": True, "updated": 3, "errors": 1, "isins_processed": 2}
    assert fake.sources == ["myinvestor"]
