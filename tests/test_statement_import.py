from datetime import date

import httpx
import pytest

from portfolio_sync.db import Holding, PortfolioStore
from portfolio_sync.pricing import EodhdClient
from portfolio_sync.schemas import StatementMovement
from portfolio_sync.services.statement_import import StatementImportService

USER = "user-1"
ISIN = "IE00B03HCZ61"


def movements():
    return [
        StatementMovement(isin=ISIN, date=date(2024, 1, 15), shares=10, amount=1000,
                          name="Vanguard Global Stock", status="Finalizada"),
        StatementMovement(isin=ISIN, date=date(2024, 2, 15), shares=5, amount=600,
                          status="Finalizada"),
        StatementMovement(isin="ES0165151004", date=date(2024, 2, 20), shares=2, amount=300,
                          status="completed"),
        StatementMovement(isin=ISIN, date=date(2024, 3, 15), shares=5, amount=650,
                          status="Pendiente"),
    ]


def lookup_client(handler, token="eod-token") -> EodhdClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=EodhdClient.BASE_URL)
    return EodhdClient(api_token=token, client=http)


@pytest.mark.asyncio
async def test_creates_fund_holdings_from_completed_movements(get_session):
    result = await StatementImportService(get_session).import_movements(
        USER, "myinvestor", movements()
    )
    assert result.success
    assert (result.imported, result.duplicates, result.errors) == (3, 0, 0)
    assert result.new_funds == [ISIN, "ES0165151004"]

    with get_session() as session:
        store = PortfolioStore(session)
        fund = store.get_holding(USER, "myinvestor", ISIN)
        assert fund.name == "Vanguard Global Stock"
        assert fund.asset_class == "fund"
        assert fund.currency == "EUR"
        assert fund.quantity == 15
        assert fund.cost_basis == pytest.approx(1600 / 15)
        assert [t.amount for t in store.list_transactions(fund.id)] == [1000, 600]
        other = store.get_holding(USER, "myinvestor", "ES0165151004")
        assert other.name == "Fund ES0165151004"


@pytest.mark.asyncio
async def test_reimport_only_counts_duplicates(get_session):
    service = StatementImportService(get_session)
    await service.import_movements(USER, "myinvestor", movements())
    result = await service.import_movements(USER, "myinvestor", movements())
    assert (result.imported, result.duplicates, result.new_funds) == (0, 3, [])
    with get_session() as session:
        assert PortfolioStore(session).get_holding(USER, "myinvestor", ISIN).quantity == 15


@pytest.mark.asyncio
async def test_existing_holding_gets_additive_update(get_session):
    with get_session() as session:
        PortfolioStore(session).add(
            Holding(user_id=USER, source="myinvestor", external_id=ISIN, isin=ISIN,
                    symbol=ISIN, name="Fund", asset_class="fund", quantity=10,
                    cost_basis=90, currency="EUR")
        )
    result = await StatementImportService(get_session).import_movements(
        USER, "myinvestor", movements()[1:2]
    )
    assert result.new_funds == []
    with get_session() as session:
        fund = PortfolioStore(session).get_holding(USER, "myinvestor", ISIN)
        assert fund.quantity == 15
        assert fund.cost_basis == pytest.approx((10 * 90 + 600) / 15)


@pytest.mark.asyncio
async def test_invalid_movements_are_counted_as_errors(get_session):
    bad = StatementMovement(isin=ISIN, date=date(2024, 1, 1), shares=0, amount=10)
    result = await StatementImportService(get_session).import_movements(USER, "myinvestor", [bad])
    assert (result.imported, result.errors) == (0, 1)


@pytest.mark.asyncio
async def test_new_funds_take_name_and_type_from_lookup(get_session):
    searched = []

    def handler(request: httpx.Request) -> httpx.Response:
        isin = request.url.path.rsplit("/", 1)[-1]
        searched.append(isin)
        if isin == ISIN:
            return httpx.Response(200, json=[
                {"Code": "0P0000YXJO", "Exchange": "EUFUND", "Name": "Vanguard Global Stock Index",
                 "Type": "FUND", "ISIN": ISIN},
            ])
        return httpx.Response(200, json=[
            {"Code": "IWDA", "Exchange": "AS", "Name": "iShares Core MSCI World",
             "Type": "ETF", "ISIN": isin},
        ])

    async with lookup_client(handler) as client:
        await StatementImportService(get_session, client).import_movements(
            USER, "myinvestor", movements()
        )
        # Known funds are not looked up again
        await StatementImportService(get_session, client).import_movements(
            USER, "myinvestor", movements()
        )

    assert searched == [ISIN, "ES0165151004"]
    with get_session() as session:
        store = PortfolioStore(session)
        fund = store.get_holding(USER, "myinvestor", ISIN)
        assert fund.name == "Vanguard Global Stock Index"
        assert fund.asset_class == "fund"
        etf = store.get_holding(USER, "myinvestor", "ES0165151004")
        assert etf.name == "iShares Core MSCI World"
        assert etf.asset_class == "etf"


@pytest.mark.asyncio
async def test_failed_lookup_falls_back_to_default_name(get_session):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    async with lookup_client(handler) as client:
        result = await StatementImportService(get_session, client).import_movements(
            USER, "myinvestor", movements()[2:3]
        )
    assert result.imported == 1
    with get_session() as session:
        fund = PortfolioStore(session).get_holding(USER, "myinvestor", "ES0165151004")
        assert fund.name == "Fund ES0165151004"
        assert fund.asset_class == "fund"


@pytest.mark.asyncio
async def test_unconfigured_lookup_is_not_called(get_session):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with lookup_client(handler, token=None) as client:
        result = await StatementImportService(get_session, client).import_movements(
            USER, "myinvestor", movements()[2:3]
        )
    assert result.new_funds == ["ES0165151004"]
