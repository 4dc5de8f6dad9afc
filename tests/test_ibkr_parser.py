import pytest

from portfolio_sync.brokers.core import ProtocolError
from portfolio_sync.brokers.ibkr.models import map_asset_category
from portfolio_sync.brokers.ibkr.parser import parse_statement

STATEMENT = """<FlexQueryResponse queryName="positions" type="AF">
<FlexStatements count="1">
<FlexStatement accountId="U1234567">
<OpenPositions>
<OpenPosition symbol="AAPL" description="APPLE INC" conid="265598" isin="US0378331005"
  position="10" markPrice="190.5" costBasisPrice="150" fifoPnlUnrealized="405"
  assetCategory="STK" currency="USD" listingExchange="NASDAQ" />
<OpenPosition symbol="VWCE" description="VANGUARD FTSE ALL-WORLD" conid="128831206"
  position="-2" markPrice="110" costBasisPrice="100" fifoPnlUnrealized="-20"
  assetCategory="ETF" currency="EUR" listingExchange="IBIS2" />
</OpenPositions>
<CashReport>
<CashReportCurrency currency="BASE_SUMMARY" endingCash="999" />
<CashReportCurrency currency="EUR" endingCash="1500.25" />
<CashReportCurrency currency="USD" endingCash="300" />
</CashReport>
</FlexStatement>
</FlexStatements>
</FlexQueryResponse>"""

LEGACY_CASH = """<FlexQueryResponse><FlexStatements count="1"><FlexStatement>
<CashReport currency="EUR" endingCash="42" />
<CashReport currency="GBP" endingCash="7" />
</FlexStatement></FlexStatements></FlexQueryResponse>"""


def test_parses_positions():
    report = parse_statement(STATEMENT)
    assert report.positions_count == 2
    aapl = report.positions[0]
    assert aapl.conid == "265598"
    assert aapl.isin == "US0378331005"
    assert aapl.quantity == 10
    assert aapl.position_value == pytest.approx(1905)
    assert aapl.unrealized_pnl_percent == pytest.approx(405 / 1500 * 100)
    assert aapl.exchange == "NASDAQ"


def test_short_position_keeps_sign():
    short = parse_statement(STATEMENT).positions[1]
    assert short.quantity == -2
    assert short.isin is None
    assert short.currency == "EUR"


def test_primary_cash_format_tracks_eur_and_usd_only():
    report = parse_statement(STATEMENT)
    assert report.cash_balances == {"EUR": 1500.25, "USD": 300.0}


def test_legacy_cash_format_is_fallback():
    report = parse_statement(LEGACY_CASH)
    assert report.positions == []
    assert report.cash_balances == {"EUR": 42.0, "USD": 0.0}


def test_missing_cash_yields_zeroes():
    report = parse_statement("<FlexQueryResponse><FlexStatements/></FlexQueryResponse>")
    assert report.cash_balances == {"EUR": 0.0, "USD": 0.0}


def test_malformed_xml_is_protocol_error():
    with pytest.raises(ProtocolError):
        parse_statement("<FlexStatements><broken")


@pytest.mark.parametrize(
    "category, expected",
    [("STK", "stock"), ("ETF", "etf"), ("BOND", "bond"), ("OPT", "other"), (None, "other")],
)
def test_map_asset_category(category, expected):
    assert map_asset_category(category) == expected
