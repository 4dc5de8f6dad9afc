"""Parsing of ready Flex statements into positions and cash balances.

A statement is a flat list of self-closing records whose data lives in
attributes. Cash balances have appeared under two tag formats over time; each
is a separate strategy tried in a fixed order.
"""
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from portfolio_sync.brokers.core.exceptions import ProtocolError
from portfolio_sync.brokers.core.utils import to_float
from portfolio_sync.brokers.ibkr.models import (TRACKED_CURRENCIES,
                                                FlexPosition, FlexReport)

logger = logging.getLogger(__name__)


def parse_document(xml: str) -> ET.Element:
    """Parse a Flex XML payload, mapping syntax errors to ProtocolError."""
    try:
        return ET.fromstring(xml)
    except ET.ParseError as exc:
        raise ProtocolError(f"IBKR returned malformed XML: {exc}") from exc


def parse_position(attrs: dict[str, str]) -> FlexPosition:
    """Build a FlexPosition from the attributes of an <OpenPosition/> record."""
    return FlexPosition(
        symbol=attrs.get("symbol", ""),
        description=attrs.get("description", ""),
        conid=attrs.get("conid", ""),
        isin=attrs.get("isin") or None,
        quantity=to_float(attrs.get("position")),
        mark_price=to_float(attrs.get("markPrice")),
        cost_basis_price=to_float(attrs.get("costBasisPrice")),
        unrealized_pnl=to_float(attrs.get("fifoPnlUnrealized")),
        asset_category=attrs.get("assetCategory") or "STK",
        currency=attrs.get("currency") or "USD",
        exchange=attrs.get("listingExchange", ""),
    )


def parse_positions(root: ET.Element) -> list[FlexPosition]:
    positions = [parse_position(el.attrib) for el in root.iter("OpenPosition")]
    logger.info("Parsed %d IBKR positions", len(positions))
    return positions


@dataclass(frozen=True)
class TaggedCashStrategy:
    """Reads endingCash per tracked currency from records with a given tag."""

    tag: str

    def parse(self, root: ET.Element) -> dict[str, float]:
        balances = {currency: 0.0 for currency in TRACKED_CURRENCIES}
        for el in root.iter(self.tag):
            currency = el.get("currency", "")
            if currency in balances:
                balances[currency] = to_float(el.get("endingCash"))
        return balances


# Primary format first; the legacy tag is only consulted if the primary finds nothing.
CASH_STRATEGIES: tuple[TaggedCashStrategy, ...] = (
    TaggedCashStrategy("CashReportCurrency"),
    TaggedCashStrategy("CashReport"),
)


def parse_cash_balances(
    root: ET.Element,
    strategies: tuple[TaggedCashStrategy, ...] = CASH_STRATEGIES,
) -> dict[str, float]:
    """Return EUR/USD ending cash using the first strategy that yields any balance."""
    for strategy in strategies:
        balances = strategy.parse(root)
        if any(balances.values()):
            logger.info("Parsed IBKR cash balances via %s: %s", strategy.tag, balances)
            return balances
    return {currency: 0.0 for currency in TRACKED_CURRENCIES}


def parse_statement(xml: str) -> FlexReport:
    """Parse a ready Flex statement into a FlexReport."""
    root = parse_document(xml)
    return FlexReport(
        positions=parse_positions(root),
        cash_balances=parse_cash_balances(root),
    )
