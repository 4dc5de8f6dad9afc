"""Weighted-average cost basis from a stream of trades.

This is an approximation, not FIFO lot tracking: a sale removes quantity at
the current average cost, so the average itself never changes on disposal.
"""
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class Trade:
    """A single fill as seen by the calculator."""

    quantity: float
    price: float
    is_buy: bool


class CostBasisCalculator:
    """Running (total_quantity, total_cost) accumulator."""

    def __init__(self) -> None:
        self.total_quantity = 0.0
        self.total_cost = 0.0

    def buy(self, quantity: float, price: float) -> None:
        self.total_cost += quantity * price
        self.total_quantity += quantity

    def sell(self, quantity: float) -> None:
        """Reduce the position at the current average cost; oversells are clamped."""
        if self.total_quantity <= 0:
            return
        avg_cost = self.total_cost / self.total_quantity
        sell_quantity = min(quantity, self.total_quantity)
        self.total_cost -= sell_quantity * avg_cost
        self.total_quantity -= sell_quantity

    def add(self, trade: Trade) -> None:
        if trade.is_buy:
            self.buy(trade.quantity, trade.price)
        else:
            self.sell(trade.quantity)

    @property
    def average_cost(self) -> float | None:
        """Average acquisition cost, or None when nothing is held (never zero)."""
        if self.total_quantity > 0:
            return self.total_cost / self.total_quantity
        return None


def weighted_average_cost(trades: Iterable[Trade]) -> float | None:
    """Average cost of the remaining position after replaying trades in order."""
    calculator = CostBasisCalculator()
    for trade in trades:
        calculator.add(trade)
    return calculator.average_cost
