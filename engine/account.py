"""Account state management for portfolio backtesting.

This module defines AccountState, which tracks:
- cash: Available cash balance
- positions: Open positions keyed by security id (at most one per security)
- total_market_value: Sum of shares * last mark over open positions
- equity_curve: Deduplicated (date -> equity) history
"""

from dataclasses import dataclass, field
from typing import Dict, List

from engine.models import EquityPoint, Position


class PortfolioInvariantError(RuntimeError):
    """Raised when the engine's ordering or allocation contracts are violated."""


@dataclass
class AccountState:
    """Account state tracking for portfolio backtesting.

    This class owns every open position and enforces the accounting invariant:
        total_market_value == sum(position.shares * position.last_mark_price)

    Attributes:
        cash: Available cash balance
        positions: Open positions keyed by security id
        total_market_value: Aggregate market value of open positions
        commission_paid: Total commission paid
        stamp_tax_paid: Total stamp tax paid
        equity_curve: One point per distinct date, ascending
    """
    cash: float
    positions: Dict[str, Position] = field(default_factory=dict)
    total_market_value: float = 0.0
    commission_paid: float = 0.0
    stamp_tax_paid: float = 0.0
    equity_curve: List[EquityPoint] = field(default_factory=list)

    @property
    def equity(self) -> float:
        """Equity = cash + total_market_value."""
        return self.cash + self.total_market_value

    def has_position(self, security_id: str) -> bool:
        return security_id in self.positions

    def open_position(self, position: Position, total_cost: float, commission: float = 0.0) -> None:
        """Debit cash and register a new position.

        Raises:
            PortfolioInvariantError: If the security already has an open position
                or the cost exceeds available cash
        """
        if position.security_id in self.positions:
            raise PortfolioInvariantError(
                f"Duplicate open position for {position.security_id}"
            )
        if total_cost > self.cash + 1e-9:
            raise PortfolioInvariantError(
                f"Buying {position.security_id} costs {total_cost:.6f} but cash is {self.cash:.6f}"
            )
        self.cash -= total_cost
        self.commission_paid += commission
        self.positions[position.security_id] = position
        self.total_market_value += position.market_value

    def mark_position(self, security_id: str, price: float) -> None:
        """Re-mark an open position and delta the aggregate market value."""
        position = self.positions[security_id]
        self.total_market_value += position.shares * (price - position.last_mark_price)
        position.last_mark_price = price

    def close_position(self, security_id: str, net_proceeds: float, commission: float = 0.0,
                       stamp_tax: float = 0.0) -> Position:
        """Remove a position and credit the net proceeds.

        The position must already be marked at its exit price.

        Raises:
            PortfolioInvariantError: If the security has no open position
        """
        position = self.positions.pop(security_id, None)
        if position is None:
            raise PortfolioInvariantError(f"No open position for {security_id}")
        self.cash += net_proceeds
        self.total_market_value -= position.market_value
        self.commission_paid += commission
        self.stamp_tax_paid += stamp_tax
        if not self.positions:
            # Snap accumulated float drift once the book is flat
            self.total_market_value = 0.0
        return position

    def validate_invariant(self, tolerance: float = 1e-6) -> None:
        """Validate the accounting invariant.

        Raises:
            PortfolioInvariantError: If cash is negative or the aggregate market
                value drifted from the per-position marks
        """
        if self.cash < -tolerance:
            raise PortfolioInvariantError(f"Negative cash: {self.cash:.6f}")
        expected = sum(p.market_value for p in self.positions.values())
        scale = max(1.0, abs(expected))
        if abs(expected - self.total_market_value) > tolerance * scale:
            raise PortfolioInvariantError(
                f"Market value drift: tracked={self.total_market_value:.6f}, actual={expected:.6f}"
            )

    def record_equity(self, date: int) -> None:
        """Record current equity; a second point on the same date replaces the first."""
        point = EquityPoint(date=int(date), equity=self.equity)
        if self.equity_curve and self.equity_curve[-1].date == point.date:
            self.equity_curve[-1] = point
        else:
            self.equity_curve.append(point)
