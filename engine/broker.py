"""Broker cost model for commissions, stamp tax and lot sizing.

The BrokerModel handles:
- Proportional commission (charged on both entry and exit)
- Stamp tax (charged on exits only)
- Lot-aligned quantity sizing against a cash budget

Key principle: The broker enforces cost rules, the engines don't know the math.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import math


@dataclass
class BrokerModel:
    """Broker cost model.

    Attributes:
        fee_rate: Proportional commission rate applied on both sides (10 bps = 0.001)
        stamp_rate: Proportional stamp tax applied on sells only
        lot: Minimum tradable unit. Quantities are integer multiples of it.
            None means continuously divisible shares.
    """
    fee_rate: float = 0.0
    stamp_rate: float = 0.0
    lot: Optional[int] = None

    @classmethod
    def from_bps(cls, fee_bps: float, stamp_bps: float, lot: Optional[int] = None) -> 'BrokerModel':
        """Build a broker from basis-point rates."""
        return cls(fee_rate=fee_bps / 10_000.0, stamp_rate=stamp_bps / 10_000.0, lot=lot)

    def calculate_commission(self, price: float, quantity: float) -> float:
        """Commission for a trade of quantity at price."""
        return price * quantity * self.fee_rate

    def calculate_stamp_tax(self, price: float, quantity: float) -> float:
        """Stamp tax for a sell of quantity at price."""
        return price * quantity * self.stamp_rate

    def entry_cost(self, price: float, quantity: float) -> Tuple[float, float, float]:
        """Cost of a buy.

        Returns:
            Tuple of (gross, commission, total_cost)
        """
        gross = quantity * price
        fee = self.calculate_commission(price, quantity)
        return gross, fee, gross + fee

    def exit_proceeds(self, price: float, quantity: float) -> Tuple[float, float, float, float]:
        """Proceeds of a sell.

        Returns:
            Tuple of (gross, commission, stamp_tax, net)
        """
        gross = quantity * price
        fee = self.calculate_commission(price, quantity)
        stamp = self.calculate_stamp_tax(price, quantity)
        return gross, fee, stamp, gross - fee - stamp

    def unit_cost(self, price: float) -> float:
        """Cash needed for one lot at price, commission included."""
        lot = self.lot or 1
        return price * lot * (1.0 + self.fee_rate)

    def max_affordable_quantity(self, price: float, budget: float) -> float:
        """Largest quantity whose cost (commission included) fits the budget.

        Lot-aligned when a lot is configured, continuous otherwise.
        """
        if price <= 0 or budget <= 0:
            return 0
        per_share = price * (1.0 + self.fee_rate)
        if self.lot is None:
            return budget / per_share
        lots = math.floor(budget / (per_share * self.lot))
        return lots * self.lot if lots > 0 else 0

    def can_afford_position(self, price: float, quantity: float, available_cash: float) -> Tuple[bool, float]:
        """Check if cash covers a position.

        Returns:
            Tuple of (can_afford, required_cash)
        """
        _, _, required_cash = self.entry_cost(price, quantity)
        # Allow small floating point errors
        return required_cash <= available_cash + 1e-9, required_cash
