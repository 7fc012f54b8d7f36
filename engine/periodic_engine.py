"""Periodic-ideal portfolio simulator for calendar rotation strategies.

Each period buys its picks on the first trading date and liquidates everything
on the last. Allocation happens once per period over the whole cash balance
with continuously divisible shares, so there is no lot rounding and no
same-day cash contention.
"""

from typing import Dict, List, Optional, Sequence
import logging

import numpy as np

from config.schema import BacktestConfig
from engine.account import AccountState
from engine.broker import BrokerModel
from engine.models import (
    REASON_PERIOD_EXIT,
    BacktestResult,
    EntryInfo,
    PeriodPlan,
    Position,
    SecuritySeries,
    Trade,
    is_valid_price,
)
from metrics.metrics import summarize

logger = logging.getLogger(__name__)


class PeriodicIdealSimulator:
    """Replays period plans over the union of the universe's trading dates."""

    def __init__(self, series_by_id: Dict[str, SecuritySeries], config: BacktestConfig):
        self.series_by_id = series_by_id
        self.config = config
        # Continuous shares: no lot constraint in this mode
        self.broker = BrokerModel.from_bps(config.fee_bps, config.stamp_bps, lot=None)
        self.account = AccountState(cash=float(config.initial_capital))
        self.trades: List[Trade] = []
        self.active: Optional[PeriodPlan] = None

    def trading_dates(self) -> List[int]:
        """Sorted union of in-window observed dates across the universe."""
        if not self.series_by_id:
            return []
        all_dates = np.unique(np.concatenate([s.dates for s in self.series_by_id.values()]))
        start, end = self.config.start_date, self.config.end_date
        return [int(d) for d in all_dates if start <= d <= end]

    def run(self, plans: Sequence[PeriodPlan]) -> BacktestResult:
        """
        Replay rotation plans.

        Args:
            plans: Period plans; plans reaching outside the window are ignored

        Returns:
            BacktestResult in 'periodic' mode
        """
        start, end = self.config.start_date, self.config.end_date
        plans_by_buy: Dict[int, PeriodPlan] = {}
        for plan in sorted(plans, key=lambda p: p.buy_date):
            if plan.buy_date < start or plan.sell_date > end or plan.buy_date >= plan.sell_date:
                continue
            plans_by_buy.setdefault(plan.buy_date, plan)

        dates = self.trading_dates()
        logger.info(f"Periodic replay: {len(plans_by_buy)} periods over {len(dates)} trading dates")

        for date in dates:
            self._mark_to(date)

            if self.active is not None and date == self.active.sell_date:
                self._liquidate(date)

            plan = plans_by_buy.get(date)
            if plan is not None:
                if self.active is not None:
                    logger.warning(
                        f"Period {plan.period_key} starts on {date} while {self.active.period_key} "
                        f"is still open, skipping it"
                    )
                else:
                    self._enter(plan)

            self.account.record_equity(date)

        if self.account.positions:
            logger.warning(f"{len(self.account.positions)} positions still open at end of periodic replay")

        curve = list(self.account.equity_curve)
        summary = summarize(curve, self.trades, self.config.initial_capital)
        summary['commission_paid'] = self.account.commission_paid
        summary['stamp_tax_paid'] = self.account.stamp_tax_paid
        logger.info(
            f"Periodic replay done: final equity {summary['final_equity']:.2f}, "
            f"{summary['trade_count']} trades"
        )
        return BacktestResult(
            initial_capital=self.config.initial_capital,
            equity_curve=curve,
            trades=list(self.trades),
            summary=summary,
            open_positions=dict(self.account.positions),
            mode='periodic',
        )

    def _mark_to(self, date: int) -> None:
        for security_id in list(self.account.positions):
            price = self.series_by_id[security_id].price_at(date)
            if is_valid_price(price):
                self.account.mark_position(security_id, price)

    def _liquidate(self, date: int) -> None:
        """Sell every open position at its last mark."""
        for security_id in sorted(self.account.positions):
            position = self.account.positions[security_id]
            price = position.last_mark_price
            gross, fee, stamp, net = self.broker.exit_proceeds(price, position.shares)
            self.account.close_position(security_id, net, commission=fee, stamp_tax=stamp)
            cost_basis = position.entry.cost_basis
            pnl = net - cost_basis
            self.trades.append(Trade(
                security_id=security_id,
                entry_date=position.entry.date,
                exit_date=date,
                entry_price=position.entry.price,
                exit_price=price,
                shares=position.shares,
                pnl=pnl,
                trade_return=pnl / cost_basis if cost_basis > 0 else float('nan'),
                reason=REASON_PERIOD_EXIT,
                fees=position.entry.fee + fee + stamp,
                period_key=position.entry.period_key,
            ))
        self.active = None

    def eligible_picks(self, plan: PeriodPlan) -> List[str]:
        """Unique picks with a valid quote on both the buy and the sell date."""
        eligible: List[str] = []
        for security_id in plan.picks:
            if security_id in eligible:
                continue
            series = self.series_by_id.get(security_id)
            if series is None:
                logger.debug(f"Period {plan.period_key}: unknown pick {security_id}")
                continue
            if not (is_valid_price(series.price_at(plan.buy_date))
                    and is_valid_price(series.price_at(plan.sell_date))):
                logger.debug(f"Period {plan.period_key}: {security_id} lacks a quote on buy or sell date")
                continue
            eligible.append(security_id)
        return eligible

    def _enter(self, plan: PeriodPlan) -> None:
        """Split all cash equally across the period's eligible picks."""
        picks = self.eligible_picks(plan)
        if not picks:
            logger.debug(f"Period {plan.period_key}: no eligible picks")
            return

        for k, security_id in enumerate(picks):
            series = self.series_by_id[security_id]
            idx = series.index_of(plan.buy_date)
            price = float(series.close[idx])
            budget = self.account.cash / (len(picks) - k)
            shares = self.broker.max_affordable_quantity(price, budget)
            if shares <= 0:
                continue
            gross, fee, total_cost = self.broker.entry_cost(price, shares)
            total_cost = min(total_cost, self.account.cash)
            position = Position(
                security_id=security_id,
                shares=shares,
                last_mark_price=price,
                next_index=idx + 1,
                entry=EntryInfo(
                    date=plan.buy_date,
                    price=price,
                    cost_basis=total_cost,
                    fee=fee,
                    period_key=plan.period_key,
                ),
            )
            self.account.open_position(position, total_cost, commission=fee)
        self.active = plan
