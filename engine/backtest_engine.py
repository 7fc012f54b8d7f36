"""Portfolio backtesting engine for signal-driven long-only strategies.

This module implements the signal-event replay:
- Consumes per-security execution events in (date, sells first, security id) order
- Settles exits with commission and stamp tax, then allocates freed cash to
  same-day entries at equal weight in whole lots
- Marks open positions to market only on dates where their series prints,
  via the price propagation scheduler
- Records one equity point per distinct date visited

Key architectural principles:
1. Strategies produce only signals; events carry the resolved execution price
2. Engine owns sequencing and state transitions
3. Broker/Account layer handles cost math and accounting invariants
4. The same inputs always settle the same trades
"""

from itertools import groupby
from typing import Dict, Iterable, List, Optional
import logging

from tqdm import tqdm

from config.schema import BacktestConfig
from engine.account import AccountState
from engine.allocator import EqualWeightAllocator
from engine.broker import BrokerModel
from engine.models import (
    BUY,
    SELL,
    BacktestResult,
    ExecutionEvent,
    SecuritySeries,
    Trade,
    is_valid_price,
)
from engine.scheduler import PricePropagationScheduler
from metrics.metrics import summarize

logger = logging.getLogger(__name__)


class PortfolioBacktestEngine:
    """Multi-security, shared-cash replay of execution events.

    The engine is single-use per run: call run() once per instance, or build a
    new engine for every replay.
    """

    def __init__(
        self,
        series_by_id: Dict[str, SecuritySeries],
        config: BacktestConfig,
        validate_accounting: bool = False,
    ):
        """
        Initialize backtest engine.

        Args:
            series_by_id: Price series keyed by security id
            config: Validated backtest configuration
            validate_accounting: Check the accounting invariant after every date
        """
        self.series_by_id = series_by_id
        self.config = config
        self.validate_accounting = validate_accounting

        self.broker = BrokerModel.from_bps(config.fee_bps, config.stamp_bps, lot=config.lot)
        self.account = AccountState(cash=float(config.initial_capital))
        self.allocator = EqualWeightAllocator(self.broker)
        self.scheduler = PricePropagationScheduler(self.account, series_by_id, config.end_date)
        self.trades: List[Trade] = []

    def _in_window(self, date: int) -> bool:
        return self.config.start_date <= date <= self.config.end_date

    def run(self, events: Iterable[ExecutionEvent]) -> BacktestResult:
        """
        Replay execution events.

        Args:
            events: Execution events of any number of securities, in any order

        Returns:
            BacktestResult with equity curve, trade ledger and summary
        """
        ordered = sorted((ev for ev in events if self._in_window(ev.date)), key=lambda ev: ev.sort_key)
        logger.info(
            f"Signal replay: {len(ordered)} events, {len(self.series_by_id)} securities, "
            f"window {self.config.start_date}-{self.config.end_date}"
        )

        for date, day_events in groupby(ordered, key=lambda ev: ev.date):
            day_events = list(day_events)
            for propagated in self.scheduler.drain_up_to(date):
                self.account.record_equity(propagated)
            self.scheduler.apply_at(date)

            for ev in day_events:
                if ev.type == SELL:
                    self._settle_sell(ev)

            buys = [ev for ev in day_events if ev.type == BUY]
            if buys:
                for position in self.allocator.allocate(self.account, buys):
                    self.scheduler.schedule(position.security_id)

            self.account.record_equity(date)
            if self.validate_accounting:
                self.account.validate_invariant()

        end = self.config.end_date
        for propagated in self.scheduler.drain_up_to(end + 1):
            self.account.record_equity(propagated)
        if self.account.equity_curve:
            self.account.record_equity(end)

        if self.account.positions:
            logger.warning(f"{len(self.account.positions)} positions still open at end of replay")

        return self._create_result()

    def _settle_sell(self, ev: ExecutionEvent) -> Optional[Trade]:
        """Close the position of ev.security_id at ev.price.

        Exit signals fire whether or not a position is open, so a sell for a
        flat security is skipped here rather than treated as an error.
        """
        if not self.account.has_position(ev.security_id):
            return None
        if not is_valid_price(ev.price):
            logger.debug(f"{ev.date}: invalid exit price for {ev.security_id}, keeping position")
            return None

        position = self.account.positions[ev.security_id]
        if position.last_mark_price != ev.price:
            # Propagation can lag the fill bar (e.g. fill index not yet reached)
            self.account.mark_position(ev.security_id, ev.price)

        gross, fee, stamp, net = self.broker.exit_proceeds(ev.price, position.shares)
        self.account.close_position(ev.security_id, net, commission=fee, stamp_tax=stamp)

        cost_basis = position.entry.cost_basis
        pnl = net - cost_basis
        trade = Trade(
            security_id=ev.security_id,
            entry_date=position.entry.date,
            exit_date=ev.date,
            entry_price=position.entry.price,
            exit_price=ev.price,
            shares=position.shares,
            pnl=pnl,
            trade_return=pnl / cost_basis if cost_basis > 0 else float('nan'),
            reason=ev.reason,
            fees=position.entry.fee + fee + stamp,
        )
        self.trades.append(trade)
        logger.debug(f"{ev.date}: SELL {ev.security_id} {position.shares} @ {ev.price} pnl={pnl:.2f} ({ev.reason})")
        return trade

    def _create_result(self) -> BacktestResult:
        curve = list(self.account.equity_curve)
        summary = summarize(curve, self.trades, self.config.initial_capital)
        summary['commission_paid'] = self.account.commission_paid
        summary['stamp_tax_paid'] = self.account.stamp_tax_paid
        logger.info(
            f"Signal replay done: final equity {summary['final_equity']:.2f}, "
            f"{summary['trade_count']} trades, max drawdown {summary['max_drawdown']:.2%}"
        )
        return BacktestResult(
            initial_capital=self.config.initial_capital,
            equity_curve=curve,
            trades=list(self.trades),
            summary=summary,
            open_positions=dict(self.account.positions),
            mode='signal',
        )


def run_per_security(
    series_by_id: Dict[str, SecuritySeries],
    events_by_id: Dict[str, List[ExecutionEvent]],
    config: BacktestConfig,
    show_progress: bool = False,
) -> Dict[str, BacktestResult]:
    """
    Replay each security on its own with the full starting capital.

    Args:
        series_by_id: Price series keyed by security id
        events_by_id: Execution events keyed by security id
        config: Validated backtest configuration
        show_progress: Show a tqdm progress bar

    Returns:
        BacktestResult per security id, in sorted id order
    """
    results: Dict[str, BacktestResult] = {}
    ids = sorted(events_by_id)
    iterator = tqdm(ids, desc="Per-security replay", unit="security") if show_progress else ids
    for security_id in iterator:
        series = series_by_id.get(security_id)
        if series is None:
            logger.warning(f"No price series for {security_id}, skipping")
            continue
        engine = PortfolioBacktestEngine({security_id: series}, config)
        results[security_id] = engine.run(events_by_id[security_id])
    return results
