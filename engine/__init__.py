"""Core portfolio simulation module."""

from engine.models import (
    BacktestResult,
    EquityPoint,
    ExecutionEvent,
    PeriodPlan,
    Position,
    SecuritySeries,
    Trade,
)
from engine.broker import BrokerModel
from engine.account import AccountState, PortfolioInvariantError
from engine.events import build_execution_events
from engine.scheduler import PricePropagationScheduler
from engine.allocator import EqualWeightAllocator
from engine.backtest_engine import PortfolioBacktestEngine, run_per_security
from engine.periodic_engine import PeriodicIdealSimulator
from engine.periods import attach_picks, build_period_plans

__all__ = [
    'BacktestResult',
    'EquityPoint',
    'ExecutionEvent',
    'PeriodPlan',
    'Position',
    'SecuritySeries',
    'Trade',
    'BrokerModel',
    'AccountState',
    'PortfolioInvariantError',
    'build_execution_events',
    'PricePropagationScheduler',
    'EqualWeightAllocator',
    'PortfolioBacktestEngine',
    'run_per_security',
    'PeriodicIdealSimulator',
    'attach_picks',
    'build_period_plans',
]
