#!/usr/bin/env python3
"""Script to run backtests from command line.

Modes:
  backtest  Elder Ray signals, shared-cash portfolio replay plus per-security replays
  periodic  Calendar rotation with the MA alignment picker
  stats     Forward-return statistics after KD golden/death crosses
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import pandas as pd

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from adapters.data.csv_loader import CSVDataLoader, load_universe
from config.config_loader import load_run_config_with_overrides, save_run_config
from config.schema import RunConfig
from engine.backtest_engine import PortfolioBacktestEngine, run_per_security
from engine.events import build_execution_events
from engine.models import BacktestResult, ExecutionEvent, SecuritySeries
from engine.periodic_engine import PeriodicIdealSimulator
from engine.periods import attach_picks, build_period_plans
from metrics.metrics import calculate_enhanced_metrics
from metrics.signal_stats import pooled_forward_return_stats, signal_forward_returns
from strategies.elder_ray import ElderRayStrategy
from strategies.kd_cross import KDCrossStrategy
from strategies.ma_alignment import MAAlignmentPicker

logger = logging.getLogger('backtest')


def setup_logging(logs_dir: Path = Path('data/logs')) -> Path:
    """File handler gets everything, console shows warnings and errors."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_filename = logs_dir / f'backtest_{timestamp}.log'

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    file_handler = logging.FileHandler(log_filename, mode='w', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root.addHandler(console_handler)
    return log_filename


def parse_list(value, cast=str):
    if value is None:
        return None
    items = [cast(v.strip()) for v in value.split(',') if v.strip()]
    return items or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Run a portfolio backtest over a directory of daily CSV files')
    parser.add_argument('--config', type=str, help='Run config YAML (merged over config/defaults.yml)')
    parser.add_argument('--mode', choices=['backtest', 'periodic', 'stats'], help='Run mode')
    parser.add_argument('--data-dir', type=str, help='Directory with one CSV per security')
    parser.add_argument('--encoding', type=str, help='CSV encoding (e.g. gbk, utf-8)')
    parser.add_argument('--files', type=str, help='Comma-separated file names to include')
    parser.add_argument('--limit', type=int, help='Only use the first N files')
    parser.add_argument('--start', type=str, help='Window start, YYYYMMDD')
    parser.add_argument('--end', type=str, help='Window end, YYYYMMDD')
    parser.add_argument('--capital', type=float, help='Initial capital')
    parser.add_argument('--execution', choices=['same_close', 'next_close'], help='Execution timing')
    parser.add_argument('--lot', type=int, help='Lot size (signal mode)')
    parser.add_argument('--fee-bps', type=float, help='Commission in bps, both sides')
    parser.add_argument('--stamp-bps', type=float, help='Stamp tax in bps, sells only')
    parser.add_argument('--er-span', type=int, help='Elder Ray EMA span')
    parser.add_argument('--days', type=str, help='Comma-separated forward horizons (stats mode)')
    parser.add_argument('--safe-rsv', action='store_true', default=None, help='Skip flat-window RSV (stats mode)')
    parser.add_argument('--freq', type=str, help='Rotation frequency D/W/M/Q (periodic mode)')
    parser.add_argument('--pick-limit', type=int, help='Max picks per period (periodic mode)')
    parser.add_argument('--output', type=str, help='Output directory (default: <output_dir>/<run_name>_<timestamp>)')
    parser.add_argument('--quiet', action='store_true', help='Hide progress bars')
    return parser


def overrides_from_args(args) -> Dict:
    return {
        'mode': args.mode,
        'backtest': {
            'start_date': args.start,
            'end_date': args.end,
            'initial_capital': args.capital,
            'execution_timing': args.execution,
            'lot': args.lot,
            'fee_bps': args.fee_bps,
            'stamp_bps': args.stamp_bps,
        },
        'signal': {
            'er_span': args.er_span,
            'horizons': parse_list(args.days, int),
            'safe_rsv': args.safe_rsv,
        },
        'periodic': {
            'freq': args.freq,
            'pick_limit': args.pick_limit,
        },
        'data': {
            'data_dir': args.data_dir,
            'encoding': args.encoding,
            'files': parse_list(args.files),
            'limit': args.limit,
        },
    }


def write_result(result: BacktestResult, output_dir: Path, initial_capital: float) -> Dict:
    """Write equity_curve.csv, trades.csv and return the summary with enhanced metrics."""
    result.equity_series().to_csv(output_dir / 'equity_curve.csv', header=True)
    result.trades_frame().to_csv(output_dir / 'trades.csv', index=False)
    summary = dict(result.summary)
    summary.update(calculate_enhanced_metrics(result.equity_curve, result.trades, initial_capital))
    return summary


def run_signal_mode(config: RunConfig, universe: Dict[str, SecuritySeries], output_dir: Path,
                    show_progress: bool = False) -> Dict:
    bt = config.backtest
    strategy = ElderRayStrategy(span=config.signal.er_span)

    events_by_id: Dict[str, List[ExecutionEvent]] = {}
    for security_id, series in universe.items():
        if series.high is None or series.low is None:
            logger.warning(f"{security_id}: no high/low columns, skipping")
            continue
        entry, exit_ = strategy.generate_signals(series)
        events = build_execution_events(series, entry, exit_, bt.start_date, bt.end_date, bt.execution_timing)
        if events:
            events_by_id[security_id] = events

    all_events = [ev for evs in events_by_id.values() for ev in evs]
    series_by_id = {sid: universe[sid] for sid in events_by_id}
    result = PortfolioBacktestEngine(series_by_id, bt).run(all_events)
    summary = write_result(result, output_dir, bt.initial_capital)

    per_security = run_per_security(series_by_id, events_by_id, bt, show_progress=show_progress)
    rows = [
        {
            'security_id': sid,
            'trades': r.summary['trade_count'],
            'win_rate': r.summary['win_rate'],
            'total_return': r.summary['total_return'],
            'max_drawdown': r.summary['max_drawdown'],
            'final_equity': r.summary['final_equity'],
        }
        for sid, r in per_security.items()
    ]
    per_frame = pd.DataFrame(rows, columns=['security_id', 'trades', 'win_rate', 'total_return',
                                            'max_drawdown', 'final_equity'])
    per_frame = per_frame.sort_values('total_return', ascending=False, na_position='last')
    per_frame.to_csv(output_dir / 'per_security.csv', index=False)

    total_trades = int(per_frame['trades'].sum()) if len(per_frame) else 0
    pooled_wins = sum(sum(1 for t in r.trades if t.is_win) for r in per_security.values())
    summary['securities'] = len(per_security)
    summary['per_security_trades_total'] = total_trades
    summary['per_security_win_rate_pooled'] = pooled_wins / total_trades if total_trades else None
    summary['per_security_avg_total_return'] = (
        float(per_frame['total_return'].mean()) if len(per_frame) else None
    )
    return summary


def run_periodic_mode(config: RunConfig, universe: Dict[str, SecuritySeries], output_dir: Path) -> Dict:
    bt = config.backtest
    simulator = PeriodicIdealSimulator(universe, bt)
    trading_dates = simulator.trading_dates()
    plans = build_period_plans(trading_dates, config.periodic.freq)
    picker = MAAlignmentPicker(
        universe,
        ma_periods=config.periodic.ma_periods,
        exclude_st=config.periodic.exclude_st,
    )
    # As-of dates may precede the window, so use every observed date
    all_dates = sorted({int(d) for s in universe.values() for d in s.dates})
    attach_picks(plans, picker, sorted(universe), all_dates, pick_limit=config.periodic.pick_limit)
    result = simulator.run(plans)
    summary = write_result(result, output_dir, bt.initial_capital)
    summary['periods'] = len(plans)
    return summary


def run_stats_mode(config: RunConfig, universe: Dict[str, SecuritySeries], output_dir: Path) -> Dict:
    bt = config.backtest
    strategy = KDCrossStrategy(
        window=config.signal.kd_window,
        span=config.signal.kd_span,
        safe_rsv=config.signal.safe_rsv,
    )
    bullish, bearish = {}, {}
    for security_id, series in universe.items():
        if series.high is None or series.low is None:
            logger.warning(f"{security_id}: no high/low columns, skipping")
            continue
        golden, death = strategy.cross_masks(series)
        in_window = (series.dates >= bt.start_date) & (series.dates <= bt.end_date)
        bullish[security_id] = signal_forward_returns(series.close, golden & in_window, config.signal.horizons)
        bearish[security_id] = signal_forward_returns(series.close, death & in_window, config.signal.horizons)

    bull_stats = pooled_forward_return_stats(bullish, bullish=True)
    bear_stats = pooled_forward_return_stats(bearish, bullish=False)
    bull_stats.to_csv(output_dir / 'signal_stats_bullish.csv')
    bear_stats.to_csv(output_dir / 'signal_stats_bearish.csv')
    return {
        'securities': len(bullish),
        'bullish_signal_rows': int(bull_stats['signal_rows'].iloc[0]) if len(bull_stats) else 0,
        'bearish_signal_rows': int(bear_stats['signal_rows'].iloc[0]) if len(bear_stats) else 0,
    }


def main():
    parser = build_parser()
    args = parser.parse_args()

    log_file = setup_logging()
    try:
        config = load_run_config_with_overrides(
            Path(args.config) if args.config else None,
            overrides_from_args(args),
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: invalid configuration: {e}")
        sys.exit(1)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    output_dir = Path(args.output) if args.output else Path(config.output_dir) / f"{config.run_name}_{timestamp}"
    output_dir.mkdir(parents=True, exist_ok=True)
    save_run_config(config, output_dir / 'config.yml')

    loader = CSVDataLoader(
        columns=config.data.columns,
        encoding=config.data.encoding,
        name_column=config.data.name_column,
    )
    try:
        universe = load_universe(
            Path(config.data.data_dir), loader,
            files=config.data.files, limit=config.data.limit, show_progress=not args.quiet,
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Loaded {len(universe)} securities from {config.data.data_dir}")
    started = datetime.now()

    if config.mode == 'backtest':
        summary = run_signal_mode(config, universe, output_dir, show_progress=not args.quiet)
    elif config.mode == 'periodic':
        summary = run_periodic_mode(config, universe, output_dir)
    else:
        summary = run_stats_mode(config, universe, output_dir)

    summary['mode'] = config.mode
    summary['elapsed_seconds'] = round((datetime.now() - started).total_seconds(), 2)
    with open(output_dir / 'summary.json', 'w', encoding='utf-8') as f:
        json.dump(summary, f, indent=2, default=str)

    print(f"\n{'=' * 60}")
    print(f"{config.mode.upper()} SUMMARY")
    print(f"{'=' * 60}")
    for key, value in summary.items():
        if isinstance(value, float):
            print(f"  {key}: {value:.6f}")
        else:
            print(f"  {key}: {value}")
    print(f"\nOutputs written to {output_dir}")
    print(f"Log file: {log_file}")


if __name__ == '__main__':
    main()
