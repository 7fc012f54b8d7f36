"""Configuration management module."""

from .schema import (
    BacktestConfig,
    SignalConfig,
    PeriodicConfig,
    DataConfig,
    RunConfig,
    load_config,
    validate_run_config,
    load_and_validate_run_config,
    load_defaults,
)

__all__ = [
    "BacktestConfig",
    "SignalConfig",
    "PeriodicConfig",
    "DataConfig",
    "RunConfig",
    "load_config",
    "validate_run_config",
    "load_and_validate_run_config",
    "load_defaults",
]
