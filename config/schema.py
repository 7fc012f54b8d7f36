"""Configuration validation schemas using Pydantic."""

from typing import Literal, Optional, Dict, Any, List, Union
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
import yaml
from pathlib import Path


def parse_ymd(value: Union[int, str]) -> int:
    """Normalize 20070101 / '20070101' / '2007-01-01' to an int YYYYMMDD.

    Raises:
        ValueError: If the value is not a real calendar date
    """
    s = str(value).strip().replace('-', '').replace('/', '')
    if len(s) != 8 or not s.isdigit():
        raise ValueError(f"date must be YYYYMMDD, got {value!r}")
    try:
        datetime.strptime(s, '%Y%m%d')
    except ValueError:
        raise ValueError(f"not a calendar date: {value!r}")
    return int(s)


class BacktestConfig(BaseModel):
    """Backtest run window and cost model."""
    start_date: int = 20070101
    end_date: int = 20220930
    initial_capital: float = Field(default=1_000_000.0, gt=0.0)
    execution_timing: Literal["same_close", "next_close"] = Field(
        default="next_close",
        description="Fill at the signal bar's close or at the next available close (no look-ahead)"
    )
    lot: int = Field(default=100, gt=0, description="Minimum tradable unit in signal mode")
    fee_bps: float = Field(default=0.0, ge=0.0, description="Commission in basis points, both sides")
    stamp_bps: float = Field(default=0.0, ge=0.0, description="Stamp tax in basis points, sells only")

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def validate_date(cls, v: Any) -> int:
        return parse_ymd(v)

    @model_validator(mode='after')
    def validate_window_and_costs(self):
        if self.start_date > self.end_date:
            raise ValueError(f"start_date {self.start_date} is after end_date {self.end_date}")
        if self.fee_bps + self.stamp_bps >= 10_000:
            raise ValueError("fee_bps + stamp_bps must stay below 10000 (100%)")
        return self


class SignalConfig(BaseModel):
    """Signal generation for the backtest and stats modes."""
    strategy: Literal["elder_ray"] = "elder_ray"
    er_span: int = Field(default=20, gt=0, description="EMA span of the Elder Ray baseline")
    kd_window: int = Field(default=40, gt=0, description="Rolling high/low window of the KD oscillator")
    kd_span: int = Field(default=2, gt=0)
    safe_rsv: bool = Field(
        default=False,
        description="Skip RSV where the rolling high equals the rolling low instead of producing inf/NaN"
    )
    horizons: List[int] = Field(default_factory=lambda: [1, 2, 3, 5, 10, 20])

    @field_validator('horizons')
    @classmethod
    def validate_horizons(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("horizons must not be empty")
        if any(h <= 0 for h in v):
            raise ValueError(f"horizons must be positive: {v}")
        return v


class PeriodicConfig(BaseModel):
    """Calendar rotation settings."""
    freq: Literal["D", "W", "M", "Q"] = "W"
    pick_limit: Optional[int] = Field(default=None, ge=1)
    ma_periods: List[int] = Field(default_factory=lambda: [5, 10, 20])
    exclude_st: bool = True

    @field_validator('freq', mode='before')
    @classmethod
    def normalize_freq(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator('ma_periods')
    @classmethod
    def validate_ma_periods(cls, v: List[int]) -> List[int]:
        if len(v) != 3 or any(p <= 0 for p in v):
            raise ValueError(f"ma_periods needs three positive periods (fast, mid, slow): {v}")
        return v


class DataConfig(BaseModel):
    """CSV universe settings."""
    data_dir: str = "stock"
    encoding: str = "gbk"
    files: Optional[List[str]] = None
    limit: Optional[int] = Field(default=None, gt=0)
    columns: Dict[str, str] = Field(
        default_factory=lambda: {
            "date": "交易日期",
            "close": "收盘价_复权",
            "high": "最高价_复权",
            "low": "最低价_复权",
        },
        description="Canonical field -> CSV header. date and close are required."
    )
    name_column: Optional[str] = Field(default="股票名称", description="Optional column holding the display name")

    @field_validator('columns')
    @classmethod
    def validate_columns(cls, v: Dict[str, str]) -> Dict[str, str]:
        allowed = {"date", "open", "high", "low", "close", "volume"}
        unknown = set(v) - allowed
        if unknown:
            raise ValueError(f"Unknown column mapping keys: {sorted(unknown)}. Allowed: {sorted(allowed)}")
        for required in ("date", "close"):
            if required not in v:
                raise ValueError(f"columns must map '{required}'")
        return v


class RunConfig(BaseModel):
    """Complete run configuration schema."""
    run_name: str = "default"
    mode: Literal["backtest", "periodic", "stats"] = "backtest"
    output_dir: str = "data/results"
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    periodic: PeriodicConfig = Field(default_factory=PeriodicConfig)
    data: DataConfig = Field(default_factory=DataConfig)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration file."""
    with open(config_path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def validate_run_config(config_dict: Dict[str, Any]) -> RunConfig:
    """Validate and return RunConfig object."""
    return RunConfig(**config_dict)


def load_and_validate_run_config(config_path: Path) -> RunConfig:
    """Load and validate run configuration from file."""
    config_dict = load_config(config_path)
    return validate_run_config(config_dict)


def load_defaults() -> Dict[str, Any]:
    """Load default configuration values."""
    defaults_path = Path(__file__).parent / "defaults.yml"
    return load_config(defaults_path)
