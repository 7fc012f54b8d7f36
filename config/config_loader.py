"""Hierarchical run configuration loading.

Layers, later ones winning:
1. config/defaults.yml
2. An optional run config file
3. Explicit overrides (typically from CLI flags)

Nested sections are merged key by key, so a run file that only sets
backtest.fee_bps keeps every other backtest default.
"""

from pathlib import Path
from typing import Dict, Any, Optional
import copy
import logging

import yaml

from config.schema import RunConfig, load_defaults, validate_run_config

logger = logging.getLogger(__name__)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge override dict into base dict.

    Values in override take precedence. Nested dicts are merged recursively.

    Args:
        base: Base configuration dictionary
        override: Override configuration dictionary

    Returns:
        Merged configuration dictionary
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_yaml_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def strip_none(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None leaves so unset CLI flags don't clobber lower layers."""
    cleaned = {}
    for key, value in overrides.items():
        if isinstance(value, dict):
            nested = strip_none(value)
            if nested:
                cleaned[key] = nested
        elif value is not None:
            cleaned[key] = value
    return cleaned


def load_run_config_with_overrides(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RunConfig:
    """
    Load and validate a run configuration.

    Args:
        config_path: Optional run config YAML file
        overrides: Optional nested dict of overrides; None leaves are ignored

    Returns:
        Validated RunConfig

    Raises:
        FileNotFoundError: If config_path does not exist
        pydantic.ValidationError: If the merged configuration is invalid
    """
    merged = load_defaults()
    if config_path is not None:
        merged = deep_merge(merged, load_yaml_config(Path(config_path)))
        logger.debug(f"Loaded run config {config_path}")
    if overrides:
        merged = deep_merge(merged, strip_none(overrides))
    return validate_run_config(merged)


def save_run_config(config: RunConfig, output_path: Path) -> Path:
    """Write the effective configuration next to a run's outputs."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(config.model_dump(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return output_path
