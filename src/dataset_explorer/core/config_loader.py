"""Centralized configuration loader for YAML-based engine configuration.

This module loads ``config/engine.yaml`` with:
- Environment variable overrides (env var → YAML → defaults)
- Type coercion (string to float, bool, int)
- Schema validation using dataclasses
- Graceful degradation (missing files use defaults)
"""

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml  # type: ignore

logger = logging.getLogger(__name__)


def get_project_root() -> Path:
    """
    Get project root directory.

    Uses pattern: config_loader.py → core/ → dataset_explorer/ → src/ → project_root

    Returns:
        Path to project root directory
    """
    return Path(__file__).parent.parent.parent.parent


def _coerce_type(value: Any, target_type: type) -> Any:
    """
    Coerce value to target type.

    Handles:
    - String "30.0" → float 30.0
    - String "true"/"false" → bool True/False (case-insensitive)
    - String "123" → int 123

    Args:
        value: Value to coerce
        target_type: Target type (float, bool, int, str)

    Returns:
        Coerced value

    Raises:
        ValueError: If coercion fails
    """
    if value is None:
        return None

    if isinstance(value, target_type) and not (target_type is int and isinstance(value, bool)):
        return value

    if target_type is bool:
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    if target_type is float:
        return float(value)

    if target_type is int:
        if isinstance(value, str):
            return int(float(value))  # Handle "30.0" → 30
        return int(value)

    if target_type is str:
        return str(value)

    return value


def _apply_env_overrides(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """
    Apply environment variable overrides to config.

    Any env var matching ``{prefix}{KEY}`` (config key upper-cased) overrides the
    value, coerced to the type of the existing value.

    Args:
        config: Configuration dictionary
        prefix: Env var prefix (e.g. "DATASET_EXPLORER_")

    Returns:
        Config with env var overrides applied
    """
    result = config.copy()

    for config_key in result.keys():
        env_key = f"{prefix}{config_key.upper()}"
        env_value = os.getenv(env_key)
        if env_value is None:
            continue
        target_type = type(result[config_key])
        try:
            result[config_key] = _coerce_type(env_value, target_type)
        except (ValueError, TypeError) as e:
            logger.warning(f"Failed to coerce env var {env_key}={env_value} to {target_type.__name__}: {e}")

    return result


@dataclass(frozen=True)
class EngineConfig:
    """Engine configuration (defaults match the documented behavior)."""

    category_limit: int = 50
    histogram_bins: int = 20
    rebin_max_bins: int = 60
    rebin_max_iterations: int = 10
    max_workers: int = 4
    pool_size: int = 4
    column_timeout_seconds: float = 30.0
    database_path: str = ":memory:"
    log_level: str = "INFO"
    log_json: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert dataclass to dictionary."""
        return asdict(self)


def _is_critical_config(key: str) -> bool:
    """Sizing and timeout keys must never silently fall back to defaults."""
    return any(pattern in key for pattern in ("bins", "limit", "workers", "pool", "timeout", "iterations"))


def load_engine_config(config_path: Path | None = None, env_prefix: str = "DATASET_EXPLORER_") -> EngineConfig:
    """
    Load engine config from YAML with env var overrides.

    Precedence: Environment variable → YAML value → Default value

    Args:
        config_path: Optional path to config file. If None, uses config/engine.yaml.
        env_prefix: Prefix for environment variable overrides

    Returns:
        EngineConfig

    Raises:
        ValueError: If YAML is invalid, a critical value cannot be coerced, or
            a sizing value is not positive
    """
    defaults = EngineConfig().to_dict()

    if config_path is None:
        config_path = get_project_root() / "config" / "engine.yaml"

    config = defaults.copy()
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

        for key, value in yaml_data.items():
            if key not in defaults:
                logger.warning(f"Ignoring unknown config key '{key}' in {config_path}")
                continue
            target_type = type(defaults[key])
            try:
                config[key] = _coerce_type(value, target_type)
            except (ValueError, TypeError) as e:
                if _is_critical_config(key):
                    raise ValueError(
                        f"Type coercion failed for critical config {key}={value}: "
                        f"expected {target_type.__name__}, got {type(value).__name__}. "
                        f"Error: {e}"
                    ) from e
                logger.warning(
                    f"Failed to coerce YAML value {key}={value} to {target_type.__name__}: {e}, using default"
                )
    else:
        logger.debug(f"Config file not found at {config_path}, using defaults")

    config = _apply_env_overrides(config, prefix=env_prefix)

    sizes = ("category_limit", "histogram_bins", "rebin_max_bins", "rebin_max_iterations", "max_workers", "pool_size")
    for key in sizes:
        if config[key] < 1:
            raise ValueError(f"Config {key} must be >= 1, got {config[key]}")
    if config["column_timeout_seconds"] <= 0:
        raise ValueError(f"Config column_timeout_seconds must be > 0, got {config['column_timeout_seconds']}")

    return EngineConfig(**config)
