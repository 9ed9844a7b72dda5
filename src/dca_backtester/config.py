"""
Configuration: strategy presets (YAML + pydantic validation) and runtime settings.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from dca_backtester.engine.models import StrategyConfig
from dca_backtester.logging import get_logger

logger = get_logger(__name__)

API_KEY_ENV = "DCA_BACKTESTER_API_KEY"

DEFAULT_STRATEGY_CONFIG = StrategyConfig()


class StrategyConfigSchema(BaseModel):
    """Validation schema for external strategy config documents"""

    # Preset files carry extra keys (symbol, _backtest_metrics)
    model_config = ConfigDict(extra="ignore")

    initial_capital: float = Field(default=1000.0, gt=0, description="Total portfolio capital")
    bot_allocation: float = Field(
        default=0.5,
        gt=0,
        le=100,
        description="Percent of capital allocated to each asset",
    )
    leverage: float = Field(default=20.0, gt=0, le=125)
    commission: float = Field(default=0.05, ge=0, le=10, description="Fee percent per fill")
    slippage: float = Field(default=0.01, ge=0, le=10, description="Slippage percent per fill")

    smart_entry: bool = Field(default=True, description="Wait for a deep drop before trading")
    cci_period: int = Field(default=20, ge=1)
    cci_threshold: float = Field(default=80.0)
    cmo_period: int = Field(default=9, ge=1)
    cmo_threshold: float = Field(default=-90.0, ge=-100, le=100)
    williams_period: int = Field(default=14, ge=1)
    williams_threshold: float = Field(default=-80.0, ge=-100, le=0)
    adx_period: int = Field(default=14, ge=1)
    adx_threshold: float = Field(default=40.0, ge=0, le=100)

    grid_steps: list[float] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGY_CONFIG.grid_steps),
        min_length=1,
        description="Percent drop from the first fill for each ladder level",
    )
    volume_weights: list[float] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGY_CONFIG.volume_weights),
        min_length=1,
        description="Relative order size for each ladder level",
    )

    tp_percent: float = Field(default=1.0, gt=0, le=100)
    turtle_period: int = Field(default=20, ge=1)

    @model_validator(mode="after")
    def validate_grid(self) -> "StrategyConfigSchema":
        """Ensure the ladder is well formed"""
        if len(self.grid_steps) != len(self.volume_weights):
            raise ValueError("grid_steps and volume_weights must have the same length")
        if self.grid_steps[0] != 0:
            raise ValueError("grid_steps must start with 0 (the base order)")
        if any(b < a for a, b in zip(self.grid_steps, self.grid_steps[1:])):
            raise ValueError("grid_steps must be non-decreasing")
        if self.volume_weights[0] <= 0 or any(w < 0 for w in self.volume_weights):
            raise ValueError("volume_weights must be non-negative with a positive base weight")
        return self

    def to_strategy_config(self) -> StrategyConfig:
        return StrategyConfig.from_dict(self.model_dump())


def parse_strategy_config(data: dict[str, Any] | None) -> StrategyConfig:
    """Validate a raw mapping (unknown keys ignored) into a ``StrategyConfig``."""
    return StrategyConfigSchema(**(data or {})).to_strategy_config()


def load_strategy_config(path: Path | str) -> StrategyConfig:
    """
    Load and validate a strategy config from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is not valid YAML
        ValidationError: If validation fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        config = parse_strategy_config(raw)
    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML", path=str(path), error=str(e))
        raise
    except ValidationError as e:
        logger.error("Strategy config validation failed", path=str(path), error=str(e))
        raise

    logger.info("Strategy config loaded", path=str(path), tp_percent=config.tp_percent)
    return config


def dump_strategy_config(config: StrategyConfig, path: Path | str | None = None) -> str:
    """Serialize ``config`` to YAML, writing it to ``path`` when given."""
    text = yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False)
    if path is not None:
        Path(path).write_text(text, encoding="utf-8")
    return text


# =============================================================================
# Runtime Settings
# =============================================================================


def _env_flag(name: str, default: bool = False) -> bool:
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Process-level settings read from the environment."""

    log_level: str = "INFO"
    json_logs: bool = False
    log_dir: Path | None = None
    api_key: str | None = None
    max_workers: int | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        log_dir = os.environ.get("LOG_DIR")
        workers = os.environ.get("MAX_WORKERS")
        return cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            json_logs=_env_flag("JSON_LOGS"),
            log_dir=Path(log_dir) if log_dir else None,
            api_key=os.environ.get(API_KEY_ENV) or None,
            max_workers=int(workers) if workers else None,
        )
