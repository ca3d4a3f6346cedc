"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class AnalyticsConfig(BaseModel):
    be_threshold: float = 0.5  # |pnl| at or below this is breakeven noise
    initial_balance: float = 100_000.0
    r_buckets: list[float] = Field(
        default_factory=lambda: [-3.0, -2.0, -1.0, 0.0, 1.0, 2.0, 3.0]
    )
    size_epsilon: float = 1e-8  # Remaining size treated as fully closed

    @field_validator("r_buckets")
    @classmethod
    def _sorted_edges(cls, v: list[float]) -> list[float]:
        if not v:
            raise ValueError("r_buckets needs at least one edge")
        if sorted(v) != v or len(set(v)) != len(v):
            raise ValueError("r_buckets must be strictly increasing")
        return v


class BehaviorConfig(BaseModel):
    revenge_window_minutes: float = 30.0
    tilt_streak_threshold: int = 3
    tilt_streak_high: int = 5
    tilt_risk_window: int = Field(5, ge=1)
    tilt_risk_threshold_pct: float = 2.5
    tilt_risk_high_pct: float = 3.5
    tilt_daily_trades_threshold: int = 5  # Signal when strictly above
    tilt_daily_trades_high: int = 8


class LedgerConfig(BaseModel):
    # Surface the degenerate breakeven RR as None instead of reward / 1
    strict_breakeven_rr: bool = False


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level engine settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    timezone: str = "UTC"  # IANA name or fixed offset like "UTC-5"

    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    behavior: BehaviorConfig = Field(default_factory=BehaviorConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "JOURNAL_", "env_nested_delimiter": "__"}

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        from trade_journal.journal.temporal import resolve_timezone

        resolve_timezone(v)
        return v


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.

    Raises:
        ConfigError: when the merged values fail validation.
    """
    from pydantic import ValidationError

    from .errors import ConfigError

    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
