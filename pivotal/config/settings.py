"""
pivotal configuration - defaults loaded from environment (PIVOTAL_*).

Settings holds process-level defaults. BacktestConfig and SignalConfig are
the validated per-run configuration objects the engine actually consumes;
building one with invalid values raises PivotalConfigError before any
simulation starts.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pivotal.core.enums import StartPointMode
from pivotal.core.exceptions import PivotalConfigError


class Settings(BaseSettings):
    """Application settings from environment."""

    model_config = SettingsConfigDict(
        env_prefix="PIVOTAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Portfolio
    initial_capital: float = 10_000.0
    position_size_fraction: float = 0.10
    prevent_on_losses: bool = False
    liquidate_group_on_loss: bool = False
    single_trade_per_bar: bool = False
    loss_streak_threshold: int = 2

    # Signal generation
    lookback_periods: List[int] = [90, 45, 22]
    pivot_lookaround: int = 10
    scaling_lookback: int = 180
    major_pivot_lookback: int = 180

    # Scaling blend
    atr_period: int = 50
    trend_pivots: int = 4
    trend_lookaround: int = 10
    trend_weight: float = 0.6
    volatility_weight: float = 0.4


settings = Settings()


def get_settings() -> Settings:
    """Return application settings."""
    return settings


def _raise_config_error(model: str, err: ValidationError) -> None:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or model}: {e['msg']}" for e in err.errors()
    )
    raise PivotalConfigError(f"Invalid {model}: {problems}") from err


class _EngineConfig(BaseModel):
    """Immutable config base that reports errors as PivotalConfigError."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            _raise_config_error(type(self).__name__, e)


class BacktestConfig(_EngineConfig):
    """Portfolio simulator configuration."""

    initial_capital: float = Field(default=10_000.0, gt=0)
    position_size_fraction: float = Field(default=0.10, gt=0, le=1)
    prevent_on_losses: bool = False
    liquidate_group_on_loss: bool = False
    single_trade_per_bar: bool = False
    loss_streak_threshold: int = Field(default=2, ge=1)

    @property
    def max_open_positions(self) -> int:
        """Open-position cap implied by the sizing fraction."""
        # Guard against 1/0.1 == 9.999... style float error
        return int(1 / self.position_size_fraction + 1e-9)

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None, **overrides: Any) -> "BacktestConfig":
        s = s or get_settings()
        values = {
            "initial_capital": s.initial_capital,
            "position_size_fraction": s.position_size_fraction,
            "prevent_on_losses": s.prevent_on_losses,
            "liquidate_group_on_loss": s.liquidate_group_on_loss,
            "single_trade_per_bar": s.single_trade_per_bar,
            "loss_streak_threshold": s.loss_streak_threshold,
        }
        values.update(overrides)
        return cls(**values)


class ScalingConfig(_EngineConfig):
    """Blend of trend-structure slope and ATR used to scale projections."""

    atr_period: int = Field(default=50, gt=0)
    trend_pivots: int = Field(default=4, ge=2)
    trend_lookaround: int = Field(default=10, gt=0)
    trend_weight: float = Field(default=0.6, ge=0)
    volatility_weight: float = Field(default=0.4, ge=0)

    @model_validator(mode="after")
    def _weights_not_both_zero(self) -> "ScalingConfig":
        if self.trend_weight == 0 and self.volatility_weight == 0:
            raise ValueError("trend_weight and volatility_weight cannot both be 0")
        return self


class SignalConfig(_EngineConfig):
    """Candidate generation configuration."""

    lookback_periods: List[int] = Field(default_factory=lambda: [90, 45, 22])
    pivot_lookaround: int = Field(default=10, gt=0)
    scaling_lookback: int = Field(default=180, gt=0)
    start_point_mode: StartPointMode = StartPointMode.SHARP
    major_pivot_lookback: int = Field(default=180, gt=0)
    trend_filter_period: Optional[int] = Field(default=None, gt=1)
    emit_both_directions: bool = False
    max_workers: int = Field(default=1, ge=1)
    scaling: ScalingConfig = Field(default_factory=ScalingConfig)

    @field_validator("lookback_periods")
    @classmethod
    def _positive_lookbacks(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("at least one lookback period is required")
        bad = [p for p in v if p <= 0]
        if bad:
            raise ValueError(f"lookback periods must be positive, got {bad}")
        return v

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None, **overrides: Any) -> "SignalConfig":
        s = s or get_settings()
        values = {
            "lookback_periods": list(s.lookback_periods),
            "pivot_lookaround": s.pivot_lookaround,
            "scaling_lookback": s.scaling_lookback,
            "major_pivot_lookback": s.major_pivot_lookback,
            "scaling": ScalingConfig(
                atr_period=s.atr_period,
                trend_pivots=s.trend_pivots,
                trend_lookaround=s.trend_lookaround,
                trend_weight=s.trend_weight,
                volatility_weight=s.volatility_weight,
            ),
        }
        values.update(overrides)
        return cls(**values)
