"""Runtime and engine configuration."""

from .settings import BacktestConfig, ScalingConfig, Settings, SignalConfig, get_settings

__all__ = ["BacktestConfig", "ScalingConfig", "Settings", "SignalConfig", "get_settings"]
