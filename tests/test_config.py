"""Tests for settings and validated run configuration."""

import pytest

from pivotal.config.settings import BacktestConfig, ScalingConfig, Settings, SignalConfig
from pivotal.core.enums import StartPointMode
from pivotal.core.exceptions import PivotalConfigError, PivotalError


class TestBacktestConfig:
    """Portfolio configuration validation."""

    def test_defaults(self):
        cfg = BacktestConfig()
        assert cfg.initial_capital == 10_000.0
        assert cfg.position_size_fraction == 0.10
        assert cfg.loss_streak_threshold == 2
        assert cfg.max_open_positions == 10

    @pytest.mark.parametrize(
        "fraction, cap",
        [(0.1, 10), (0.3, 3), (0.25, 4), (0.5, 2), (1.0, 1)],
    )
    def test_max_open_positions(self, fraction, cap):
        assert BacktestConfig(position_size_fraction=fraction).max_open_positions == cap

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_capital": 0},
            {"initial_capital": -100},
            {"position_size_fraction": 0},
            {"position_size_fraction": 1.5},
            {"loss_streak_threshold": 0},
            {"unknown_option": True},
        ],
    )
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(PivotalConfigError):
            BacktestConfig(**kwargs)

    def test_config_error_is_pivotal_error(self):
        with pytest.raises(PivotalError, match="position_size_fraction"):
            BacktestConfig(position_size_fraction=2)

    def test_frozen(self):
        cfg = BacktestConfig()
        with pytest.raises(Exception):
            cfg.initial_capital = 5


class TestSignalConfig:
    """Candidate generation configuration validation."""

    def test_defaults(self):
        cfg = SignalConfig()
        assert cfg.lookback_periods == [90, 45, 22]
        assert cfg.pivot_lookaround == 10
        assert cfg.scaling_lookback == 180
        assert cfg.start_point_mode == StartPointMode.SHARP
        assert cfg.scaling.atr_period == 50
        assert cfg.scaling.trend_weight == 0.6
        assert cfg.scaling.volatility_weight == 0.4

    @pytest.mark.parametrize("lookbacks", [[], [10, -1], [0]])
    def test_bad_lookbacks(self, lookbacks):
        with pytest.raises(PivotalConfigError):
            SignalConfig(lookback_periods=lookbacks)

    def test_weights_cannot_both_be_zero(self):
        with pytest.raises(PivotalConfigError):
            ScalingConfig(trend_weight=0, volatility_weight=0)

    def test_single_weight_allowed(self):
        assert ScalingConfig(trend_weight=0, volatility_weight=1).volatility_weight == 1

    def test_mode_from_string(self):
        assert SignalConfig(start_point_mode="manual").start_point_mode == StartPointMode.MANUAL

    def test_trend_filter_must_exceed_one(self):
        with pytest.raises(PivotalConfigError):
            SignalConfig(trend_filter_period=1)


class TestSettings:
    """Environment-driven defaults."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PIVOTAL_INITIAL_CAPITAL", "5000")
        monkeypatch.setenv("PIVOTAL_POSITION_SIZE_FRACTION", "0.2")
        monkeypatch.setenv("PIVOTAL_LOOKBACK_PERIODS", "[30, 15]")

        s = Settings()

        assert s.initial_capital == 5000.0
        assert BacktestConfig.from_settings(s).max_open_positions == 5
        assert SignalConfig.from_settings(s).lookback_periods == [30, 15]

    def test_from_settings_overrides_win(self, monkeypatch):
        monkeypatch.setenv("PIVOTAL_PREVENT_ON_LOSSES", "true")
        s = Settings()

        cfg = BacktestConfig.from_settings(s, prevent_on_losses=False, initial_capital=1)

        assert cfg.prevent_on_losses is False
        assert cfg.initial_capital == 1

    def test_invalid_env_value_surfaces_on_config(self, monkeypatch):
        monkeypatch.setenv("PIVOTAL_POSITION_SIZE_FRACTION", "3")
        with pytest.raises(PivotalConfigError):
            BacktestConfig.from_settings(Settings())
