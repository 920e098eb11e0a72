"""
Tests for the portfolio backtest simulator.

Scenarios:
- Take profit hit on a gap bar
- Group liquidation across a shared start point
- Loss circuit breaker with ghost trades
- Same-bar stop on the entry bar
Properties:
- Sum of trade profits equals final minus initial capital
- Open positions never exceed floor(1 / position size)
- Identical inputs give identical outputs
"""

import pytest

from pivotal.backtest.outcome import check_exit, simulate_outcome
from pivotal.backtest.simulator import PortfolioBacktester, run_backtest
from pivotal.config.settings import BacktestConfig, ScalingConfig, SignalConfig
from pivotal.core.enums import Direction, ExitReason, TradeOutcome
from pivotal.core.exceptions import PivotalDataError
from pivotal.data.bars import BarSeries
from pivotal.signals.assembler import SignalAssembler

QUIET = (100.0, 101.0, 99.0, 100.0)
DIP = (100.0, 101.0, 94.0, 96.0)
POP = (100.0, 106.0, 99.0, 100.0)


def _assert_conserved(result):
    s = result.summary
    assert sum(t.profit for t in result.trade_log) == pytest.approx(
        s.final_capital - s.initial_capital, abs=1e-6
    )


class TestCheckExit:
    """Stop wins when a bar touches both levels."""

    def test_long_stop_first(self):
        hit = check_exit(True, 95.0, 105.0, high=106.0, low=94.0)
        assert hit.is_stop and hit.price == 95.0

    def test_short_stop_first(self):
        hit = check_exit(False, 105.0, 95.0, high=106.0, low=94.0)
        assert hit.is_stop and hit.price == 105.0

    def test_target_only(self):
        hit = check_exit(True, 90.0, 105.0, high=106.0, low=99.0)
        assert not hit.is_stop and hit.price == 105.0

    def test_no_touch(self):
        assert check_exit(True, 90.0, 110.0, high=101.0, low=99.0) is None


class TestTakeProfit:
    """One long whose target is reached by a gap at bar 10."""

    @pytest.fixture
    def series(self, make_bars):
        rows = [QUIET] * 20
        rows[10] = (100.0, 115.0, 99.0, 112.0)
        return make_bars(rows)

    @pytest.fixture
    def result(self, series, make_candidate):
        candidate = make_candidate(series, entry_idx=1, stop=90.0, target=110.0)
        return run_backtest([candidate], series, initial_capital=10_000.0)

    def test_single_take_profit_at_bar_10(self, result, series):
        assert len(result.trade_log) == 1
        trade = result.trade_log[0]
        assert trade.exit_reason == ExitReason.TAKE_PROFIT
        assert trade.exit_reason.value == "Take Profit Hit"
        assert trade.exit_timestamp == series.timestamp_at(10)
        assert trade.exit_price == 110.0

    def test_profit_and_capital(self, result):
        trade = result.trade_log[0]
        assert trade.capital_allocated == pytest.approx(1_000.0)
        assert trade.profit == pytest.approx(100.0)
        assert trade.profit_pct == pytest.approx(10.0)
        assert result.summary.final_capital == pytest.approx(10_100.0)
        assert result.summary.win_rate == pytest.approx(100.0)
        _assert_conserved(result)

    def test_cagr_spans_first_entry_to_last_exit(self, result):
        years = 9 / 365.25
        expected = ((10_100.0 / 10_000.0) ** (1 / years) - 1) * 100
        assert result.summary.cagr == pytest.approx(expected)

    def test_trade_record_carries_origin(self, result, series):
        d = result.trade_log[0].to_dict()
        assert d["direction"] == "long"
        assert d["exit_reason"] == "Take Profit Hit"
        assert d["start_point_name"] == "SP1"
        assert d["entry_timestamp"] == series.timestamp_at(1).isoformat()

    def test_short_take_profit(self, make_bars, make_candidate):
        rows = [QUIET] * 10
        rows[4] = (100.0, 101.0, 89.0, 90.0)
        series = make_bars(rows)
        candidate = make_candidate(
            series, entry_idx=1, stop=110.0, target=91.0, direction=Direction.SHORT
        )

        result = run_backtest([candidate], series)

        trade = result.trade_log[0]
        assert trade.exit_reason == ExitReason.TAKE_PROFIT
        assert trade.exit_price == 91.0
        assert trade.profit == pytest.approx(1_000.0 / 100.0 * 9.0)


class TestGroupLiquidation:
    """Stop on one member closes the whole start-point group."""

    @pytest.fixture
    def setup(self, make_bars, make_candidate):
        rows = [QUIET] * 10
        rows[5] = DIP
        series = make_bars(rows)
        tight = make_candidate(series, entry_idx=1, stop=95.0, target=120.0, start_point_name="SP")
        wide = make_candidate(series, entry_idx=2, stop=90.0, target=120.0, start_point_name="SP")
        return series, [tight, wide]

    def test_both_closed_on_liquidation(self, setup):
        series, candidates = setup
        result = run_backtest(candidates, series, liquidate_group_on_loss=True)

        assert len(result.trade_log) == 2
        for trade in result.trade_log:
            assert trade.exit_reason == ExitReason.GROUP_LIQUIDATION
            assert trade.exit_timestamp == series.timestamp_at(5)
            assert trade.exit_price == 95.0
        _assert_conserved(result)

    def test_without_liquidation_only_stopped_member_exits(self, setup):
        series, candidates = setup
        result = run_backtest(candidates, series, liquidate_group_on_loss=False)

        reasons = [t.exit_reason for t in result.trade_log]
        assert reasons == [ExitReason.STOP_LOSS, ExitReason.END_OF_TEST]
        assert result.trade_log[1].exit_timestamp == series.timestamp_at(9)
        _assert_conserved(result)

    def test_other_groups_untouched(self, make_bars, make_candidate):
        rows = [QUIET] * 10
        rows[5] = DIP
        series = make_bars(rows)
        candidates = [
            make_candidate(series, entry_idx=1, stop=95.0, target=120.0, start_point_name="A"),
            make_candidate(series, entry_idx=2, stop=90.0, target=120.0, start_point_name="B"),
        ]

        result = run_backtest(candidates, series, liquidate_group_on_loss=True)

        by_group = {t.start_point_name: t.exit_reason for t in result.trade_log}
        assert by_group == {
            "A": ExitReason.GROUP_LIQUIDATION,
            "B": ExitReason.END_OF_TEST,
        }


class TestLossCircuitBreaker:
    """Two losses arm observation; ghosts run until one would have won."""

    @pytest.fixture
    def setup(self, make_bars, make_candidate):
        rows = [QUIET] * 30
        for i in (3, 6, 10, 14):
            rows[i] = DIP
        for i in (18, 22):
            rows[i] = POP
        series = make_bars(rows)

        losers = [
            make_candidate(series, entry_idx=1, stop=95.0, target=120.0, start_point_name="L1"),
            make_candidate(series, entry_idx=4, stop=95.0, target=120.0, start_point_name="L2"),
        ]
        ghosts = [
            make_candidate(series, entry_idx=8, stop=95.0, target=120.0, start_point_name="G1"),
            make_candidate(series, entry_idx=12, stop=95.0, target=120.0, start_point_name="G2"),
            make_candidate(series, entry_idx=16, stop=90.0, target=105.0, start_point_name="G3"),
        ]
        real = make_candidate(series, entry_idx=20, stop=90.0, target=105.0, start_point_name="R")
        return series, losers + ghosts + [real]

    def test_ghosts_are_never_traded(self, setup):
        series, candidates = setup
        result = run_backtest(candidates, series, prevent_on_losses=True)

        names = [t.start_point_name for t in result.trade_log]
        assert names == ["L1", "L2", "R"]
        assert [t.exit_reason for t in result.trade_log] == [
            ExitReason.STOP_LOSS,
            ExitReason.STOP_LOSS,
            ExitReason.TAKE_PROFIT,
        ]
        assert result.trade_log[2].entry_timestamp == series.timestamp_at(20)
        _assert_conserved(result)

    def test_all_traded_when_disabled(self, setup):
        series, candidates = setup
        result = run_backtest(candidates, series, prevent_on_losses=False)

        assert [t.start_point_name for t in result.trade_log] == [
            "L1", "L2", "G1", "G2", "G3", "R",
        ]

    def test_ghost_outcomes(self, setup):
        series, candidates = setup
        outcomes = [simulate_outcome(c, series) for c in candidates[2:5]]
        assert outcomes == [TradeOutcome.LOSS, TradeOutcome.LOSS, TradeOutcome.WIN]

    def test_ghost_unresolved_when_levels_never_touched(self, make_bars, make_candidate):
        series = make_bars([QUIET] * 10)
        candidate = make_candidate(series, entry_idx=2, stop=50.0, target=150.0)
        assert simulate_outcome(candidate, series) is None

    def test_streak_threshold_is_configurable(self, setup):
        series, candidates = setup
        config = BacktestConfig(prevent_on_losses=True, loss_streak_threshold=3)

        result = PortfolioBacktester(config).run(candidates, series)

        # L1, L2, G1 lose; G2 is ghosted and loses; G3 ghost wins; R trades
        assert [t.start_point_name for t in result.trade_log] == ["L1", "L2", "G1", "R"]


class TestSameDayExit:
    """Entry bar that already breaches a level."""

    def test_same_day_stop(self, make_bars, make_candidate):
        rows = [QUIET] * 6
        rows[1] = DIP
        series = make_bars(rows)
        candidate = make_candidate(series, entry_idx=1, stop=95.0, target=120.0)

        result = run_backtest([candidate], series)

        assert len(result.trade_log) == 1
        trade = result.trade_log[0]
        assert trade.exit_reason == ExitReason.SAME_DAY_STOP
        assert "Same Day" in trade.exit_reason.value
        assert trade.exit_timestamp == trade.entry_timestamp
        assert trade.exit_price == 95.0
        assert all(point["open_positions"] == 0 for point in result.equity_curve)

    def test_same_day_tie_resolves_to_stop(self, make_bars, make_candidate):
        rows = [QUIET] * 6
        rows[1] = (100.0, 106.0, 94.0, 100.0)
        series = make_bars(rows)
        candidate = make_candidate(series, entry_idx=1, stop=95.0, target=105.0)

        trade = run_backtest([candidate], series).trade_log[0]

        assert trade.exit_reason == ExitReason.SAME_DAY_STOP

    def test_same_day_target(self, make_bars, make_candidate):
        rows = [QUIET] * 6
        rows[1] = POP
        series = make_bars(rows)
        candidate = make_candidate(series, entry_idx=1, stop=90.0, target=105.0)

        trade = run_backtest([candidate], series).trade_log[0]

        assert trade.exit_reason == ExitReason.SAME_DAY_TARGET
        assert trade.exit_reason.is_same_day


class TestCapacity:
    """Position cap and per-bar entry limits."""

    def test_cap_from_position_size(self, make_bars, make_candidate):
        series = make_bars([QUIET] * 8)
        candidates = [
            make_candidate(series, entry_idx=1, stop=80.0, target=130.0, start_point_name=f"SP{i}")
            for i in range(5)
        ]

        result = run_backtest(candidates, series, position_size_fraction=0.5)

        assert len(result.trade_log) == 2
        assert max(p["open_positions"] for p in result.equity_curve) <= 2
        _assert_conserved(result)

    def test_single_trade_per_bar(self, make_bars, make_candidate):
        series = make_bars([QUIET] * 8)
        candidates = [
            make_candidate(series, entry_idx=1, stop=80.0, target=130.0, start_point_name=f"SP{i}")
            for i in range(3)
        ]

        result = run_backtest(candidates, series, single_trade_per_bar=True)

        assert [t.start_point_name for t in result.trade_log] == ["SP0"]

    def test_allocation_compounds_from_cash(self, make_bars, make_candidate):
        series = make_bars([QUIET] * 8)
        candidates = [
            make_candidate(series, entry_idx=1, stop=80.0, target=130.0, start_point_name="A"),
            make_candidate(series, entry_idx=2, stop=80.0, target=130.0, start_point_name="B"),
        ]

        result = run_backtest(candidates, series)

        allocated = [t.capital_allocated for t in result.trade_log]
        assert allocated == pytest.approx([1_000.0, 900.0])

    def test_end_of_test_closes_at_last_close(self, make_bars, make_candidate):
        rows = [QUIET] * 8
        rows[-1] = (100.0, 103.0, 99.0, 102.0)
        series = make_bars(rows)
        candidate = make_candidate(series, entry_idx=1, stop=80.0, target=130.0)

        trade = run_backtest([candidate], series).trade_log[0]

        assert trade.exit_reason == ExitReason.END_OF_TEST
        assert trade.exit_price == 102.0
        assert trade.exit_timestamp == series.timestamp_at(7)


class TestValidationAndAlignment:
    """Fail-fast checks and multi-symbol timelines."""

    def test_untradeable_candidate_rejected(self, make_bars, make_candidate):
        series = make_bars([QUIET] * 5)
        candidate = make_candidate(series, entry_idx=1, stop=90.0, target=None)
        with pytest.raises(PivotalDataError):
            run_backtest([candidate], series)

    def test_empty_series_rejected(self, make_bars):
        with pytest.raises(PivotalDataError):
            run_backtest([], make_bars([]))

    def test_unknown_symbol_rejected(self, make_bars, make_candidate):
        a = make_bars([QUIET] * 5, symbol="A")
        b = make_bars([QUIET] * 5, symbol="B")
        candidate = make_candidate(a, entry_idx=1, stop=90.0, target=110.0, symbol="C")
        with pytest.raises(PivotalDataError):
            run_backtest([candidate], {"A": a, "B": b})

    def test_no_candidates(self, make_bars):
        result = run_backtest([], make_bars([QUIET] * 5))
        assert result.trade_log == []
        assert result.summary.final_capital == 10_000.0
        assert result.summary.cagr == 0.0

    def test_missing_bar_skips_position(self, make_bars, make_candidate):
        a = make_bars([QUIET] * 10, symbol="A")
        b_rows = [QUIET] * 10
        b_rows[6] = DIP
        full_b = make_bars(b_rows, symbol="B")
        # B has no bar on day 5
        b = BarSeries(full_b.frame.drop(full_b.timestamp_at(5)), symbol="B")
        candidate = make_candidate(b, entry_idx=1, stop=95.0, target=120.0)

        result = run_backtest([candidate], {"A": a, "B": b})

        trade = result.trade_log[0]
        assert trade.symbol == "B"
        assert trade.exit_reason == ExitReason.STOP_LOSS
        assert trade.exit_timestamp == a.timestamp_at(6)
        assert len(result.equity_curve) == 10

    def test_groups_are_per_symbol(self, make_bars, make_candidate):
        a_rows = [QUIET] * 8
        a_rows[4] = DIP
        a = make_bars(a_rows, symbol="A")
        b = make_bars([QUIET] * 8, symbol="B")
        candidates = [
            make_candidate(a, entry_idx=1, stop=95.0, target=120.0, start_point_name="SP"),
            make_candidate(b, entry_idx=1, stop=95.0, target=120.0, start_point_name="SP"),
        ]

        result = run_backtest(candidates, {"A": a, "B": b}, liquidate_group_on_loss=True)

        reasons = {t.symbol: t.exit_reason for t in result.trade_log}
        assert reasons == {"A": ExitReason.GROUP_LIQUIDATION, "B": ExitReason.END_OF_TEST}


class TestGeneratedCandidates:
    """Properties over candidates produced by the assembler."""

    @pytest.fixture
    def generated(self, random_walk):
        series = random_walk(n=500, seed=11)
        config = SignalConfig(
            lookback_periods=[30, 15],
            pivot_lookaround=5,
            scaling_lookback=60,
            scaling=ScalingConfig(atr_period=14, trend_lookaround=3),
        )
        return series, SignalAssembler(config).assemble(series)

    @pytest.mark.parametrize("fraction", [0.1, 0.25, 0.3, 1.0])
    def test_cap_and_conservation(self, generated, fraction):
        series, candidates = generated
        config = BacktestConfig(
            position_size_fraction=fraction,
            liquidate_group_on_loss=True,
            prevent_on_losses=True,
        )

        result = PortfolioBacktester(config).run(candidates, series)

        cap = int(1 / fraction + 1e-9)
        assert max(p["open_positions"] for p in result.equity_curve) <= cap
        assert all(t.exit_timestamp >= t.entry_timestamp for t in result.trade_log)
        _assert_conserved(result)

    def test_idempotent(self, generated):
        series, candidates = generated
        config = BacktestConfig(liquidate_group_on_loss=True, prevent_on_losses=True)

        first = PortfolioBacktester(config).run(candidates, series)
        second = PortfolioBacktester(config).run(candidates, series)

        assert [t.to_dict() for t in first.trade_log] == [t.to_dict() for t in second.trade_log]
        assert first.summary.to_dict() == second.summary.to_dict()
        assert first.equity_curve == second.equity_curve

    def test_trade_log_sorted_by_entry(self, generated):
        series, candidates = generated
        result = PortfolioBacktester().run(candidates, series)
        entries = [t.entry_timestamp for t in result.trade_log]
        assert entries == sorted(entries)
