"""
Tests for Pair-Spread Backtest Engine

Validates trade simulation, gates, summary statistics, data cleaning and
strategy dispatch.
"""

import math

import pytest
import numpy as np

from spreadex.backtest import (
    BacktestConfig,
    DEFAULT_BACKTEST_CONFIG,
    ExitReason,
    MomentumRsiStrategy,
    PairBacktestEngine,
    PairSpreadStrategy,
    StrategyMode,
    TradeDirection,
    calculate_equity_curve,
    calculate_summary,
    run_strategy,
)
from spreadex.backtest.engine import (
    PreparedPair,
    calculate_combined_pnl,
    calculate_max_drawdown,
    rolling_spread_zscores,
    simulate_trades,
)
from spreadex.backtest.schemas import LegPrices, Trade
from spreadex.backtest.strategy import run_strategies

SHOCK_BARS = {150: 0.02, 220: -0.02, 290: 0.02}


@pytest.fixture
def shocked_pair():
    """
    Tightly coupled pair with three one-bar spread shocks.

    The spread is a small deterministic oscillation, so only the
    shocks push the rolling z-score past the entry threshold.
    """
    np.random.seed(42)
    n = 360
    secondary = 100 * np.exp(np.cumsum(np.random.normal(0, 0.01, n)))
    log_offset = 0.001 * np.sin(np.arange(n) * 0.7)
    for bar, shock in SHOCK_BARS.items():
        log_offset[bar] += shock
    primary = 2 * secondary * np.exp(log_offset)
    return primary, secondary


@pytest.fixture
def engine():
    """Default engine"""
    return PairBacktestEngine()


def _trade(profit, duration=1):
    prices = LegPrices(100.0, 50.0)
    return Trade(
        entry_index=0,
        exit_index=duration,
        entry_spread=3.5,
        exit_spread=0.0,
        entry_correlation=0.9,
        entry_prices=prices,
        exit_prices=prices,
        direction=TradeDirection.SHORT_PRIMARY,
        profit_percent=profit,
        exit_reason=ExitReason.TAKE_PROFIT if profit > 0 else ExitReason.STOP_LOSS,
        duration_bars=duration,
    )


class TestPairBacktest:
    """Test the bar-by-bar simulation."""

    def test_shocks_are_traded(self, engine, shocked_pair):
        """Every shock opens a trade that takes profit one bar later."""
        primary, secondary = shocked_pair
        result = engine.run_backtest(primary, secondary, "ETH", "BTC")

        assert [t.entry_index for t in result.trades] == sorted(SHOCK_BARS)
        assert [t.direction for t in result.trades] == [
            TradeDirection.SHORT_PRIMARY,
            TradeDirection.LONG_PRIMARY,
            TradeDirection.SHORT_PRIMARY,
        ]
        for trade in result.trades:
            assert trade.exit_reason == ExitReason.TAKE_PROFIT
            assert trade.duration_bars == 1
            assert trade.profit_percent >= DEFAULT_BACKTEST_CONFIG.take_profit_percent
            assert abs(trade.entry_spread) > DEFAULT_BACKTEST_CONFIG.entry_spread_threshold

    def test_summary_and_equity_curve(self, engine, shocked_pair):
        """Summary is consistent with the trade list."""
        primary, secondary = shocked_pair
        result = engine.run_backtest(primary, secondary, "ETH", "BTC")
        summary = result.summary

        assert summary.total_trades == 3
        assert summary.win_rate == 100.0
        assert math.isinf(summary.profit_factor)
        assert summary.max_drawdown_percent == 0.0
        assert result.equity_curve[0] == 0.0
        assert len(result.equity_curve) == summary.total_trades + 1
        assert result.equity_curve[-1] == pytest.approx(summary.total_profit_percent)
        assert result.mode == StrategyMode.PAIR_SPREAD

    def test_prefixed_primary_history_is_ignored(self, engine, shocked_pair):
        """Extra leading primary bars do not change the outcome."""
        primary, secondary = shocked_pair
        prefix = np.linspace(150, 160, 40)
        base = engine.run_backtest(primary, secondary, "ETH", "BTC")
        shifted = engine.run_backtest(np.concatenate([prefix, primary]), secondary, "ETH", "BTC")

        assert [t.entry_index for t in shifted.trades] == [t.entry_index for t in base.trades]
        assert shifted.summary.total_profit_percent == pytest.approx(base.summary.total_profit_percent)

    def test_rolling_zscores_ignore_older_history(self, shocked_pair):
        """Each z-score depends only on its own trailing window."""
        primary, secondary = shocked_pair
        z_full = rolling_spread_zscores(primary, secondary)
        z_tail = rolling_spread_zscores(primary[50:], secondary[50:])

        assert np.all(np.isnan(z_full[:99]))
        np.testing.assert_allclose(z_full[149:], z_tail[99:])

    def test_dirty_data_stays_finite(self, engine, shocked_pair):
        """Invalid bars are dropped before any log or division."""
        primary, secondary = shocked_pair
        primary = primary.copy()
        secondary = secondary.copy()
        primary[[20, 40]] = [0.0, -5.0]
        secondary[[60, 80]] = [np.nan, np.inf]

        result = engine.run_backtest(primary, secondary, "ETH", "BTC")
        summary = result.summary.to_dict()

        for key, value in summary.items():
            if key != 'profit_factor':
                assert math.isfinite(value), key
        for trade in result.trades:
            assert math.isfinite(trade.profit_percent)
            assert math.isfinite(trade.entry_spread)

    def test_length_gate(self, engine, shocked_pair):
        """Fewer than window + 10 aligned bars gives no trades."""
        primary, secondary = shocked_pair
        result = engine.run_backtest(primary[:109], secondary[:109], "ETH", "BTC")

        assert result.trades == ()
        assert result.equity_curve == (0.0,)
        assert result.summary.total_trades == 0

    def test_correlation_gate(self, engine, shocked_pair):
        """Pairs below min_correlation are not traded."""
        primary, secondary = shocked_pair
        result = engine.run_backtest(
            primary, secondary, "ETH", "BTC", config={'min_correlation': 0.995}
        )
        assert result.trades == ()
        assert result.config.min_correlation == 0.995

    def test_higher_threshold_trades_less(self, engine, shocked_pair):
        """An entry threshold above every shock z-score never trades."""
        primary, secondary = shocked_pair
        result = engine.run_backtest(
            primary, secondary, "ETH", "BTC", config=BacktestConfig(entry_spread_threshold=50.0)
        )
        assert result.summary.total_trades == 0

    def test_invalid_config_rejected(self, engine, shocked_pair):
        """Validation runs before any simulation."""
        primary, secondary = shocked_pair
        with pytest.raises(ValueError):
            engine.run_backtest(primary, secondary, "ETH", "BTC", config={'take_profit_percent': 0})
        with pytest.raises(ValueError):
            engine.run_backtest(primary, secondary, "ETH", "BTC", config={'unknown_option': 1})

    def test_run_all_pairs_preserves_order(self, engine, shocked_pair):
        """Batch results follow input order."""
        primary, secondary = shocked_pair
        results = engine.run_backtest_all_pairs(
            primary, [("SOL", secondary[:50]), ("ETH", secondary)], "BTC"
        )
        assert [r.symbol for r in results] == ["SOL", "ETH"]
        assert results[0].summary.total_trades == 0
        assert results[1].summary.total_trades == 3


class TestSimulation:
    """Test the entry/exit state machine directly."""

    def _prepared(self, zscores):
        n = len(zscores)
        return PreparedPair(
            primary=np.full(n, 100.0),
            secondary=np.full(n, 50.0),
            correlation=0.9,
            zscores=np.array(zscores, dtype=float),
        )

    def test_end_of_data_exit(self):
        """An open position closes on the last bar."""
        trades = simulate_trades(self._prepared([np.nan, 5.0, 0.0, 0.0, 0.0]), DEFAULT_BACKTEST_CONFIG, 2)

        assert len(trades) == 1
        assert trades[0].exit_reason == ExitReason.END_OF_DATA
        assert trades[0].duration_bars == 3
        assert trades[0].profit_percent == 0.0

    def test_entry_on_final_bar(self):
        """Entering on the last bar closes immediately with zero P&L."""
        trades = simulate_trades(self._prepared([np.nan, 0.0, 0.0, 0.0, -5.0]), DEFAULT_BACKTEST_CONFIG, 2)

        assert len(trades) == 1
        assert trades[0].direction == TradeDirection.LONG_PRIMARY
        assert trades[0].exit_reason == ExitReason.END_OF_DATA
        assert trades[0].duration_bars == 0
        assert trades[0].profit_percent == 0.0

    def test_combined_pnl(self):
        """Average of the long and short legs."""
        assert calculate_combined_pnl(TradeDirection.LONG_PRIMARY, 100, 50, 110, 50) == pytest.approx(5.0)
        assert calculate_combined_pnl(TradeDirection.SHORT_PRIMARY, 100, 50, 110, 50) == pytest.approx(-5.0)
        assert calculate_combined_pnl(TradeDirection.SHORT_PRIMARY, 100, 50, 100, 55) == pytest.approx(5.0)


class TestSummary:
    """Test summary statistics."""

    def test_empty(self):
        """No trades gives the all-zero summary and a [0] curve."""
        assert calculate_summary([]).total_trades == 0
        assert calculate_summary([]).profit_factor == 0.0
        assert calculate_equity_curve([]) == (0.0,)

    def test_profit_factor(self):
        """Gross profit over gross loss, with defined edge cases."""
        assert calculate_summary([_trade(1.0), _trade(-0.5)]).profit_factor == pytest.approx(2.0)
        assert math.isinf(calculate_summary([_trade(1.0)]).profit_factor)
        assert calculate_summary([_trade(-1.0)]).profit_factor == 0.0
        assert calculate_summary([_trade(0.0)]).profit_factor == 0.0

    def test_counts_and_extremes(self):
        """Zero-profit trades count as losses."""
        summary = calculate_summary([_trade(1.0, 2), _trade(0.0, 4), _trade(-0.5, 6)])

        assert summary.winning_trades == 1
        assert summary.losing_trades == 2
        assert summary.win_rate == pytest.approx(100 / 3)
        assert summary.largest_win == 1.0
        assert summary.largest_loss == -0.5
        assert summary.average_duration_bars == 4.0

    def test_max_drawdown(self):
        """Peak-to-trough with the running peak starting at 0."""
        assert calculate_max_drawdown(calculate_equity_curve([_trade(1.0), _trade(-2.0), _trade(0.5)])) == \
            pytest.approx(2.0)
        assert calculate_max_drawdown(calculate_equity_curve([_trade(-1.0)])) == pytest.approx(1.0)


class TestBacktestConfig:
    """Test backtest configuration."""

    def test_merged_skips_none(self):
        """None overrides keep the default."""
        config = DEFAULT_BACKTEST_CONFIG.merged(entry_spread_threshold=2.0, min_correlation=None)
        assert config.entry_spread_threshold == 2.0
        assert config.min_correlation == 0.7
        assert DEFAULT_BACKTEST_CONFIG.entry_spread_threshold == 3.0

    def test_from_dict_and_hash(self):
        """Partial dicts fill defaults; equal configs hash equally."""
        config = BacktestConfig.from_dict({'stop_loss_percent': 0.8})
        assert config.take_profit_percent == 0.5
        assert config.get_config_hash() == BacktestConfig(stop_loss_percent=0.8).get_config_hash()
        assert config.get_config_hash() != DEFAULT_BACKTEST_CONFIG.get_config_hash()

    def test_validate(self):
        """Out-of-range options raise ValueError."""
        with pytest.raises(ValueError):
            BacktestConfig(min_correlation=1.5).validate()
        with pytest.raises(ValueError):
            BacktestConfig(entry_spread_threshold=0).validate()


class TestStrategyDispatch:
    """Test tagged strategy dispatch."""

    def test_pair_spread(self, shocked_pair):
        """Pair-spread variant runs the pair engine."""
        primary, secondary = shocked_pair
        result = run_strategy(PairSpreadStrategy(
            primary_closes=tuple(primary),
            secondary_closes=tuple(secondary),
            symbol="ETH",
            primary_symbol="BTC",
        ))
        assert result.mode == StrategyMode.PAIR_SPREAD
        assert result.summary.total_trades == 3

    def test_momentum_rsi(self):
        """Momentum variant runs the scanner backtest."""
        result = run_strategy(MomentumRsiStrategy(symbol="ETH"))
        assert result.mode == StrategyMode.MOMENTUM_RSI
        assert result.trades == ()

    def test_unknown_variant(self):
        """Anything else is rejected."""
        with pytest.raises(TypeError):
            run_strategy("pair_spread")

    def test_run_strategies(self):
        """Several variants run in order."""
        results = run_strategies([MomentumRsiStrategy(symbol="A"), MomentumRsiStrategy(symbol="B")])
        assert [r.symbol for r in results] == ["A", "B"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
