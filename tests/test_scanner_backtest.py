"""
Tests for Momentum/RSI Scanner Backtest

Candle paths are built so RSI(14) crosses below 30 at a known bar:
20 alternating bars keep RSI near 50, then a steady decline of 1 per
bar takes RSI from 31.6 at bar 26 to 29.4 at bar 27 (entry at 93).
"""

import math

import pytest
import numpy as np

from spreadex.backtest import (
    Candle,
    ExitReason,
    MomentumBacktestConfig,
    StrategyMode,
    calculate_rsi,
    detect_rsi_crossover,
    run_momentum_backtest,
    run_scanner_backtest,
)
from spreadex.backtest.scanner import build_stats, candles_to_frame
from spreadex.backtest.schemas import ScannerTrade

HOUR_MS = 3_600_000
ENTRY_BAR = 27
ENTRY_PRICE = 93.0

# Alternating 100/101 for 20 bars, then 100 down to 93
BASE_CLOSES = [100.0 if i % 2 == 0 else 101.0 for i in range(20)] + \
    [100.0, 99.0, 98.0, 97.0, 96.0, 95.0, 94.0, 93.0]


def _candles(closes, overrides=None):
    """Raw kline mappings with string fields, high/low 0.5 around the close"""
    overrides = overrides or {}
    candles = []
    for i, close in enumerate(closes):
        high, low = overrides.get(i, (close + 0.5, close - 0.5))
        candles.append({
            'openTime': i * HOUR_MS,
            'open': str(close),
            'high': str(high),
            'low': str(low),
            'close': str(close),
            'volume': '10',
        })
    return candles


class FakeCandleSource:
    """In-memory candle store"""

    def __init__(self, data):
        self.data = data
        self.requests = []

    def get_candles(self, symbol, interval):
        self.requests.append((symbol, interval))
        return self.data.get(symbol, [])


@pytest.fixture
def take_profit_candles():
    """Entry at bar 27, high reaches take profit at bar 29"""
    return _candles(BASE_CLOSES + [94.0, 96.0] + [96.0] * 10)


@pytest.fixture
def stop_loss_candles():
    """Bar 28 spans both stop loss and take profit"""
    return _candles(BASE_CLOSES + [94.0] * 12, overrides={28: (100.0, 89.0)})


class TestRsi:
    """Test RSI primitives."""

    def test_known_values(self):
        """Hand-computed Wilder RSI with period 2."""
        rsi = calculate_rsi([1.0, 2.0, 1.0, 2.0, 1.0], period=2)

        assert np.isnan(rsi[0]) and np.isnan(rsi[1])
        assert rsi[2] == pytest.approx(50.0)
        assert rsi[3] == pytest.approx(75.0)
        assert rsi[4] == pytest.approx(37.5)

    def test_flat_and_rising(self):
        """Flat market is 50; no losses is 100."""
        assert calculate_rsi([5.0] * 20, 14)[-1] == 50.0
        assert calculate_rsi(np.arange(1, 21, dtype=float), 14)[-1] == 100.0

    def test_short_input(self):
        """Too few closes gives all NaN."""
        rsi = calculate_rsi([1.0, 2.0, 3.0], 14)
        assert len(rsi) == 3
        assert np.all(np.isnan(rsi))

    def test_path_crosses_at_expected_bar(self):
        """The fixture path crosses below 30 exactly at the entry bar."""
        rsi = calculate_rsi(BASE_CLOSES, 14)
        assert rsi[ENTRY_BAR - 1] > 30 >= rsi[ENTRY_BAR]

    def test_crossover_detection(self):
        """Below and above crossings, NaN neighbours skipped."""
        events = detect_rsi_crossover([np.nan, 40.0, 25.0, 35.0, 28.0], 30.0)

        assert [e.index for e in events] == [2, 3, 4]
        assert [e.crossed_below for e in events] == [True, False, True]
        assert [e.crossed_above for e in events] == [False, True, False]

    def test_crossover_boundaries(self):
        """Landing on the threshold counts; leaving it does not."""
        assert detect_rsi_crossover([31.0, 30.0], 30.0)[0].crossed_below
        assert detect_rsi_crossover([30.0, 29.0], 30.0) == []


class TestCandleParsing:
    """Test candle parsing at the boundary."""

    def test_from_raw_strings(self):
        """Numeric strings parse; camelCase open time is accepted."""
        candle = Candle.from_raw({
            'openTime': 1700000000000, 'open': '1.5', 'high': '2', 'low': '1.25',
            'close': '1.75', 'volume': '1000.5'
        })
        assert candle.open_time == 1700000000000
        assert candle.close == 1.75
        assert candle.volume == 1000.5

    def test_from_raw_invalid(self):
        """Unparseable or non-finite fields become 0."""
        candle = Candle.from_raw({'open_time': 5, 'close': 'abc', 'high': 'nan', 'volume': None})
        assert candle.open_time == 5
        assert candle.close == 0.0
        assert candle.high == 0.0
        assert candle.volume == 0.0

    def test_candles_to_frame(self):
        """Mixed Candle objects and mappings become one frame."""
        frame = candles_to_frame([Candle(0, 1, 2, 0.5, 1.5), {'openTime': 1, 'close': '2'}])
        assert list(frame.columns) == ['open_time', 'open', 'high', 'low', 'close', 'volume']
        assert frame['close'].tolist() == [1.5, 2.0]


class TestMomentumBacktest:
    """Test the single-symbol momentum/RSI backtest."""

    def test_take_profit(self, take_profit_candles):
        """Take profit fills at the target price."""
        result = run_momentum_backtest("ETH", take_profit_candles)

        assert result.mode == StrategyMode.MOMENTUM_RSI
        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.exit_reason == ExitReason.TAKE_PROFIT
        assert trade.entry_price == ENTRY_PRICE
        assert trade.exit_price == pytest.approx(ENTRY_PRICE * 1.03)
        assert trade.entry_time == ENTRY_BAR * HOUR_MS
        assert trade.exit_time == 29 * HOUR_MS
        assert trade.hold_bars == 2
        assert trade.pnl_percent == pytest.approx(3.0)

    def test_stop_loss_checked_first(self, stop_loss_candles):
        """A bar touching both levels exits at the stop."""
        trade = run_momentum_backtest("ETH", stop_loss_candles).trades[0]

        assert trade.exit_reason == ExitReason.STOP_LOSS
        assert trade.exit_price == pytest.approx(ENTRY_PRICE * 0.96)
        assert trade.pnl_percent == pytest.approx(-4.0)
        assert trade.hold_bars == 1

    def test_max_hold(self):
        """Flat prices exit at the close after max_hold_bars."""
        result = run_momentum_backtest("ETH", _candles(BASE_CLOSES + [93.0] * 17))
        trade = result.trades[0]

        assert len(result.trades) == 1
        assert trade.exit_reason == ExitReason.MAX_HOLD
        assert trade.hold_bars == 10
        assert trade.pnl_percent == pytest.approx(0.0)

    def test_end_of_data(self):
        """An open position closes at the last candle."""
        result = run_momentum_backtest("ETH", _candles(BASE_CLOSES + [93.0] * 6))
        trade = result.trades[0]

        assert trade.exit_reason == ExitReason.END_OF_DATA
        assert trade.hold_bars == 6
        assert trade.exit_time == 33 * HOUR_MS

    @pytest.mark.parametrize("cooldown, expected_trades", [(2, 1), (0, 2)])
    def test_cooldown(self, cooldown, expected_trades):
        """A crossing one bar after an exit is skipped during cooldown."""
        # Stop out at bar 28, RSI crosses below again at bar 29
        candles = _candles(BASE_CLOSES + [94.0, 92.0] + [92.0] * 10, overrides={28: (94.5, 89.0)})
        result = run_momentum_backtest("ETH", candles, MomentumBacktestConfig(cooldown_bars=cooldown))

        assert len(result.trades) == expected_trades
        assert result.trades[0].exit_reason == ExitReason.STOP_LOSS
        if expected_trades == 2:
            assert result.trades[1].entry_time == 29 * HOUR_MS
            assert result.trades[1].exit_reason == ExitReason.MAX_HOLD

    def test_too_few_candles(self):
        """Fewer than period + 20 candles gives no trades."""
        result = run_momentum_backtest("ETH", _candles(BASE_CLOSES + [93.0] * 5))
        assert result.trades == ()
        assert result.stats.total_trades == 0

    def test_non_positive_close(self, take_profit_candles):
        """Any non-positive close skips the symbol."""
        take_profit_candles[5]['close'] = '0'
        assert run_momentum_backtest("ETH", take_profit_candles).trades == ()

    @pytest.mark.parametrize("bad_close", [float('nan'), float('inf')])
    def test_non_finite_close(self, take_profit_candles, bad_close):
        """A directly built candle with a non-finite close skips the symbol."""
        take_profit_candles[30] = Candle(30 * HOUR_MS, 96.0, 96.5, 95.5, bad_close)
        result = run_momentum_backtest("ETH", take_profit_candles)

        assert result.trades == ()
        assert result.stats.total_trades == 0


class TestScannerStats:
    """Test trade statistics."""

    def _trade(self, pnl, hold=2):
        return ScannerTrade("ETH", 0, hold, 100.0, 100.0 + pnl, hold, ExitReason.MAX_HOLD, pnl)

    def test_expectancy(self):
        """P(win) * avg win - P(loss) * avg loss."""
        stats = build_stats([self._trade(3.0), self._trade(-4.0), self._trade(3.0), self._trade(0.0)])

        assert stats.total_trades == 4
        assert stats.winners == 2
        assert stats.losers == 2
        assert stats.win_rate == 50.0
        assert stats.profit_factor == pytest.approx(1.5)
        assert stats.expectancy_percent == pytest.approx(0.5 * 3.0 - 0.5 * 2.0)
        assert stats.total_pnl_percent == pytest.approx(2.0)

    def test_no_losses(self):
        """Profit factor is infinite without losses."""
        assert math.isinf(build_stats([self._trade(1.0)]).profit_factor)
        assert build_stats([]).total_trades == 0


class TestScannerUniverse:
    """Test the universe backtest."""

    def test_aggregates_all_symbols(self, take_profit_candles, stop_loss_candles):
        """Per-symbol results in order plus aggregate stats."""
        source = FakeCandleSource({"ETH": take_profit_candles, "SOL": stop_loss_candles})
        universe = run_scanner_backtest(["ETH", "SOL", "XRP"], source, interval="4h")

        assert [r.symbol for r in universe.results] == ["ETH", "SOL", "XRP"]
        assert universe.results[2].trades == ()
        assert universe.aggregate.total_trades == 2
        assert universe.aggregate.total_pnl_percent == pytest.approx(-1.0)
        assert source.requests == [("ETH", "4h"), ("SOL", "4h"), ("XRP", "4h")]

    def test_invalid_config(self):
        """Config is validated before any candles are fetched."""
        source = FakeCandleSource({})
        with pytest.raises(ValueError):
            run_scanner_backtest(["ETH"], source, config=MomentumBacktestConfig(rsi_threshold=150))
        assert source.requests == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
