"""
Momentum/RSI Scanner Backtest

Single-instrument long strategy over full candle history:
- Entry: RSI crosses below rsi_threshold, once the cooldown after the
  previous exit has elapsed
- Exit: stop-loss (checked first), take-profit, max hold, end of data

A universe run pulls candles per symbol from an injected CandleSource
and aggregates every trade into one stats record.
"""

from typing import Iterable, List, Mapping, Optional, Protocol, Sequence, Union
import logging

import numpy as np
import pandas as pd

from .config import DEFAULT_MOMENTUM_BACKTEST_CONFIG, MomentumBacktestConfig
from .rsi import calculate_rsi, detect_rsi_crossover
from .schemas import (
    Candle,
    ExitReason,
    ScannerBacktestResult,
    ScannerStats,
    ScannerTrade,
    UniverseBacktestResult,
)

LOG = logging.getLogger(__name__)

# Candles needed beyond the RSI period
MIN_EXTRA_CANDLES = 20


class CandleSource(Protocol):
    """Candle store collaborator"""

    def get_candles(self, symbol: str, interval: str) -> Sequence[Union[Candle, Mapping]]:
        ...


def candles_to_frame(candles: Iterable[Union[Candle, Mapping]]) -> pd.DataFrame:
    """
    Candle records as a DataFrame, parsing raw kline mappings on the way in.

    Columns: open_time, open, high, low, close, volume.
    """
    parsed = [c if isinstance(c, Candle) else Candle.from_raw(c) for c in candles]
    return pd.DataFrame(
        [(c.open_time, c.open, c.high, c.low, c.close, c.volume) for c in parsed],
        columns=['open_time', 'open', 'high', 'low', 'close', 'volume'],
    )


def build_stats(trades: Sequence[ScannerTrade]) -> ScannerStats:
    """
    Trade statistics with expectancy.

    expectancy = P(win) * avg win - P(loss) * avg loss, in percent.
    """
    if not trades:
        return ScannerStats()

    pnl = pd.Series([t.pnl_percent for t in trades], dtype=float)
    hold = pd.Series([t.hold_bars for t in trades], dtype=float)

    wins = pnl[pnl > 0]
    losses = pnl[pnl <= 0]
    winners = len(wins)
    losers = len(trades) - winners

    gross_profit = float(wins.sum())
    gross_loss = abs(float(losses.sum()))
    avg_win = gross_profit / winners if winners else 0.0
    avg_loss = gross_loss / losers if losers else 0.0

    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    elif gross_profit > 0:
        profit_factor = float('inf')
    else:
        profit_factor = 0.0

    total = float(pnl.sum())

    return ScannerStats(
        total_trades=len(trades),
        winners=winners,
        losers=losers,
        win_rate=winners / len(trades) * 100,
        avg_hold_bars=float(hold.mean()),
        avg_pnl_percent=total / len(trades),
        total_pnl_percent=total,
        gross_profit_percent=gross_profit,
        gross_loss_percent=gross_loss,
        profit_factor=profit_factor,
        expectancy_percent=(winners / len(trades)) * avg_win - (losers / len(trades)) * avg_loss,
    )


def run_momentum_backtest(
    symbol: str,
    candles: Sequence[Union[Candle, Mapping]],
    config: Optional[MomentumBacktestConfig] = None
) -> ScannerBacktestResult:
    """
    Momentum/RSI backtest for one symbol.

    Args:
        symbol: Instrument symbol
        candles: Candle records or raw kline mappings, chronological
        config: Strategy config (defaults if None)

    Returns:
        ScannerBacktestResult; no trades with too little history or any
        non-finite or non-positive close
    """
    config = config or DEFAULT_MOMENTUM_BACKTEST_CONFIG
    config.validate()

    empty = ScannerBacktestResult(symbol=symbol, config=config)
    if len(candles) < config.rsi_period + MIN_EXTRA_CANDLES:
        LOG.debug(f"{symbol}: {len(candles)} candles, need {config.rsi_period + MIN_EXTRA_CANDLES}")
        return empty

    frame = candles_to_frame(candles)
    closes = frame['close'].to_numpy()
    if np.any(~np.isfinite(closes) | (closes <= 0)):
        LOG.debug(f"{symbol}: non-finite or non-positive close in history, skipping")
        return empty

    highs = frame['high'].to_numpy()
    lows = frame['low'].to_numpy()
    open_times = frame['open_time'].to_numpy()

    rsi = calculate_rsi(closes, config.rsi_period)
    entry_bars = {
        event.index
        for event in detect_rsi_crossover(rsi, config.rsi_threshold)
        if event.crossed_below
    }

    trades: List[ScannerTrade] = []
    last_bar = len(closes) - 1
    in_position = False
    entry_index = -1
    entry_price = take_profit_price = stop_loss_price = 0.0
    last_exit_index = -1_000_000

    for i in range(1, len(closes)):
        if in_position:
            # Conservative intrabar ordering: stop loss before take profit
            if lows[i] <= stop_loss_price:
                exit_reason, exit_price = ExitReason.STOP_LOSS, stop_loss_price
            elif highs[i] >= take_profit_price:
                exit_reason, exit_price = ExitReason.TAKE_PROFIT, take_profit_price
            elif i - entry_index >= config.max_hold_bars:
                exit_reason, exit_price = ExitReason.MAX_HOLD, float(closes[i])
            elif i == last_bar:
                exit_reason, exit_price = ExitReason.END_OF_DATA, float(closes[i])
            else:
                continue

            trades.append(ScannerTrade(
                symbol=symbol,
                entry_time=int(open_times[entry_index]),
                exit_time=int(open_times[i]),
                entry_price=entry_price,
                exit_price=exit_price,
                hold_bars=i - entry_index,
                exit_reason=exit_reason,
                pnl_percent=(exit_price - entry_price) / entry_price * 100,
            ))
            in_position = False
            last_exit_index = i
            continue

        if i <= last_exit_index + config.cooldown_bars or i not in entry_bars:
            continue

        in_position = True
        entry_index = i
        entry_price = float(closes[i])
        take_profit_price = entry_price * (1 + config.take_profit_percent / 100)
        stop_loss_price = entry_price * (1 - config.stop_loss_percent / 100)

    return ScannerBacktestResult(
        symbol=symbol,
        config=config,
        trades=tuple(trades),
        stats=build_stats(trades),
    )


def run_scanner_backtest(
    universe: Iterable[str],
    candle_source: CandleSource,
    interval: str = "1h",
    config: Optional[MomentumBacktestConfig] = None
) -> UniverseBacktestResult:
    """
    Momentum/RSI backtest over a universe of symbols.

    Args:
        universe: Symbols to backtest, in order
        candle_source: Provides candles per (symbol, interval)
        interval: Candle interval
        config: Shared strategy config

    Returns:
        Per-symbol results plus stats over every trade
    """
    config = config or DEFAULT_MOMENTUM_BACKTEST_CONFIG
    config.validate()

    results = [
        run_momentum_backtest(symbol, candle_source.get_candles(symbol, interval), config)
        for symbol in universe
    ]
    all_trades = [trade for result in results for trade in result.trades]

    LOG.info(f"Scanner backtest: {len(results)} symbols on {interval}, "
             f"{len(all_trades)} trades")

    return UniverseBacktestResult(results=tuple(results), aggregate=build_stats(all_trades))
