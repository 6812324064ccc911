"""
Pair-Spread Backtest Engine

Bar-by-bar simulation of the pair-spread strategy:
- Entry: |rolling z-score of the log spread| > entry_spread_threshold
- Exit: combined P&L (average of both legs) hits take-profit or stop-loss
- Open positions are force-closed at the last bar

Position logic:
- z > 0: SHORT primary, LONG secondary (expect the spread to fall)
- z < 0: LONG primary, SHORT secondary (expect the spread to rise)

The pair must clear an overall return-correlation gate and have enough
aligned bars before any bar is simulated.
"""

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple, Union
import logging

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from spreadex.analysis.statistics import (
    EPSILON,
    align_series,
    calculate_returns,
    pearson_correlation,
)

from .config import BacktestConfig, DEFAULT_BACKTEST_CONFIG
from .schemas import (
    BacktestResult,
    BacktestSummary,
    ExitReason,
    LegPrices,
    Trade,
    TradeDirection,
)

LOG = logging.getLogger(__name__)

# Lookback window for rolling z-scores
ROLLING_WINDOW = 100

# Aligned bars required before simulating
MIN_BACKTEST_BARS = ROLLING_WINDOW + 10


@dataclass(frozen=True)
class PreparedPair:
    """Aligned legs with their overall correlation and per-bar rolling z-scores"""
    primary: np.ndarray
    secondary: np.ndarray
    correlation: float
    zscores: np.ndarray  # NaN before the first full window

    def __len__(self) -> int:
        return len(self.primary)


def tail_align(
    primary_closes: Sequence[float],
    secondary_closes: Sequence[float]
) -> Tuple[np.ndarray, np.ndarray]:
    """Keep the last min(len) bars of each leg so both end on the same bar"""
    n = min(len(primary_closes), len(secondary_closes))
    if n == 0:
        return np.empty(0), np.empty(0)
    primary = np.asarray(primary_closes, dtype=float)[-n:]
    secondary = np.asarray(secondary_closes, dtype=float)[-n:]
    return primary, secondary


def rolling_spread_zscores(
    primary: np.ndarray,
    secondary: np.ndarray,
    window: int = ROLLING_WINDOW
) -> np.ndarray:
    """
    Z-score of the log spread at every bar over its trailing window.

    Each value depends only on the `window` bars ending at that bar, so
    results do not change when earlier history is prepended. Population
    standard deviation; near-constant windows give 0.
    """
    n = min(len(primary), len(secondary))
    zscores = np.full(n, np.nan)
    if window < 2 or n < window:
        return zscores

    spread = (np.log(np.maximum(primary[:n], EPSILON))
              - np.log(np.maximum(secondary[:n], EPSILON)))
    windows = sliding_window_view(spread, window)
    means = windows.mean(axis=1)
    stds = windows.std(axis=1)
    current = spread[window - 1:]

    values = np.zeros(len(current))
    valid = stds > EPSILON
    values[valid] = (current[valid] - means[valid]) / stds[valid]
    zscores[window - 1:] = values
    return zscores


def prepare_pair(
    primary_closes: Sequence[float],
    secondary_closes: Sequence[float],
    window: int = ROLLING_WINDOW
) -> PreparedPair:
    """
    Tail-align both legs, drop invalid bars and precompute z-scores.

    Bars where either leg is non-finite or non-positive are removed
    before any log or division.
    """
    primary, secondary = tail_align(primary_closes, secondary_closes)
    aligned = align_series(primary, secondary)

    correlation = pearson_correlation(
        calculate_returns(aligned.primary),
        calculate_returns(aligned.secondary),
    )
    if aligned.dropped_count:
        LOG.debug(f"Dropped {aligned.dropped_count} invalid bars before backtest")

    return PreparedPair(
        primary=aligned.primary,
        secondary=aligned.secondary,
        correlation=correlation,
        zscores=rolling_spread_zscores(aligned.primary, aligned.secondary, window),
    )


def calculate_combined_pnl(
    direction: TradeDirection,
    entry_primary: float,
    entry_secondary: float,
    exit_primary: float,
    exit_secondary: float
) -> float:
    """Average of the long and short legs' returns, in percent"""
    primary_move = (exit_primary - entry_primary) / entry_primary
    secondary_move = (exit_secondary - entry_secondary) / entry_secondary

    if direction == TradeDirection.LONG_PRIMARY:
        return (primary_move - secondary_move) / 2 * 100
    return (secondary_move - primary_move) / 2 * 100


def calculate_equity_curve(trades: Sequence[Trade]) -> Tuple[float, ...]:
    """Cumulative P&L starting at 0, one point per trade"""
    profits = [t.profit_percent for t in trades]
    return (0.0,) + tuple(float(v) for v in np.cumsum(profits))


def calculate_max_drawdown(equity_curve: Sequence[float]) -> float:
    """Largest peak-to-trough drop, with the running peak starting at 0"""
    if len(equity_curve) == 0:
        return 0.0
    curve = np.asarray(equity_curve, dtype=float)
    peaks = np.maximum.accumulate(np.maximum(curve, 0.0))
    return float(np.max(peaks - curve))


def calculate_summary(trades: Sequence[Trade]) -> BacktestSummary:
    """
    Summary statistics from a trade list.

    Profit factor is gross profit / gross loss, inf when there are no
    losses but some profit, 0 when there is nothing to divide.
    """
    if not trades:
        return BacktestSummary()

    profits = np.array([t.profit_percent for t in trades], dtype=float)
    durations = np.array([t.duration_bars for t in trades], dtype=float)

    wins = profits[profits > 0]
    losses = profits[profits <= 0]

    gross_profit = float(wins.sum())
    gross_loss = abs(float(losses.sum()))
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    elif gross_profit > 0:
        profit_factor = float('inf')
    else:
        profit_factor = 0.0

    total_profit = float(profits.sum())

    return BacktestSummary(
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / len(trades) * 100,
        total_profit_percent=total_profit,
        average_profit_percent=total_profit / len(trades),
        max_drawdown_percent=calculate_max_drawdown(calculate_equity_curve(trades)),
        profit_factor=profit_factor,
        average_duration_bars=float(durations.mean()),
        largest_win=float(profits.max()),
        largest_loss=float(profits.min()),
    )


def create_empty_backtest_result(
    symbol: str,
    primary_symbol: str,
    config: BacktestConfig = DEFAULT_BACKTEST_CONFIG
) -> BacktestResult:
    """No-trade result for pairs failing the length or correlation gate"""
    return BacktestResult(symbol=symbol, primary_symbol=primary_symbol, config=config)


def simulate_trades(
    prepared: PreparedPair,
    config: BacktestConfig,
    window: int = ROLLING_WINDOW
) -> List[Trade]:
    """
    Run the entry/exit state machine over a prepared pair.

    Gates are not checked here; callers decide whether the pair qualifies.
    """
    primary = prepared.primary
    secondary = prepared.secondary
    zscores = prepared.zscores
    n = len(prepared)
    threshold = abs(config.entry_spread_threshold)

    trades: List[Trade] = []
    position = None

    for i in range(window - 1, n):
        spread_z = float(zscores[i])

        if position is None:
            if abs(spread_z) > threshold:
                direction = (TradeDirection.SHORT_PRIMARY if spread_z > 0
                             else TradeDirection.LONG_PRIMARY)
                position = {
                    'entry_index': i,
                    'entry_spread': spread_z,
                    'entry_prices': LegPrices(float(primary[i]), float(secondary[i])),
                    'direction': direction,
                }
            continue

        entry_prices = position['entry_prices']
        pnl = calculate_combined_pnl(
            position['direction'],
            entry_prices.primary,
            entry_prices.secondary,
            primary[i],
            secondary[i],
        )

        if pnl >= config.take_profit_percent:
            exit_reason = ExitReason.TAKE_PROFIT
        elif pnl <= -config.stop_loss_percent:
            exit_reason = ExitReason.STOP_LOSS
        elif i == n - 1:
            exit_reason = ExitReason.END_OF_DATA
        else:
            continue

        trades.append(_close_trade(position, prepared, i, pnl, exit_reason))
        position = None

    # Entered on the final bar: nothing left to evaluate
    if position is not None:
        trades.append(_close_trade(position, prepared, n - 1, 0.0, ExitReason.END_OF_DATA))

    return trades


def _close_trade(
    position: Mapping,
    prepared: PreparedPair,
    exit_index: int,
    pnl: float,
    exit_reason: ExitReason
) -> Trade:
    return Trade(
        entry_index=position['entry_index'],
        exit_index=exit_index,
        entry_spread=position['entry_spread'],
        exit_spread=float(prepared.zscores[exit_index]),
        entry_correlation=prepared.correlation,
        entry_prices=position['entry_prices'],
        exit_prices=LegPrices(float(prepared.primary[exit_index]),
                              float(prepared.secondary[exit_index])),
        direction=position['direction'],
        profit_percent=float(pnl),
        exit_reason=exit_reason,
        duration_bars=exit_index - position['entry_index'],
    )


class PairBacktestEngine:
    """
    Pair-spread backtest engine.

    Stateless between runs. Per-call configs are either a full
    BacktestConfig or a partial dict merged over the engine default.
    """

    def __init__(
        self,
        config: Optional[BacktestConfig] = None,
        rolling_window: int = ROLLING_WINDOW
    ):
        """
        Initialize engine.

        Args:
            config: Default backtest configuration
            rolling_window: Bars per rolling z-score
        """
        self.config = config or DEFAULT_BACKTEST_CONFIG
        self.config.validate()
        self.rolling_window = rolling_window
        self.min_bars = rolling_window + 10

        LOG.info(f"Pair backtest engine initialized: window={rolling_window}, "
                 f"config={self.config.get_config_hash()}")

    def resolve_config(
        self,
        config: Union[BacktestConfig, Mapping, None] = None
    ) -> BacktestConfig:
        """Merge per-call options over the engine default and validate once"""
        if config is None:
            resolved = self.config
        elif isinstance(config, BacktestConfig):
            resolved = config
        else:
            resolved = self.config.merged(**dict(config))
        resolved.validate()
        return resolved

    def prepare(
        self,
        primary_closes: Sequence[float],
        secondary_closes: Sequence[float]
    ) -> PreparedPair:
        return prepare_pair(primary_closes, secondary_closes, self.rolling_window)

    def run_prepared(
        self,
        prepared: PreparedPair,
        symbol: str,
        primary_symbol: str,
        config: BacktestConfig
    ) -> BacktestResult:
        """
        Backtest an already prepared pair with a validated config.

        Lets callers evaluating many configs on the same data (the
        walk-forward grid) skip repeated alignment and z-score work.
        """
        if len(prepared) < self.min_bars:
            LOG.debug(f"{primary_symbol}|{symbol}: {len(prepared)} aligned bars, "
                      f"need {self.min_bars}")
            return create_empty_backtest_result(symbol, primary_symbol, config)

        if prepared.correlation < config.min_correlation:
            LOG.debug(f"{primary_symbol}|{symbol}: correlation {prepared.correlation:.3f} "
                      f"below {config.min_correlation}")
            return create_empty_backtest_result(symbol, primary_symbol, config)

        trades = simulate_trades(prepared, config, self.rolling_window)

        return BacktestResult(
            symbol=symbol,
            primary_symbol=primary_symbol,
            config=config,
            trades=tuple(trades),
            summary=calculate_summary(trades),
            equity_curve=calculate_equity_curve(trades),
        )

    def run_backtest(
        self,
        primary_closes: Sequence[float],
        secondary_closes: Sequence[float],
        symbol: str,
        primary_symbol: str,
        config: Union[BacktestConfig, Mapping, None] = None
    ) -> BacktestResult:
        """
        Backtest one pair.

        Args:
            primary_closes: Primary close prices, chronological
            secondary_closes: Candidate close prices, chronological
            symbol: Candidate symbol
            primary_symbol: Primary symbol
            config: Full config, partial overrides, or None for the default

        Returns:
            BacktestResult (no trades when a gate fails)
        """
        resolved = self.resolve_config(config)
        result = self.run_prepared(
            self.prepare(primary_closes, secondary_closes), symbol, primary_symbol, resolved
        )
        LOG.debug(f"{primary_symbol}|{symbol}: {result.summary.total_trades} trades, "
                  f"profit={result.summary.total_profit_percent:.3f}%")
        return result

    def run_backtest_all_pairs(
        self,
        primary_closes: Sequence[float],
        pairs: Sequence[Tuple[str, Sequence[float]]],
        primary_symbol: str,
        config: Union[BacktestConfig, Mapping, None] = None
    ) -> List[BacktestResult]:
        """
        Backtest every candidate against one primary, preserving input order.

        Args:
            primary_closes: Primary close prices
            pairs: (symbol, closes) per candidate
            primary_symbol: Primary symbol
            config: Shared config or overrides

        Returns:
            One BacktestResult per candidate
        """
        resolved = self.resolve_config(config)
        results = [
            self.run_prepared(self.prepare(primary_closes, closes), symbol, primary_symbol, resolved)
            for symbol, closes in pairs
        ]
        LOG.info(f"Backtested {len(results)} pairs against {primary_symbol}: "
                 f"{sum(r.summary.total_trades for r in results)} trades")
        return results

