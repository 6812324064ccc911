"""
Walk-Forward Optimization

Rolling train/test parameter search for the pair-spread strategy:
1. Each window trains every grid config on `train_window` bars
2. The best training config runs unchanged on the next `test_window` bars
3. Out-of-sample scores are aggregated per config, later windows weighted
   higher (1 + 0.1 * window_index)
4. The best average score wins, ties broken by total test profit

Confidence compares the walk-forward result with the default config run
on the same test slices.
"""

from itertools import product
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import math

import numpy as np
import pandas as pd

from .config import BacktestConfig, DEFAULT_BACKTEST_CONFIG, WalkForwardConfig
from .engine import PairBacktestEngine, PreparedPair
from .schemas import (
    BacktestSummary,
    OptimizationConfidence,
    OptimizedParams,
    PricePoint,
    WindowResult,
)

LOG = logging.getLogger(__name__)

PARAMETER_GRID: Dict[str, List[float]] = {
    'entry_spread_threshold': [1.5, 2.0, 2.5, 3.0, 3.5],
    'min_correlation': [0.55, 0.65, 0.75, 0.85],
    'take_profit_percent': [0.3, 0.5, 0.8, 1.2],
    'stop_loss_percent': [0.3, 0.5, 0.8, 1.2],
}

# Window sizes used when the requested size is below min_window_bars
DEFAULT_TRAIN_WINDOW = 500
FALLBACK_TEST_WINDOW = 120

NO_TRADE_SCORE = -300.0
PROFIT_FACTOR_CAP = 4.0
MIN_TRADES = 3


def build_config_grid(grid: Optional[Dict[str, List[float]]] = None) -> List[BacktestConfig]:
    """Cartesian product of the grid, entry threshold varying slowest"""
    grid = grid or PARAMETER_GRID
    names = list(PARAMETER_GRID)
    return [
        BacktestConfig(**dict(zip(names, values)))
        for values in product(*(grid[name] for name in names))
    ]


def config_key(config: BacktestConfig) -> str:
    """Aggregation key: every threshold to 2 decimals"""
    return "|".join(
        f"{value:.2f}" for value in (
            config.entry_spread_threshold,
            config.min_correlation,
            config.take_profit_percent,
            config.stop_loss_percent,
        )
    )


def normalize_window_size(value: float, fallback: int, min_window_bars: int = 120) -> int:
    """Floor the size; anything below min_window_bars becomes the fallback"""
    normalized = int(math.floor(value))
    return normalized if normalized >= min_window_bars else fallback


def score_backtest(summary: BacktestSummary) -> float:
    """
    Training/test score of a backtest summary.

    profit * 2.2 + win rate * 0.35 + min(PF, 4) * 6 - drawdown * 1.8,
    minus 5 per trade short of 3; -300 when nothing traded.
    """
    if summary.total_trades == 0:
        return NO_TRADE_SCORE

    capped_profit_factor = min(summary.profit_factor, PROFIT_FACTOR_CAP)
    low_trade_penalty = max(0, MIN_TRADES - summary.total_trades) * 5

    return (
        summary.total_profit_percent * 2.2
        + summary.win_rate * 0.35
        + capped_profit_factor * 6
        - summary.max_drawdown_percent * 1.8
        - low_trade_penalty
    )


def select_confidence(
    windows_evaluated: int,
    selection_count: int,
    improvement_percent: float
) -> OptimizationConfidence:
    selection_ratio = selection_count / windows_evaluated if windows_evaluated > 0 else 0.0

    if windows_evaluated >= 6 and selection_ratio >= 0.5 and improvement_percent > 0:
        return OptimizationConfidence.HIGH
    if windows_evaluated >= 3 and improvement_percent > -1:
        return OptimizationConfidence.MEDIUM
    return OptimizationConfidence.LOW


def build_price_data(
    primary_closes: Sequence[float],
    secondary_closes: Sequence[float]
) -> List[PricePoint]:
    """Pair the last min(len) closes of each leg bar by bar"""
    n = min(len(primary_closes), len(secondary_closes))
    if n == 0:
        return []
    return [
        PricePoint(primary_close=float(p), secondary_close=float(s))
        for p, s in zip(list(primary_closes)[-n:], list(secondary_closes)[-n:])
    ]


def create_fallback(train_window: int, test_window: int) -> OptimizedParams:
    """Default config with low confidence when no window fits the data"""
    return OptimizedParams(
        config=DEFAULT_BACKTEST_CONFIG,
        confidence=OptimizationConfidence.LOW,
        windows_evaluated=0,
        train_window=train_window,
        test_window=test_window,
    )


class WalkForwardOptimizer:
    """
    Walk-forward optimizer over a fixed parameter grid.

    Args:
        config: Window sizes (defaults if None)
        engine: Pair backtest engine (a default engine if None)
        grid: Parameter grid (PARAMETER_GRID if None)
    """

    def __init__(
        self,
        config: Optional[WalkForwardConfig] = None,
        engine: Optional[PairBacktestEngine] = None,
        grid: Optional[Dict[str, List[float]]] = None
    ):
        self.config = config or WalkForwardConfig()
        self.config.validate()
        self.engine = engine or PairBacktestEngine()
        self.config_grid = build_config_grid(grid)

        LOG.info(f"Walk-forward optimizer initialized: train={self.config.train_window}, "
                 f"test={self.config.test_window}, grid={len(self.config_grid)} configs")

    def _normalized_windows(self) -> Tuple[int, int]:
        return (
            normalize_window_size(self.config.train_window, DEFAULT_TRAIN_WINDOW,
                                  self.config.min_window_bars),
            normalize_window_size(self.config.test_window, FALLBACK_TEST_WINDOW,
                                  self.config.min_window_bars),
        )

    def _prepare(self, primary: np.ndarray, secondary: np.ndarray) -> PreparedPair:
        return self.engine.prepare(primary, secondary)

    def _evaluate_window(
        self,
        primary: np.ndarray,
        secondary: np.ndarray,
        start: int,
        train_window: int,
        test_window: int
    ) -> Tuple[BacktestConfig, float, float, BacktestSummary, float]:
        """Train on the grid, then test the winner and the default config"""
        train_end = start + train_window
        test_end = train_end + test_window

        train = self._prepare(primary[start:train_end], secondary[start:train_end])
        test = self._prepare(primary[train_end:test_end], secondary[train_end:test_end])

        best_config = DEFAULT_BACKTEST_CONFIG
        best_score = -math.inf
        for candidate in self.config_grid:
            result = self.engine.run_prepared(train, 'TRAIN', 'PRIMARY', candidate)
            candidate_score = score_backtest(result.summary)
            if candidate_score > best_score:
                best_score = candidate_score
                best_config = candidate

        test_result = self.engine.run_prepared(test, 'TEST', 'PRIMARY', best_config)
        baseline_result = self.engine.run_prepared(test, 'TEST', 'PRIMARY', DEFAULT_BACKTEST_CONFIG)

        return (
            best_config,
            best_score,
            score_backtest(test_result.summary),
            test_result.summary,
            baseline_result.summary.total_profit_percent,
        )

    def optimize(self, price_data: Sequence[PricePoint]) -> OptimizedParams:
        """
        Run the walk-forward search.

        Args:
            price_data: Tail-aligned bars, oldest first (see build_price_data)

        Returns:
            OptimizedParams; the default-config fallback when the data
            cannot fill one train + test window
        """
        train_window, test_window = self._normalized_windows()
        min_required = train_window + test_window

        if len(price_data) < min_required:
            LOG.debug(f"Walk-forward fallback: {len(price_data)} bars, need {min_required}")
            return create_fallback(train_window, test_window)

        primary = np.array([p.primary_close for p in price_data], dtype=float)
        secondary = np.array([p.secondary_close for p in price_data], dtype=float)

        window_results: List[WindowResult] = []
        rows = []

        for window_index, start in enumerate(
            range(0, len(price_data) - min_required + 1, test_window)
        ):
            selected, train_score, test_score, test_summary, baseline_profit = \
                self._evaluate_window(primary, secondary, start, train_window, test_window)

            window_results.append(WindowResult(
                window_index=window_index,
                train_start=start,
                train_end=start + train_window - 1,
                test_start=start + train_window,
                test_end=start + min_required - 1,
                selected_config=selected,
                train_score=train_score,
                test_score=test_score,
                test_summary=test_summary,
                baseline_profit_percent=baseline_profit,
            ))

            weight = 1 + window_index * 0.1
            rows.append({
                'key': config_key(selected),
                'window_index': window_index,
                'weight': weight,
                'weighted_score': test_score * weight,
                'profit': test_summary.total_profit_percent,
                'trades': test_summary.total_trades,
                'wins': test_summary.winning_trades,
                'baseline_profit': baseline_profit,
            })

        windows = pd.DataFrame(rows)
        aggregates = windows.groupby('key', sort=False).agg(
            weighted_score=('weighted_score', 'sum'),
            total_weight=('weight', 'sum'),
            total_profit=('profit', 'sum'),
            selection_count=('window_index', 'count'),
            first_window=('window_index', 'min'),
        )
        aggregates['average_score'] = aggregates['weighted_score'] / aggregates['total_weight']

        # Highest average first, then highest profit, then first selected
        ranked = aggregates.sort_values(
            ['average_score', 'total_profit', 'first_window'],
            ascending=[False, False, True],
        )
        best = ranked.iloc[0]
        best_config = window_results[int(best['first_window'])].selected_config

        total_trades = int(windows['trades'].sum())
        total_wins = int(windows['wins'].sum())
        walk_forward_profit = float(windows['profit'].sum())
        baseline_profit = float(windows['baseline_profit'].sum())
        improvement = walk_forward_profit - baseline_profit
        selection_count = int(best['selection_count'])

        confidence = select_confidence(len(window_results), selection_count, improvement)

        LOG.info(f"Walk-forward complete: {len(window_results)} windows, "
                 f"best={ranked.index[0]} ({selection_count} selections), "
                 f"improvement={improvement:.2f}%, confidence={confidence.value}")

        return OptimizedParams(
            config=best_config,
            confidence=confidence,
            windows_evaluated=len(window_results),
            train_window=train_window,
            test_window=test_window,
            forward_score=float(best['average_score']),
            walk_forward_profit_percent=walk_forward_profit,
            walk_forward_win_rate=total_wins / total_trades * 100 if total_trades > 0 else 0.0,
            walk_forward_trades=total_trades,
            baseline_profit_percent=baseline_profit,
            improvement_percent=improvement,
            window_results=tuple(window_results),
            selection_count=selection_count,
        )


def optimize_parameters(
    price_data: Sequence[PricePoint],
    train_window: int = 500,
    test_window: int = 100,
    engine: Optional[PairBacktestEngine] = None
) -> OptimizedParams:
    """Walk-forward search with the given window sizes"""
    optimizer = WalkForwardOptimizer(
        WalkForwardConfig(train_window=train_window, test_window=test_window),
        engine=engine,
    )
    return optimizer.optimize(price_data)
