"""
Strategy Dispatch

Tagged strategy variants, one per backtest mode, each carrying its own
inputs and config. run_strategy() dispatches on the variant type.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Mapping, Optional, Sequence, Tuple, Union

from .config import (
    BacktestConfig,
    DEFAULT_BACKTEST_CONFIG,
    DEFAULT_MOMENTUM_BACKTEST_CONFIG,
    MomentumBacktestConfig,
)
from .engine import PairBacktestEngine
from .scanner import run_momentum_backtest
from .schemas import BacktestResult, Candle, ScannerBacktestResult, StrategyMode


@dataclass(frozen=True)
class PairSpreadStrategy:
    """Pair-spread backtest of one candidate against a primary"""
    primary_closes: Tuple[float, ...]
    secondary_closes: Tuple[float, ...]
    symbol: str
    primary_symbol: str
    config: BacktestConfig = DEFAULT_BACKTEST_CONFIG

    mode: ClassVar[StrategyMode] = StrategyMode.PAIR_SPREAD


@dataclass(frozen=True)
class MomentumRsiStrategy:
    """Momentum/RSI backtest of one instrument"""
    symbol: str
    candles: Tuple[Union[Candle, Mapping], ...] = field(default_factory=tuple)
    config: MomentumBacktestConfig = DEFAULT_MOMENTUM_BACKTEST_CONFIG

    mode: ClassVar[StrategyMode] = StrategyMode.MOMENTUM_RSI


Strategy = Union[PairSpreadStrategy, MomentumRsiStrategy]
StrategyResult = Union[BacktestResult, ScannerBacktestResult]


def run_strategy(
    strategy: Strategy,
    engine: Optional[PairBacktestEngine] = None
) -> StrategyResult:
    """
    Run whichever backtest the strategy variant describes.

    Args:
        strategy: PairSpreadStrategy or MomentumRsiStrategy
        engine: Pair backtest engine (a default engine if None)

    Returns:
        BacktestResult or ScannerBacktestResult; both expose .mode

    Raises:
        TypeError: for anything that is not a known strategy variant
    """
    if isinstance(strategy, PairSpreadStrategy):
        engine = engine or PairBacktestEngine()
        return engine.run_backtest(
            strategy.primary_closes,
            strategy.secondary_closes,
            strategy.symbol,
            strategy.primary_symbol,
            strategy.config,
        )
    if isinstance(strategy, MomentumRsiStrategy):
        return run_momentum_backtest(strategy.symbol, strategy.candles, strategy.config)
    raise TypeError(f"Unknown strategy variant: {type(strategy).__name__}")


def run_strategies(
    strategies: Sequence[Strategy],
    engine: Optional[PairBacktestEngine] = None
) -> list:
    """Run several strategies, sharing one pair engine"""
    engine = engine or PairBacktestEngine()
    return [run_strategy(s, engine) for s in strategies]
