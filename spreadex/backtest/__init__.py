"""
Backtest Engine

Bar-by-bar strategy simulation over historical closes and walk-forward
parameter search.

Core Responsibilities:
    - Pair-spread backtest (rolling z-score entry, combined P&L exits)
    - Momentum/RSI scanner backtest (RSI crossover entry, cooldown)
    - Tagged strategy dispatch between the two modes
    - Walk-forward optimization over a fixed parameter grid

Flow:
    Close prices → PairBacktestEngine → BacktestResult → WalkForwardOptimizer → OptimizedParams
"""

from spreadex.backtest.config import (
    BacktestConfig,
    MomentumBacktestConfig,
    WalkForwardConfig,
    DEFAULT_BACKTEST_CONFIG,
    DEFAULT_MOMENTUM_BACKTEST_CONFIG,
)
from spreadex.backtest.engine import (
    PairBacktestEngine,
    ROLLING_WINDOW,
    calculate_summary,
    calculate_equity_curve,
)
from spreadex.backtest.rsi import calculate_rsi, detect_rsi_crossover
from spreadex.backtest.scanner import CandleSource, run_momentum_backtest, run_scanner_backtest
from spreadex.backtest.schemas import (
    BacktestResult,
    BacktestSummary,
    Candle,
    ExitReason,
    OptimizedParams,
    ScannerBacktestResult,
    StrategyMode,
    Trade,
    TradeDirection,
)
from spreadex.backtest.strategy import MomentumRsiStrategy, PairSpreadStrategy, run_strategy
from spreadex.backtest.walk_forward import (
    PARAMETER_GRID,
    WalkForwardOptimizer,
    build_price_data,
    optimize_parameters,
)

__all__ = [
    'BacktestConfig',
    'MomentumBacktestConfig',
    'WalkForwardConfig',
    'DEFAULT_BACKTEST_CONFIG',
    'DEFAULT_MOMENTUM_BACKTEST_CONFIG',
    'PairBacktestEngine',
    'ROLLING_WINDOW',
    'calculate_summary',
    'calculate_equity_curve',
    'calculate_rsi',
    'detect_rsi_crossover',
    'CandleSource',
    'run_momentum_backtest',
    'run_scanner_backtest',
    'BacktestResult',
    'BacktestSummary',
    'Candle',
    'ExitReason',
    'OptimizedParams',
    'ScannerBacktestResult',
    'StrategyMode',
    'Trade',
    'TradeDirection',
    'MomentumRsiStrategy',
    'PairSpreadStrategy',
    'run_strategy',
    'PARAMETER_GRID',
    'WalkForwardOptimizer',
    'build_price_data',
    'optimize_parameters',
]
