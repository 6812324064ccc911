"""
spreadex - Pair-Trading Analytics and Backtesting Engine

Deterministic, replayable statistics over historical close prices:
    - Statistical pair analysis (correlation, spread, stationarity gate)
    - Signal enrichment (correlation regime, volatility-adjusted spread, confluence)
    - Multi-timeframe confluence scoring
    - Bar-by-bar backtests (pair spread and momentum/RSI) and walk-forward optimization

Flow:
    Close prices → analysis → PairAnalysisResult → (multi-timeframe) → ConfluenceResult
    Close prices → backtest → BacktestResult ← walk-forward optimizer
"""

__version__ = "1.0.0"
