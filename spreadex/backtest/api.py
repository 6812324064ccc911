"""
Backtest REST API

Provides HTTP endpoints for pair-spread and momentum/RSI backtests and
walk-forward parameter optimization.
"""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Union
import math
import logging

from spreadex.analysis.schemas import json_safe
from spreadex.backtest.config import (
    BacktestConfig,
    DEFAULT_BACKTEST_CONFIG,
    DEFAULT_MOMENTUM_BACKTEST_CONFIG,
    MomentumBacktestConfig,
    WalkForwardConfig,
)
from spreadex.backtest.engine import PairBacktestEngine, ROLLING_WINDOW
from spreadex.backtest.strategy import MomentumRsiStrategy, PairSpreadStrategy, run_strategy
from spreadex.backtest.walk_forward import (
    PARAMETER_GRID,
    WalkForwardOptimizer,
    build_price_data,
)

LOG = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Spreadex Backtest API",
    description="REST API for pair-spread and momentum/RSI backtests and walk-forward optimization",
    version="1.0.0"
)

# Global instances
engine = PairBacktestEngine()

# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class PairSpreadRequest(BaseModel):
    """Pair-spread backtest of one candidate"""
    mode: Literal["pair_spread"] = "pair_spread"
    symbol: str = Field(..., description="Candidate symbol")
    primary_symbol: str = Field(..., description="Primary symbol")
    primary_closes: List[Optional[float]] = Field(..., description="Primary close prices, oldest first")
    secondary_closes: List[Optional[float]] = Field(..., description="Candidate close prices, oldest first")
    config: Optional[Dict[str, float]] = Field(None, description="Partial BacktestConfig overrides")

    class Config:
        json_schema_extra = {
            "example": {
                "mode": "pair_spread",
                "symbol": "ETHUSDT",
                "primary_symbol": "BTCUSDT",
                "primary_closes": [64000.0, 64120.5, 63980.2],
                "secondary_closes": [3100.0, 3106.2, 3098.4],
                "config": {"entry_spread_threshold": 2.5}
            }
        }


class MomentumRsiRequest(BaseModel):
    """Momentum/RSI backtest of one instrument"""
    mode: Literal["momentum_rsi"] = "momentum_rsi"
    symbol: str = Field(..., description="Instrument symbol")
    candles: List[Dict[str, Any]] = Field(..., description="Kline records (numeric or numeric-string fields)")
    config: Optional[Dict[str, float]] = Field(None, description="Partial MomentumBacktestConfig overrides")


BacktestRequest = Union[PairSpreadRequest, MomentumRsiRequest]


class StrategyEnvelope(BaseModel):
    """Tagged strategy request"""
    strategy: BacktestRequest = Field(..., discriminator='mode')


class BatchBacktestRequest(BaseModel):
    """Pair-spread backtests of many candidates against one primary"""
    primary_symbol: str = Field(..., description="Primary symbol")
    primary_closes: List[Optional[float]] = Field(..., description="Primary close prices")
    candidates: Dict[str, List[Optional[float]]] = Field(..., description="symbol -> close prices")
    config: Optional[Dict[str, float]] = Field(None, description="Partial BacktestConfig overrides")


class OptimizeRequest(BaseModel):
    """Walk-forward optimization of one pair"""
    primary_closes: List[Optional[float]] = Field(..., description="Primary close prices")
    secondary_closes: List[Optional[float]] = Field(..., description="Candidate close prices")
    train_window: int = Field(default=500, description="Training bars per window")
    test_window: int = Field(default=100, description="Test bars per window (minimum 120)")


def _to_floats(values: List[Optional[float]]) -> List[float]:
    """JSON nulls become NaN so alignment drops them"""
    return [math.nan if v is None else float(v) for v in values]


def _to_strategy(request: BacktestRequest):
    """Validated request model → strategy variant"""
    if isinstance(request, PairSpreadRequest):
        return PairSpreadStrategy(
            primary_closes=tuple(_to_floats(request.primary_closes)),
            secondary_closes=tuple(_to_floats(request.secondary_closes)),
            symbol=request.symbol,
            primary_symbol=request.primary_symbol,
            config=DEFAULT_BACKTEST_CONFIG.merged(**(request.config or {})),
        )
    return MomentumRsiStrategy(
        symbol=request.symbol,
        candles=tuple(request.candles),
        config=_momentum_config(request.config),
    )


def _momentum_config(overrides: Optional[Dict[str, float]]) -> MomentumBacktestConfig:
    config = DEFAULT_MOMENTUM_BACKTEST_CONFIG.merged(**(overrides or {}))
    # Periods and bar counts arrive as JSON numbers
    return config.merged(
        rsi_period=int(config.rsi_period),
        max_hold_bars=int(config.max_hold_bars),
        cooldown_bars=int(config.cooldown_bars),
    )


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Spreadex Backtest API",
        "version": "1.0.0",
        "status": "online",
        "endpoints": {
            "backtest": "/backtest",
            "backtest_batch": "/backtest/batch",
            "optimize": "/optimize",
            "config": "/config"
        }
    }


@app.post("/backtest")
def backtest(request: StrategyEnvelope):
    """
    Run one backtest, dispatched on strategy.mode.

    Args:
        request: pair_spread or momentum_rsi strategy request

    Returns:
        BacktestResult or ScannerBacktestResult as a JSON object
    """
    try:
        result = run_strategy(_to_strategy(request.strategy), engine)
    except ValueError as e:
        LOG.error(f"Invalid backtest request: {e}", exc_info=True)
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        LOG.error(f"Backtest failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return json_safe(result.to_dict())


@app.post("/backtest/batch")
def backtest_batch(request: BatchBacktestRequest):
    """
    Pair-spread backtests of every candidate against one primary.

    Returns:
        Results in request order plus the summed profit
    """
    try:
        results = engine.run_backtest_all_pairs(
            _to_floats(request.primary_closes),
            [(symbol, _to_floats(closes)) for symbol, closes in request.candidates.items()],
            request.primary_symbol,
            request.config,
        )
    except ValueError as e:
        LOG.error(f"Invalid batch backtest request: {e}", exc_info=True)
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        LOG.error(f"Batch backtest failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "primary_symbol": request.primary_symbol,
        "count": len(results),
        "total_trades": sum(r.summary.total_trades for r in results),
        "total_profit_percent": sum(r.summary.total_profit_percent for r in results),
        "results": [json_safe(r.to_dict()) for r in results]
    }


@app.post("/optimize")
def optimize(request: OptimizeRequest):
    """
    Walk-forward optimization of the pair-spread strategy.

    Returns:
        OptimizedParams as a JSON object
    """
    try:
        optimizer = WalkForwardOptimizer(
            WalkForwardConfig(train_window=request.train_window, test_window=request.test_window),
            engine=engine,
        )
        price_data = build_price_data(
            _to_floats(request.primary_closes),
            _to_floats(request.secondary_closes),
        )
        result = optimizer.optimize(price_data)
    except ValueError as e:
        LOG.error(f"Invalid optimization request: {e}", exc_info=True)
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        LOG.error(f"Optimization failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return json_safe(result.to_dict())


@app.get("/config")
async def get_config():
    """
    Get default strategy configurations and the optimization grid.

    Returns:
        Configuration settings
    """
    return {
        "rolling_window": ROLLING_WINDOW,
        "pair_spread": {
            "config_hash": DEFAULT_BACKTEST_CONFIG.get_config_hash(),
            **BacktestConfig().to_dict()
        },
        "momentum_rsi": {
            "config_hash": DEFAULT_MOMENTUM_BACKTEST_CONFIG.get_config_hash(),
            **MomentumBacktestConfig().to_dict()
        },
        "walk_forward": WalkForwardConfig().to_dict(),
        "parameter_grid": PARAMETER_GRID
    }


# ============================================================================
# STARTUP/SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Startup tasks"""
    LOG.info("Backtest API starting up...")
    LOG.info(f"Default config hash: {DEFAULT_BACKTEST_CONFIG.get_config_hash()}")


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown tasks"""
    LOG.info("Backtest API shutting down...")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8011, log_level="info")
