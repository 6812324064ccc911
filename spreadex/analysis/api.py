"""
Pair Analysis REST API

Provides HTTP endpoints for pair analysis, multi-timeframe confluence and
health monitoring.
"""

from fastapi import FastAPI, HTTPException, Path as PathParam
from pydantic import BaseModel, Field
from typing import List, Optional, Dict
import math
import logging

from spreadex.analysis.config import AnalysisConfig
from spreadex.analysis.engine import PairAnalysisEngine
from spreadex.analysis.health_monitor import AnalysisHealthMonitor
from spreadex.analysis.multi_timeframe import MultiTimeframeAnalyzer
from spreadex.analysis.schemas import json_safe

LOG = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Spreadex Pair Analysis API",
    description="REST API for pair spread analysis and multi-timeframe confluence",
    version="1.0.0"
)

# Global instances
config = AnalysisConfig()
engine = PairAnalysisEngine(config)
mtf_analyzer = MultiTimeframeAnalyzer(engine)
health_monitor = AnalysisHealthMonitor()

# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class AnalyzeRequest(BaseModel):
    """Request to analyze one pair"""
    symbol: str = Field(..., description="Candidate symbol")
    primary_symbol: str = Field(default="primary", description="Primary symbol")
    primary_closes: List[Optional[float]] = Field(..., description="Primary close prices, oldest first")
    secondary_closes: List[Optional[float]] = Field(..., description="Candidate close prices, oldest first")
    options: Optional[Dict] = Field(None, description="Partial AnalysisConfig overrides")

    class Config:
        json_schema_extra = {
            "example": {
                "symbol": "ETHUSDT",
                "primary_symbol": "BTCUSDT",
                "primary_closes": [64000.0, 64120.5, 63980.2, 64210.0],
                "secondary_closes": [3100.0, 3106.2, 3098.4, 3111.9],
                "options": {"volatility_spread": {"enabled": False}}
            }
        }


class CandidateSeries(BaseModel):
    """Close prices for one batch candidate"""
    symbol: str = Field(..., description="Candidate symbol")
    closes: List[Optional[float]] = Field(..., description="Close prices, oldest first")


class BatchAnalyzeRequest(BaseModel):
    """Request to analyze many candidates against one primary"""
    primary_symbol: str = Field(..., description="Primary symbol")
    primary_closes: List[Optional[float]] = Field(..., description="Primary close prices")
    candidates: List[CandidateSeries] = Field(..., description="Candidates to analyze")
    options: Optional[Dict] = Field(None, description="Partial AnalysisConfig overrides")


class ConfluenceRequest(BaseModel):
    """Request for multi-timeframe confluence ranking"""
    primary_symbol: str = Field(..., description="Primary symbol")
    symbols: List[str] = Field(..., description="Candidate symbols")
    data: Dict[str, Dict[str, List[Optional[float]]]] = Field(
        ..., description="symbol -> interval -> closes (must include the primary)"
    )
    intervals: Optional[List[str]] = Field(None, description="Intervals to analyze")

    class Config:
        json_schema_extra = {
            "example": {
                "primary_symbol": "BTCUSDT",
                "symbols": ["ETHUSDT"],
                "data": {
                    "BTCUSDT": {"5m": [64000.0, 64120.5], "15m": [63950.0, 64100.0]},
                    "ETHUSDT": {"5m": [3100.0, 3106.2], "15m": [3098.0, 3104.5]}
                },
                "intervals": ["5m", "15m"]
            }
        }


class HealthResponse(BaseModel):
    """Health status response"""
    status: str
    uptime_seconds: float
    total_analyses: int
    tradable_results: int
    gated_results: int
    tradable_rate: float
    errors: int
    error_rate: float
    avg_processing_time_ms: float
    pairs_tracked: int
    persistently_gated_pairs: int


class ConfigResponse(BaseModel):
    """Configuration response"""
    config_hash: str
    config_version: str
    mean_reversion: Dict
    correlation_velocity: Dict
    volatility_spread: Dict
    reversion: Dict


def _to_floats(values: List[Optional[float]]) -> List[float]:
    """JSON nulls become NaN so alignment drops them"""
    return [math.nan if v is None else float(v) for v in values]


def _engine_for(options: Optional[Dict]) -> PairAnalysisEngine:
    """Shared engine, or a per-request engine for option overrides"""
    if not options:
        return engine
    try:
        request_config = AnalysisConfig.from_dict(options)
    except TypeError as e:
        raise ValueError(f"Unrecognized analysis option: {e}") from e
    return PairAnalysisEngine(request_config)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Spreadex Pair Analysis API",
        "version": "1.0.0",
        "status": "online",
        "endpoints": {
            "analyze": "/analyze",
            "analyze_batch": "/analyze/batch",
            "confluence": "/confluence",
            "health": "/health",
            "health_symbol": "/health/{symbol}",
            "config": "/config",
            "reset_health": "/reset-health"
        }
    }


@app.post("/analyze")
def analyze_pair(request: AnalyzeRequest):
    """
    Analyze one (primary, candidate) pair.

    Args:
        request: Close prices for both legs plus optional config overrides

    Returns:
        PairAnalysisResult as a JSON object
    """
    pair_key = f"{request.primary_symbol}|{request.symbol}"
    start_time = health_monitor.record_analysis_start(pair_key)

    try:
        result = _engine_for(request.options).analyze_pair(
            _to_floats(request.primary_closes),
            _to_floats(request.secondary_closes),
            request.symbol,
            request.primary_symbol,
        )
    except ValueError as e:
        LOG.error(f"Invalid analysis request for {pair_key}: {e}", exc_info=True)
        health_monitor.record_analysis_error(pair_key, start_time, str(e))
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        LOG.error(f"Analysis failed for {pair_key}: {e}", exc_info=True)
        health_monitor.record_analysis_error(pair_key, start_time, str(e))
        raise HTTPException(status_code=500, detail=str(e))

    health_monitor.record_analysis(start_time, result)
    return json_safe(result.to_dict())


@app.post("/analyze/batch")
def analyze_batch(request: BatchAnalyzeRequest):
    """
    Analyze every candidate against one primary.

    Returns:
        Results sorted by opportunity score, best first
    """
    try:
        batch_engine = _engine_for(request.options)
    except ValueError as e:
        LOG.error(f"Invalid batch options: {e}", exc_info=True)
        raise HTTPException(status_code=422, detail=str(e))

    primary_closes = _to_floats(request.primary_closes)
    results = []

    for candidate in request.candidates:
        pair_key = f"{request.primary_symbol}|{candidate.symbol}"
        start_time = health_monitor.record_analysis_start(pair_key)
        try:
            result = batch_engine.analyze_pair(
                primary_closes,
                _to_floats(candidate.closes),
                candidate.symbol,
                request.primary_symbol,
            )
        except Exception as e:
            LOG.error(f"Batch analysis failed for {pair_key}: {e}", exc_info=True)
            health_monitor.record_analysis_error(pair_key, start_time, str(e))
            raise HTTPException(status_code=500, detail=str(e))

        health_monitor.record_analysis(start_time, result)
        results.append(result)

    results.sort(key=lambda r: r.opportunity_score, reverse=True)

    return {
        "primary_symbol": request.primary_symbol,
        "count": len(results),
        "tradable": sum(1 for r in results if r.stationarity.is_tradable),
        "results": [json_safe(r.to_dict()) for r in results]
    }


@app.post("/confluence")
def analyze_confluence(request: ConfluenceRequest):
    """
    Rank candidates by multi-timeframe confluence.

    Returns:
        ConfluenceResults sorted by confluence score, best first
    """
    symbol_interval_data = {
        symbol: {interval: _to_floats(closes) for interval, closes in intervals.items()}
        for symbol, intervals in request.data.items()
    }

    try:
        results = mtf_analyzer.analyze_confluence_for_pairs(
            request.symbols,
            symbol_interval_data,
            request.primary_symbol,
            request.intervals,
        )
    except KeyError as e:
        LOG.error(f"Confluence request missing data: {e}", exc_info=True)
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        LOG.error(f"Confluence analysis failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "primary_symbol": request.primary_symbol,
        "intervals": request.intervals or mtf_analyzer.intervals,
        "count": len(results),
        "results": [json_safe(r.to_dict()) for r in results]
    }


@app.get("/health", response_model=HealthResponse)
async def get_health():
    """
    Get overall health status.

    Returns:
        Health metrics and status
    """
    health_status = health_monitor.get_health_status()
    metrics = health_status['global_metrics']

    return HealthResponse(
        status=health_status['status'],
        uptime_seconds=health_status['uptime_seconds'],
        total_analyses=metrics['total_analyses'],
        tradable_results=metrics['tradable_results'],
        gated_results=metrics['gated_results'],
        tradable_rate=metrics['tradable_rate'],
        errors=metrics['errors'],
        error_rate=health_status['error_rate'],
        avg_processing_time_ms=metrics['avg_processing_time_ms'],
        pairs_tracked=health_status['pairs_tracked'],
        persistently_gated_pairs=health_status['persistently_gated_pairs']
    )


@app.get("/health/{symbol}")
async def get_symbol_health(
    symbol: str = PathParam(..., description="Symbol on either leg of a pair")
):
    """
    Get health status for every pair involving a symbol.

    Args:
        symbol: Symbol to look up

    Returns:
        Pair health keyed by "PRIMARY|SYMBOL"
    """
    pairs = health_monitor.get_symbol_health(symbol)

    if not pairs:
        raise HTTPException(
            status_code=404,
            detail=f"No health data found for {symbol}"
        )

    return {
        "symbol": symbol,
        "pairs": pairs
    }


@app.get("/recent")
async def get_recent_analyses(limit: int = 20):
    """Recent analysis history"""
    analyses = health_monitor.get_recent_analyses(limit)
    return {
        "analyses": analyses,
        "count": len(analyses)
    }


@app.get("/config", response_model=ConfigResponse)
async def get_config():
    """
    Get current analysis configuration.

    Returns:
        Configuration settings
    """
    config_dict = config.to_dict()

    return ConfigResponse(
        config_hash=config.get_config_hash(),
        config_version=config.config_version,
        mean_reversion=config_dict['mean_reversion'],
        correlation_velocity=config_dict['correlation_velocity'],
        volatility_spread=config_dict['volatility_spread'],
        reversion=config_dict['reversion']
    )


@app.post("/reset-health")
async def reset_health():
    """
    Reset health monitoring metrics (admin only).

    Returns:
        Confirmation message
    """
    health_monitor.reset_metrics()
    return {
        "success": True,
        "message": "Health monitoring metrics reset"
    }


# ============================================================================
# STARTUP/SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Startup tasks"""
    LOG.info("Pair Analysis API starting up...")
    LOG.info(f"Config hash: {config.get_config_hash()}")
    LOG.info(f"Config version: {config.config_version}")


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown tasks"""
    LOG.info("Pair Analysis API shutting down...")

    # Export final health report
    try:
        health_monitor.export_health_report("analysis_health_report_final.json")
        LOG.info("Final health report exported")
    except OSError as e:
        LOG.error(f"Failed to export final health report: {e}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8010, log_level="info")
