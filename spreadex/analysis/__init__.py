"""
Pair Analysis Engine

Turns two close-price series into a scored, explainable pair analysis.
Only statistically validated mean-reverting pairs can score above zero.

Core Responsibilities:
    - Series alignment and statistics primitives
    - Stationarity gate (rolling-beta spread, ADF, cointegration, half-life)
    - Correlation velocity and regime classification
    - Volatility-adjusted spread and signal quality
    - Confluence rating and rule-based notes
    - Reversion probability (history model or fallback heuristic)
    - Multi-timeframe confluence

Flow:
    Close prices → PairAnalysisEngine → PairAnalysisResult → MultiTimeframeAnalyzer
"""

from spreadex.analysis.config import (
    AnalysisConfig,
    MeanReversionConfig,
    CorrelationVelocityConfig,
    VolatilitySpreadConfig,
    ReversionConfig,
)
from spreadex.analysis.engine import PairAnalysisEngine, calculate_base_opportunity
from spreadex.analysis.health_monitor import AnalysisHealthMonitor
from spreadex.analysis.multi_timeframe import MultiTimeframeAnalyzer, get_suggested_timeframes
from spreadex.analysis.reversion import (
    HistoryReversionScorer,
    ReversionModel,
    ReversionScorer,
    apply_probability_scoring,
    build_reversion_model,
)
from spreadex.analysis.schemas import (
    CorrelationRegime,
    SignalQuality,
    SpreadDirection,
    ConfidenceTier,
    PairAnalysisResult,
    StationarityInfo,
    HistoricalRecord,
    ConfluenceResult,
)
from spreadex.analysis.confluence import (
    calculate_confluence,
    filter_by_confluence,
    sort_by_confluence,
)

__all__ = [
    'AnalysisConfig',
    'MeanReversionConfig',
    'CorrelationVelocityConfig',
    'VolatilitySpreadConfig',
    'ReversionConfig',
    'PairAnalysisEngine',
    'calculate_base_opportunity',
    'AnalysisHealthMonitor',
    'MultiTimeframeAnalyzer',
    'get_suggested_timeframes',
    'HistoryReversionScorer',
    'ReversionModel',
    'ReversionScorer',
    'apply_probability_scoring',
    'build_reversion_model',
    'CorrelationRegime',
    'SignalQuality',
    'SpreadDirection',
    'ConfidenceTier',
    'PairAnalysisResult',
    'StationarityInfo',
    'HistoricalRecord',
    'ConfluenceResult',
    'calculate_confluence',
    'filter_by_confluence',
    'sort_by_confluence',
]
