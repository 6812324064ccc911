"""
Output Schemas for Pair Analysis

Defines immutable result records for the statistics primitives, the
stationarity gate, signal enrichment and the per-pair / multi-timeframe
rollups. Enrichment steps never mutate a record; they build a new one
with dataclasses.replace().
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple
import math

import numpy as np


class CorrelationRegime(str, Enum):
    """Direction of travel of a pair's correlation strength"""
    STRENGTHENING = "strengthening"
    RECOVERING = "recovering"
    WEAKENING = "weakening"
    BREAKING_DOWN = "breaking_down"
    STABLE_STRONG = "stable_strong"
    STABLE_WEAK = "stable_weak"
    STABLE = "stable"


class SignalQuality(str, Enum):
    """Volatility-adjusted spread signal quality"""
    PREMIUM = "premium"
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    NOISY = "noisy"
    INSUFFICIENT_DATA = "insufficient_data"


class SpreadDirection(str, Enum):
    """Expected spread reversion direction"""
    LONG_SPREAD = "long_spread"      # Spread low, expect revert up
    SHORT_SPREAD = "short_spread"    # Spread high, expect revert down
    NEUTRAL = "neutral"


class ReversionMethod(str, Enum):
    """Provenance of a reversion probability"""
    HISTORY = "history"
    FALLBACK = "fallback"


class ConfidenceTier(str, Enum):
    """Multi-timeframe confidence"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MIXED = "mixed"


def json_safe(value):
    """
    Recursively convert a to_dict() payload into strict-JSON values.

    Non-finite floats become None, enums their value, numpy scalars and
    arrays plain Python types.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, np.ndarray):
        return [json_safe(v) for v in value.tolist()]
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return value if math.isfinite(value) else None
    return value


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========================================
# STATISTICS PRIMITIVES
# ========================================

@dataclass(frozen=True)
class AlignedSeries:
    """Two equal-length price series with invalid bars removed"""
    primary: np.ndarray
    secondary: np.ndarray
    dropped_count: int = 0

    def __len__(self) -> int:
        return len(self.primary)


@dataclass(frozen=True)
class ZScoreResult:
    """Z-score of the latest value of a series"""
    zscore: float = 0.0
    mean: float = 0.0
    std: float = 0.0
    current: float = 0.0

    def to_dict(self) -> dict:
        return {
            'zscore': float(self.zscore),
            'mean': float(self.mean),
            'std': float(self.std),
            'current': float(self.current),
        }


@dataclass(frozen=True)
class RegressionResult:
    """Ordinary least squares fit of y on x"""
    slope: float = 0.0
    intercept: float = 0.0
    slope_std_err: float = math.inf


# ========================================
# MEAN REVERSION / COINTEGRATION
# ========================================

@dataclass(frozen=True)
class RollingBetaResult:
    """Per-bar hedge ratio and the resulting hedged spread"""
    spread: np.ndarray
    betas: np.ndarray
    current_beta: float = 1.0


@dataclass(frozen=True)
class AdfResult:
    """Dickey-Fuller style unit root test on a single series"""
    t_stat: float = 0.0
    critical_value: float = -2.86
    passed: bool = False
    sample_size: int = 0
    p_value: float = 1.0  # Approximate MacKinnon p-value, display only

    def to_dict(self) -> dict:
        return {
            't_stat': float(self.t_stat),
            'critical_value': float(self.critical_value),
            'passed': self.passed,
            'sample_size': self.sample_size,
            'p_value': float(self.p_value),
        }


@dataclass(frozen=True)
class CointegrationResult:
    """Engle-Granger style test: full-sample OLS then ADF on residuals"""
    beta: float = 0.0
    intercept: float = 0.0
    t_stat: float = 0.0
    critical_value: float = -2.86
    passed: bool = False
    sample_size: int = 0
    p_value: float = 1.0

    def to_dict(self) -> dict:
        return {
            'beta': float(self.beta),
            'intercept': float(self.intercept),
            't_stat': float(self.t_stat),
            'critical_value': float(self.critical_value),
            'passed': self.passed,
            'sample_size': self.sample_size,
            'p_value': float(self.p_value),
        }


@dataclass(frozen=True)
class MeanReversionAnalysis:
    """
    Stationarity gate verdict for one aligned pair.

    is_mean_reverting requires ADF, cointegration and half-life to pass.
    """
    spread: np.ndarray
    betas: np.ndarray
    current_beta: float
    adf: AdfResult
    cointegration: CointegrationResult
    half_life: float = math.inf
    half_life_passed: bool = False
    is_mean_reverting: bool = False


@dataclass(frozen=True)
class StationarityInfo:
    """Flattened stationarity gate carried by PairAnalysisResult"""
    adf_t_stat: float = 0.0
    adf_critical_value: float = -2.86
    adf_passed: bool = False
    adf_p_value: float = 1.0
    cointegration_t_stat: float = 0.0
    cointegration_critical_value: float = -2.86
    cointegration_passed: bool = False
    cointegration_p_value: float = 1.0
    half_life_bars: float = math.inf
    half_life_passed: bool = False
    is_tradable: bool = False

    @classmethod
    def from_analysis(cls, analysis: MeanReversionAnalysis) -> 'StationarityInfo':
        return cls(
            adf_t_stat=analysis.adf.t_stat,
            adf_critical_value=analysis.adf.critical_value,
            adf_passed=analysis.adf.passed,
            adf_p_value=analysis.adf.p_value,
            cointegration_t_stat=analysis.cointegration.t_stat,
            cointegration_critical_value=analysis.cointegration.critical_value,
            cointegration_passed=analysis.cointegration.passed,
            cointegration_p_value=analysis.cointegration.p_value,
            half_life_bars=analysis.half_life,
            half_life_passed=analysis.half_life_passed,
            is_tradable=analysis.is_mean_reverting,
        )

    def to_dict(self) -> dict:
        return {
            'adf_t_stat': float(self.adf_t_stat),
            'adf_critical_value': float(self.adf_critical_value),
            'adf_passed': self.adf_passed,
            'adf_p_value': float(self.adf_p_value),
            'cointegration_t_stat': float(self.cointegration_t_stat),
            'cointegration_critical_value': float(self.cointegration_critical_value),
            'cointegration_passed': self.cointegration_passed,
            'cointegration_p_value': float(self.cointegration_p_value),
            'half_life_bars': float(self.half_life_bars),
            'half_life_passed': self.half_life_passed,
            'is_tradable': self.is_tradable,
        }


# ========================================
# SIGNAL ENRICHMENT
# ========================================

@dataclass(frozen=True)
class CorrelationVelocityResult:
    """Rolling correlation dynamics"""
    current_correlation: float = 0.0
    previous_correlation: float = 0.0
    velocity: float = 0.0
    acceleration: float = 0.0
    regime: CorrelationRegime = CorrelationRegime.STABLE

    def to_dict(self) -> dict:
        return {
            'current_correlation': float(self.current_correlation),
            'previous_correlation': float(self.previous_correlation),
            'velocity': float(self.velocity),
            'acceleration': float(self.acceleration),
            'regime': self.regime.value,
        }


@dataclass(frozen=True)
class VolatilitySpreadResult:
    """Volatility-adjusted spread z-score and its quality"""
    raw_z_score: float = 0.0
    adjusted_z_score: float = 0.0
    combined_volatility: float = 0.0
    primary_volatility: float = 0.0
    secondary_volatility: float = 0.0
    signal_strength: float = 0.0  # 0-85
    signal_quality: SignalQuality = SignalQuality.INSUFFICIENT_DATA

    def to_dict(self) -> dict:
        return {
            'raw_z_score': float(self.raw_z_score),
            'adjusted_z_score': float(self.adjusted_z_score),
            'combined_volatility': float(self.combined_volatility),
            'primary_volatility': float(self.primary_volatility),
            'secondary_volatility': float(self.secondary_volatility),
            'signal_strength': float(self.signal_strength),
            'signal_quality': self.signal_quality.value,
        }


@dataclass(frozen=True)
class ConfluenceIndicator:
    """One indicator feeding the confluence rating"""
    name: str
    active: bool
    value: str

    def to_dict(self) -> dict:
        return {'name': self.name, 'active': self.active, 'value': self.value}


@dataclass(frozen=True)
class ConfluenceAnalysis:
    """0-3 agreement rating across z-score, regime and quality indicators"""
    rating: int = 0
    rating_label: str = "No Confluence"
    z_score_extreme: bool = False
    correlation_strengthening: bool = False
    signal_quality_strong: bool = False
    indicator_details: Tuple[ConfluenceIndicator, ...] = ()
    meets_threshold: bool = False
    direction: SpreadDirection = SpreadDirection.NEUTRAL

    def to_dict(self) -> dict:
        return {
            'rating': self.rating,
            'rating_label': self.rating_label,
            'indicators': {
                'z_score_extreme': self.z_score_extreme,
                'correlation_strengthening': self.correlation_strengthening,
                'signal_quality_strong': self.signal_quality_strong,
            },
            'indicator_details': [d.to_dict() for d in self.indicator_details],
            'meets_threshold': self.meets_threshold,
            'direction': self.direction.value,
        }


@dataclass(frozen=True)
class ReversionProbability:
    """Probability that the current divergence reverts within the lookahead"""
    probability: float = 0.0
    lookahead_bars: int = 12
    sample_size: int = 0
    wins: int = 0
    method: ReversionMethod = ReversionMethod.FALLBACK

    def to_dict(self) -> dict:
        return {
            'probability': float(self.probability),
            'lookahead_bars': self.lookahead_bars,
            'sample_size': self.sample_size,
            'wins': self.wins,
            'method': self.method.value,
        }


# ========================================
# PAIR ANALYSIS
# ========================================

@dataclass(frozen=True)
class PairAnalysisResult:
    """
    Central record for one (primary, candidate) pair at one point in time.

    opportunity_score is forced to 0 whenever stationarity.is_tradable is False.
    """

    # Metadata
    symbol: str
    primary_symbol: str
    timestamp: datetime = field(default_factory=_utc_now)

    # Core metrics
    correlation: float = 0.0
    spread_mean: float = 0.0
    spread_std: float = 0.0
    spread_z_score: float = 0.0
    ratio: float = 0.0
    aligned_bars: int = 0
    hedge_ratio_beta: float = 1.0

    # Stationarity gate and reversion estimate
    stationarity: StationarityInfo = field(default_factory=StationarityInfo)
    reversion_probability: ReversionProbability = field(default_factory=ReversionProbability)

    # Opportunity scoring
    opportunity_score: int = 0
    base_opportunity_score: int = 0
    spread_opportunity: float = 0.0
    method_average: float = 0.0

    # Enrichment
    volatility_spread: VolatilitySpreadResult = field(default_factory=VolatilitySpreadResult)
    correlation_velocity: CorrelationVelocityResult = field(default_factory=CorrelationVelocityResult)
    confluence: ConfluenceAnalysis = field(default_factory=ConfluenceAnalysis)

    notes: Tuple[str, ...] = ()

    @property
    def pair_key(self) -> str:
        return f"{self.primary_symbol}|{self.symbol}"

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'symbol': self.symbol,
            'primary_symbol': self.primary_symbol,
            'pair_key': self.pair_key,
            'timestamp': self.timestamp.isoformat(),
            'correlation': float(self.correlation),
            'spread_mean': float(self.spread_mean),
            'spread_std': float(self.spread_std),
            'spread_z_score': float(self.spread_z_score),
            'ratio': float(self.ratio),
            'aligned_bars': self.aligned_bars,
            'hedge_ratio_beta': float(self.hedge_ratio_beta),
            'stationarity': self.stationarity.to_dict(),
            'reversion_probability': self.reversion_probability.to_dict(),
            'opportunity_score': self.opportunity_score,
            'base_opportunity_score': self.base_opportunity_score,
            'spread_opportunity': float(self.spread_opportunity),
            'method_average': float(self.method_average),
            'volatility_spread': self.volatility_spread.to_dict(),
            'correlation_velocity': self.correlation_velocity.to_dict(),
            'confluence': self.confluence.to_dict(),
            'notes': list(self.notes),
        }


@dataclass(frozen=True)
class HistoricalRecord:
    """One saved scan: every pair result for a primary at one interval"""
    timestamp: datetime
    primary_pair: str
    interval: str
    results: Tuple[PairAnalysisResult, ...] = ()


# ========================================
# MULTI-TIMEFRAME
# ========================================

@dataclass(frozen=True)
class TimeframeAnalysis:
    """Pair analysis for a single interval with its reliability weight"""
    interval: str
    result: PairAnalysisResult
    weight: float

    def to_dict(self) -> dict:
        return {
            'interval': self.interval,
            'weight': float(self.weight),
            'result': self.result.to_dict(),
        }


@dataclass(frozen=True)
class ConfluenceResult:
    """Multi-timeframe rollup for one candidate symbol"""
    symbol: str
    primary_symbol: str
    confluence_score: int = 0
    confidence: ConfidenceTier = ConfidenceTier.LOW
    timeframe_analyses: Tuple[TimeframeAnalysis, ...] = ()
    aligned_timeframes: int = 0
    total_timeframes: int = 0
    average_opportunity: int = 0
    best_timeframe: Optional[str] = None
    worst_timeframe: Optional[str] = None
    signal_direction: SpreadDirection = SpreadDirection.NEUTRAL
    z_score_agreement: float = 0.0
    correlation_agreement: float = 0.0
    quality_agreement: float = 0.0
    notes: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'symbol': self.symbol,
            'primary_symbol': self.primary_symbol,
            'confluence_score': self.confluence_score,
            'confidence': self.confidence.value,
            'timeframe_analyses': [t.to_dict() for t in self.timeframe_analyses],
            'aligned_timeframes': self.aligned_timeframes,
            'total_timeframes': self.total_timeframes,
            'average_opportunity': self.average_opportunity,
            'best_timeframe': self.best_timeframe,
            'worst_timeframe': self.worst_timeframe,
            'signal_direction': self.signal_direction.value,
            'z_score_agreement': float(self.z_score_agreement),
            'correlation_agreement': float(self.correlation_agreement),
            'quality_agreement': float(self.quality_agreement),
            'notes': list(self.notes),
        }

