"""
Pair Analysis Engine

Main orchestrator turning two raw close-price series into one scored
PairAnalysisResult:
1. Alignment (drop non-finite / non-positive bars)
2. Return correlation
3. Stationarity gate (rolling-beta spread, ADF, cointegration, half-life)
4. Correlation velocity and volatility-adjusted spread (toggleable)
5. Base opportunity score + reversion probability
6. Notes and confluence rating

Output: opportunity_score in [0, 100], forced to 0 for untradable pairs
"""

from dataclasses import replace
from typing import List, Optional, Sequence, Tuple
import logging

from .config import AnalysisConfig
from .confluence import calculate_confluence
from .correlation_velocity import CorrelationVelocityAnalyzer
from .mean_reversion import MeanReversionAnalyzer
from .notes import build_notes
from .reversion import (
    ReversionScorer,
    combine_opportunity_score,
    fallback_reversion_probability,
)
from .schemas import (
    CorrelationRegime,
    CorrelationVelocityResult,
    PairAnalysisResult,
    ReversionProbability,
    SignalQuality,
    StationarityInfo,
    VolatilitySpreadResult,
)
from .statistics import (
    align_series,
    calculate_ratio,
    calculate_returns,
    calculate_spread,
    calculate_z_score,
    clamp,
    pearson_correlation,
    round_half_up,
)
from .volatility_spread import VolatilitySpreadAnalyzer, saturating_strength

LOG = logging.getLogger(__name__)

INSUFFICIENT_DATA_NOTE = "Insufficient data for analysis."


def calculate_base_opportunity(
    spread_z_score: float,
    correlation: float,
    volatility_spread: Optional[VolatilitySpreadResult] = None
) -> Tuple[int, float, float]:
    """
    Statistical opportunity score before reversion probability.

    45% spread-opportunity transform + 30% volatility signal strength +
    25% correlation magnitude, rounded and clamped to [0, 100].

    Returns:
        (score, spread_opportunity, method_average)
    """
    if volatility_spread is not None:
        effective_z = volatility_spread.adjusted_z_score
        method_average = clamp(volatility_spread.signal_strength * 0.7, 0.0, 70.0)
    else:
        effective_z = spread_z_score
        method_average = 0.0

    spread_opportunity = saturating_strength(effective_z)
    correlation_quality = clamp(abs(correlation), 0.0, 1.0)

    raw_score = spread_opportunity * 0.45 + method_average * 0.3 + correlation_quality * 25
    score = int(clamp(round_half_up(raw_score), 0, 100))
    return score, spread_opportunity, method_average


def create_empty_result(symbol: str, primary_symbol: str) -> PairAnalysisResult:
    """Defined result for pairs with fewer than 2 usable bars"""
    return PairAnalysisResult(
        symbol=symbol,
        primary_symbol=primary_symbol,
        reversion_probability=ReversionProbability(probability=0.0),
        notes=(INSUFFICIENT_DATA_NOTE,),
    )


class PairAnalysisEngine:
    """
    Pair Analysis Engine.

    Stateless between calls: every analyze_pair() builds a fresh result.
    An optional ReversionScorer rescores results with history-backed
    probabilities; without one the fallback heuristic is used.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        scorer: Optional[ReversionScorer] = None
    ):
        """
        Initialize engine with configuration.

        Args:
            config: Analysis configuration (uses defaults if None)
            scorer: Default reversion scorer for every call
        """
        self.config = config or AnalysisConfig()
        self.config.validate()
        self.scorer = scorer

        self.mean_reversion = MeanReversionAnalyzer(self.config.mean_reversion)
        self.correlation_velocity = CorrelationVelocityAnalyzer(self.config.correlation_velocity)
        self.volatility_spread = VolatilitySpreadAnalyzer(self.config.volatility_spread)

        LOG.info(f"Pair analysis engine initialized with config version: "
                 f"{self.config.get_config_hash()}")

    def analyze_pair(
        self,
        primary_closes: Sequence[float],
        secondary_closes: Sequence[float],
        symbol: str,
        primary_symbol: str = "primary",
        scorer: Optional[ReversionScorer] = None
    ) -> PairAnalysisResult:
        """
        Analyze one (primary, candidate) pair.

        Args:
            primary_closes: Primary close prices, chronological
            secondary_closes: Candidate close prices, chronological
            symbol: Candidate symbol
            primary_symbol: Primary symbol
            scorer: Reversion scorer overriding the engine default

        Returns:
            PairAnalysisResult
        """
        aligned = align_series(primary_closes, secondary_closes)
        if len(aligned) < 2:
            LOG.debug(f"{primary_symbol}|{symbol}: insufficient aligned data "
                      f"({len(aligned)} bars, {aligned.dropped_count} dropped)")
            return create_empty_result(symbol, primary_symbol)

        primary = aligned.primary
        secondary = aligned.secondary

        returns_primary = calculate_returns(primary)
        returns_secondary = calculate_returns(secondary)
        correlation = pearson_correlation(returns_primary, returns_secondary)

        mr_analysis = self.mean_reversion.analyze(primary, secondary)
        stationarity = StationarityInfo.from_analysis(mr_analysis)

        spread = mr_analysis.spread if mr_analysis.spread.size else calculate_spread(primary, secondary)
        z = calculate_z_score(spread)
        ratio = float(calculate_ratio(primary, secondary)[-1])

        velocity = None
        if self.config.correlation_velocity.enabled:
            velocity = self.correlation_velocity.analyze(returns_primary, returns_secondary)

        volatility = None
        if self.config.volatility_spread.enabled:
            volatility = self.volatility_spread.analyze(primary, secondary)

        base_score, spread_opportunity, method_average = calculate_base_opportunity(
            z.zscore, correlation, volatility
        )

        reversion = fallback_reversion_probability(
            z.zscore,
            correlation,
            volatility.combined_volatility if volatility else 0.0,
            stationarity.is_tradable,
            lookahead_bars=self.config.reversion.lookahead_bars,
        )

        notes = build_notes(z.zscore, correlation, velocity, volatility, stationarity)

        result = PairAnalysisResult(
            symbol=symbol,
            primary_symbol=primary_symbol,
            correlation=correlation,
            spread_mean=z.mean,
            spread_std=z.std,
            spread_z_score=z.zscore,
            ratio=ratio,
            aligned_bars=len(aligned),
            hedge_ratio_beta=mr_analysis.current_beta,
            stationarity=stationarity,
            reversion_probability=reversion,
            opportunity_score=combine_opportunity_score(
                base_score, reversion.probability, stationarity.is_tradable
            ),
            base_opportunity_score=base_score,
            spread_opportunity=spread_opportunity,
            method_average=method_average,
            volatility_spread=volatility or VolatilitySpreadResult(
                raw_z_score=z.zscore,
                adjusted_z_score=z.zscore,
                signal_quality=SignalQuality.INSUFFICIENT_DATA,
            ),
            correlation_velocity=velocity or CorrelationVelocityResult(
                current_correlation=correlation,
                previous_correlation=correlation,
                regime=CorrelationRegime.STABLE,
            ),
            notes=tuple(notes),
        )
        result = replace(result, confluence=calculate_confluence(result))

        active_scorer = scorer or self.scorer
        if active_scorer is not None:
            result = active_scorer.score(result)

        # Gate dominates whatever the scorer returned
        if not result.stationarity.is_tradable and result.opportunity_score != 0:
            result = replace(result, opportunity_score=0)

        LOG.debug(f"{result.pair_key}: z={z.zscore:.3f}, corr={correlation:.3f}, "
                  f"tradable={stationarity.is_tradable}, score={result.opportunity_score}")
        return result

    def analyze_all_pairs(
        self,
        primary_closes: Sequence[float],
        pairs: Sequence[Tuple[str, Sequence[float]]],
        primary_symbol: str = "primary",
        scorer: Optional[ReversionScorer] = None
    ) -> List[PairAnalysisResult]:
        """
        Analyze every candidate against one primary, preserving input order.

        Args:
            primary_closes: Primary close prices
            pairs: (symbol, closes) per candidate
            primary_symbol: Primary symbol
            scorer: Reversion scorer overriding the engine default

        Returns:
            One PairAnalysisResult per candidate
        """
        results = [
            self.analyze_pair(primary_closes, closes, symbol, primary_symbol, scorer)
            for symbol, closes in pairs
        ]
        LOG.info(f"Analyzed {len(results)} pairs against {primary_symbol}: "
                 f"{sum(r.stationarity.is_tradable for r in results)} tradable")
        return results
