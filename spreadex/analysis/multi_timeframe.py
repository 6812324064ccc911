"""
Multi-Timeframe Confluence

Runs pair analysis independently per interval and rolls the results into
one confidence-rated ConfluenceResult:
- Agreement of |z| and |correlation| across intervals: max(0, 1 - std/2)
- Quality agreement: share of intervals in the most common quality
- Directional alignment by majority vote of non-neutral intervals
- Confluence score = 50% weighted opportunity + 20 * alignment
  + 15 * mean agreement + quality bonus + variance bonus - data penalty
"""

from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from .confluence import spread_direction
from .engine import PairAnalysisEngine
from .reversion import ReversionScorer
from .schemas import (
    ConfidenceTier,
    ConfluenceResult,
    SignalQuality,
    SpreadDirection,
    TimeframeAnalysis,
)
from .statistics import clamp, round_half_up

LOG = logging.getLogger(__name__)

# Reliability weight per interval (higher = more reliable)
TIMEFRAME_WEIGHTS: Dict[str, float] = {
    '1m': 0.5,    # Noisy
    '2m': 0.52,
    '3m': 0.6,
    '4m': 0.63,
    '5m': 0.7,
    '6m': 0.72,
    '7m': 0.73,
    '8m': 0.74,
    '9m': 0.75,
    '10m': 0.76,
    '12m': 0.78,
    '15m': 0.85,
    '20m': 0.87,
    '30m': 0.9,
    '1h': 1.0,    # Baseline
    '2h': 0.95,
    '4h': 0.92,
    '1d': 0.85,
}

DEFAULT_CONFLUENCE_INTERVALS = ['5m', '15m', '1h']

SUGGESTED_TIMEFRAMES = {
    'ultra-scalp': ['1m', '2m', '3m', '4m', '5m'],
    'scalping': ['1m', '3m', '5m', '7m', '10m', '15m'],
    'intraday': ['5m', '15m', '1h'],
    'swing': ['1h', '4h', '1d'],
}

# Per-interval direction threshold on z
DIRECTION_Z_THRESHOLD = 1.0
ALIGNMENT_THRESHOLD = 0.6
DATA_QUALITY_PENALTY = 20

CONFIDENCE_EMOJI = {
    ConfidenceTier.HIGH: '🟢',
    ConfidenceTier.MEDIUM: '🟡',
    ConfidenceTier.LOW: '🟠',
    ConfidenceTier.MIXED: '🔴',
}

_UNIT_MINUTES = {'m': 1, 'h': 60, 'd': 1440}


def get_interval_weight(interval: str) -> float:
    """
    Reliability weight for an interval.

    Unknown intervals are interpolated logarithmically between
    1 minute (0.5) and 60 minutes (1.0).
    """
    if interval in TIMEFRAME_WEIGHTS:
        return TIMEFRAME_WEIGHTS[interval]

    unit = interval[-1:].lower()
    digits = ''.join(ch for ch in interval[:-1] if ch.isdigit())
    value = int(digits) if digits and int(digits) > 0 else 1
    minutes = value * _UNIT_MINUTES.get(unit, 1)

    weight = 0.5 + 0.5 * (math.log(clamp(minutes, 1, 60)) / math.log(60))
    return clamp(weight, 0.5, 1.0)


def get_suggested_timeframes(style: str) -> List[str]:
    """Interval set for a trading style; defaults for unknown styles"""
    return list(SUGGESTED_TIMEFRAMES.get(style, DEFAULT_CONFLUENCE_INTERVALS))


def calculate_agreement(values: Sequence[float]) -> float:
    """1 for identical values, falling linearly to 0 at a std of 2"""
    if len(values) < 2:
        return 1.0
    return max(0.0, 1.0 - float(np.std(values)) / 2.0)


def calculate_quality_agreement(qualities: Sequence[SignalQuality]) -> float:
    """Share of intervals in the most common quality category"""
    if not qualities:
        return 0.0
    return Counter(qualities).most_common(1)[0][1] / len(qualities)


def signals_align(directions: Sequence[SpreadDirection]) -> Tuple[bool, int, float]:
    """
    Majority vote among non-neutral directions.

    Returns:
        (aligned, aligned_count, strength) where strength is the majority share
    """
    non_neutral = [d for d in directions if d != SpreadDirection.NEUTRAL]
    if not non_neutral:
        return False, 0, 0.0

    long_count = sum(1 for d in non_neutral if d == SpreadDirection.LONG_SPREAD)
    short_count = len(non_neutral) - long_count
    majority = max(long_count, short_count)
    strength = majority / len(non_neutral)
    aligned = strength >= ALIGNMENT_THRESHOLD
    return aligned, majority if aligned else 0, strength


def determine_confidence(
    alignment_strength: float,
    z_score_agreement: float,
    quality_agreement: float,
    aligned_count: int,
    is_aligned: bool
) -> ConfidenceTier:
    if (alignment_strength >= 0.7 and z_score_agreement > 0.7 and
            quality_agreement > 0.6 and aligned_count >= 3):
        return ConfidenceTier.HIGH
    if (alignment_strength >= 0.5 and z_score_agreement > 0.5 and
            quality_agreement > 0.4 and aligned_count >= 2):
        return ConfidenceTier.MEDIUM
    if is_aligned:
        return ConfidenceTier.LOW
    return ConfidenceTier.MIXED


def calculate_confluence_score(
    weighted_opportunity: float,
    alignment_strength: float,
    z_score_agreement: float,
    correlation_agreement: float,
    quality_agreement: float,
    analyses: Sequence[TimeframeAnalysis],
    all_scores_identical: bool
) -> int:
    """Combine the rollup components into a 0-100 confluence score"""
    base_opportunity = weighted_opportunity * 0.5
    alignment_bonus = alignment_strength * 20
    agreement_factor = (z_score_agreement + correlation_agreement + quality_agreement) / 3 * 15

    strong_count = sum(
        1 for a in analyses
        if a.result.volatility_spread.signal_quality in (SignalQuality.PREMIUM, SignalQuality.STRONG)
    )
    quality_bonus = min(10.0, strong_count / len(analyses) * 10)

    unique_ratio = len({a.result.opportunity_score for a in analyses}) / len(analyses)
    variance_bonus = 5.0 if unique_ratio >= 0.5 else unique_ratio * 10

    penalty = 0
    if all_scores_identical and len(analyses) > 2 and weighted_opportunity > 80:
        penalty = DATA_QUALITY_PENALTY

    score = round_half_up(
        base_opportunity + alignment_bonus + agreement_factor +
        quality_bonus + variance_bonus - penalty
    )
    return int(clamp(score, 0, 100))


def _symbol_label(symbol: str) -> str:
    return symbol.replace('USDT', '', 1)


def build_confluence_notes(
    analyses: Sequence[TimeframeAnalysis],
    confidence: ConfidenceTier,
    aligned_count: int,
    direction: SpreadDirection,
    z_score_agreement: float,
    quality_agreement: float,
    all_scores_identical: bool,
    primary_symbol: str,
    symbol: str
) -> List[str]:
    notes = []

    if all_scores_identical and len(analyses) > 2:
        notes.append('⚠️ Data quality issue: All intervals show identical scores. '
                     'Try clearing cache or using different intervals.')

    notes.append(f"{CONFIDENCE_EMOJI[confidence]} {confidence.value.upper()} confidence: "
                 f"{aligned_count}/{len(analyses)} timeframes aligned")

    if direction != SpreadDirection.NEUTRAL:
        primary_label = _symbol_label(primary_symbol)
        secondary_label = _symbol_label(symbol)
        if direction == SpreadDirection.LONG_SPREAD:
            action = f"LONG spread (LONG {primary_label}, SHORT {secondary_label})"
        else:
            action = f"SHORT spread (SHORT {primary_label}, LONG {secondary_label})"
        notes.append(f"📊 Suggested: {action}")

    if z_score_agreement > 0.8:
        notes.append('✅ Strong Z-score agreement across timeframes')
    elif z_score_agreement < 0.4:
        notes.append('⚠️ Z-scores diverge between timeframes - caution advised')

    if quality_agreement > 0.7:
        notes.append('✅ Consistent signal quality across all timeframes')

    best = max(analyses, key=lambda a: a.result.opportunity_score)
    if best.result.opportunity_score > 60:
        notes.append(f"⭐ Strongest signal on {best.interval} timeframe "
                     f"({best.result.opportunity_score}%)")

    premium_count = sum(
        1 for a in analyses if a.result.volatility_spread.signal_quality == SignalQuality.PREMIUM
    )
    if premium_count >= 2:
        notes.append(f"💎 {premium_count} timeframes show premium quality")

    return notes


def create_empty_confluence_result(
    symbol: str,
    primary_symbol: str,
    total_timeframes: int
) -> ConfluenceResult:
    return ConfluenceResult(
        symbol=symbol,
        primary_symbol=primary_symbol,
        total_timeframes=total_timeframes,
        notes=('Insufficient data for multi-timeframe analysis',),
    )


class MultiTimeframeAnalyzer:
    """
    Aggregates per-interval pair analyses into a confluence rollup.

    Args:
        engine: Pair analysis engine (a default engine if None)
        intervals: Intervals to analyze (DEFAULT_CONFLUENCE_INTERVALS if None)
    """

    def __init__(
        self,
        engine: Optional[PairAnalysisEngine] = None,
        intervals: Optional[Sequence[str]] = None
    ):
        self.engine = engine or PairAnalysisEngine()
        self.intervals = list(intervals or DEFAULT_CONFLUENCE_INTERVALS)

        LOG.info(f"Multi-timeframe analyzer initialized: intervals={self.intervals}")

    def analyze(
        self,
        timeframe_data: Mapping[str, Tuple[Sequence[float], Sequence[float]]],
        symbol: str,
        primary_symbol: str,
        intervals: Optional[Sequence[str]] = None,
        scorers: Optional[Mapping[str, ReversionScorer]] = None
    ) -> ConfluenceResult:
        """
        Multi-timeframe confluence for one candidate.

        Args:
            timeframe_data: interval → (primary closes, secondary closes)
            symbol: Candidate symbol
            primary_symbol: Primary symbol
            intervals: Intervals to analyze (analyzer default if None)
            scorers: Optional per-interval reversion scorers

        Returns:
            ConfluenceResult; an empty result when no interval has data
        """
        intervals = list(intervals or self.intervals)
        scorers = scorers or {}

        analyses = []
        for interval in intervals:
            data = timeframe_data.get(interval)
            if data is None or len(data[0]) == 0 or len(data[1]) == 0:
                continue
            result = self.engine.analyze_pair(
                data[0], data[1], symbol, primary_symbol, scorer=scorers.get(interval)
            )
            analyses.append(TimeframeAnalysis(
                interval=interval,
                result=result,
                weight=get_interval_weight(interval),
            ))

        if not analyses:
            LOG.debug(f"{primary_symbol}|{symbol}: no interval data for confluence")
            return create_empty_confluence_result(symbol, primary_symbol, len(intervals))

        z_scores = [a.result.spread_z_score for a in analyses]
        directions = [spread_direction(z, DIRECTION_Z_THRESHOLD) for z in z_scores]

        z_score_agreement = calculate_agreement([abs(z) for z in z_scores])
        correlation_agreement = calculate_agreement([abs(a.result.correlation) for a in analyses])
        quality_agreement = calculate_quality_agreement(
            [a.result.volatility_spread.signal_quality for a in analyses]
        )

        total_weight = sum(a.weight for a in analyses)
        weighted_opportunity = sum(
            a.result.opportunity_score * a.weight for a in analyses
        ) / total_weight

        ranked = sorted(analyses, key=lambda a: a.result.opportunity_score, reverse=True)

        aligned, aligned_count, alignment_strength = signals_align(directions)
        confidence = determine_confidence(
            alignment_strength, z_score_agreement, quality_agreement, aligned_count, aligned
        )

        all_scores_identical = len({a.result.opportunity_score for a in analyses}) == 1
        if all_scores_identical and len(analyses) > 2:
            LOG.warning(f"Suspicious: all {len(analyses)} intervals for {primary_symbol}|{symbol} "
                        f"have identical opportunity score {analyses[0].result.opportunity_score}")

        confluence_score = calculate_confluence_score(
            weighted_opportunity,
            alignment_strength,
            z_score_agreement,
            correlation_agreement,
            quality_agreement,
            analyses,
            all_scores_identical,
        )

        signal_direction = spread_direction(float(np.mean(z_scores)), DIRECTION_Z_THRESHOLD)

        notes = build_confluence_notes(
            analyses,
            confidence,
            aligned_count,
            signal_direction,
            z_score_agreement,
            quality_agreement,
            all_scores_identical,
            primary_symbol,
            symbol,
        )

        return ConfluenceResult(
            symbol=symbol,
            primary_symbol=primary_symbol,
            confluence_score=confluence_score,
            confidence=confidence,
            timeframe_analyses=tuple(analyses),
            aligned_timeframes=aligned_count,
            total_timeframes=len(analyses),
            average_opportunity=round_half_up(weighted_opportunity),
            best_timeframe=ranked[0].interval,
            worst_timeframe=ranked[-1].interval,
            signal_direction=signal_direction,
            z_score_agreement=round_half_up(z_score_agreement * 100) / 100,
            correlation_agreement=round_half_up(correlation_agreement * 100) / 100,
            quality_agreement=round_half_up(quality_agreement * 100) / 100,
            notes=tuple(notes),
        )

    def analyze_confluence_for_pairs(
        self,
        pairs: Sequence[str],
        symbol_interval_data: Mapping[str, Mapping[str, Sequence[float]]],
        primary_pair: str,
        intervals: Optional[Sequence[str]] = None
    ) -> List[ConfluenceResult]:
        """
        Rank candidates by multi-timeframe confluence.

        Args:
            pairs: Candidate symbols
            symbol_interval_data: symbol → interval → closes (includes the primary)
            primary_pair: Primary symbol
            intervals: Intervals to analyze (analyzer default if None)

        Returns:
            ConfluenceResults sorted by confluence score, best first

        Raises:
            KeyError: if the primary has no interval data
        """
        if primary_pair not in symbol_interval_data:
            raise KeyError(f"Primary pair data not found: {primary_pair}")

        intervals = list(intervals or self.intervals)
        primary_data = symbol_interval_data[primary_pair]

        results = []
        for symbol in pairs:
            pair_data = symbol_interval_data.get(symbol)
            if not pair_data:
                continue

            timeframe_data = {}
            for interval in intervals:
                primary_prices = primary_data.get(interval)
                secondary_prices = pair_data.get(interval)
                if primary_prices is not None and secondary_prices is not None \
                        and len(primary_prices) and len(secondary_prices):
                    timeframe_data[interval] = (primary_prices, secondary_prices)

            if timeframe_data:
                results.append(self.analyze(timeframe_data, symbol, primary_pair, intervals))

        results.sort(key=lambda r: r.confluence_score, reverse=True)
        return results
