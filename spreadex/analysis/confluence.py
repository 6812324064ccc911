"""
Confluence Rating

Requires agreement between independent indicators before a pair is
flagged as actionable:
1. Z-score beyond 2σ (extreme divergence)
2. Correlation regime strengthening, recovering or stable-strong
3. Volatility-adjusted signal quality premium or strong

Rating = number of active indicators (0-3); 2+ meets the threshold.
"""

from typing import List, Tuple

from .schemas import (
    ConfluenceAnalysis,
    ConfluenceIndicator,
    CorrelationRegime,
    PairAnalysisResult,
    SignalQuality,
    SpreadDirection,
)

ZSCORE_THRESHOLD = 2.0
MIN_ACTIONABLE_RATING = 2

STRONG_QUALITIES = frozenset({SignalQuality.PREMIUM, SignalQuality.STRONG})
STRENGTHENING_REGIMES = frozenset({
    CorrelationRegime.STRENGTHENING,
    CorrelationRegime.RECOVERING,
    CorrelationRegime.STABLE_STRONG,
})

RATING_LABELS = {
    0: "No Confluence",
    1: "Weak Confluence",
    2: "Moderate Confluence",
    3: "Strong Confluence",
}


def spread_direction(z_score: float, threshold: float = ZSCORE_THRESHOLD) -> SpreadDirection:
    """High spread reverts down (short), low spread reverts up (long)"""
    if z_score > threshold:
        return SpreadDirection.SHORT_SPREAD
    if z_score < -threshold:
        return SpreadDirection.LONG_SPREAD
    return SpreadDirection.NEUTRAL


def calculate_confluence(result: PairAnalysisResult) -> ConfluenceAnalysis:
    """
    Rate indicator agreement for a pair analysis result.

    Args:
        result: Enriched pair analysis

    Returns:
        ConfluenceAnalysis with rating, label, direction and indicator details
    """
    z = result.spread_z_score
    regime = result.correlation_velocity.regime
    quality = result.volatility_spread.signal_quality

    z_score_extreme = abs(z) > ZSCORE_THRESHOLD
    correlation_strengthening = regime in STRENGTHENING_REGIMES
    signal_quality_strong = quality in STRONG_QUALITIES

    rating = sum([z_score_extreme, correlation_strengthening, signal_quality_strong])

    details = (
        ConfluenceIndicator(
            name="Z-Score Extreme",
            active=z_score_extreme,
            value=f"{z:+.2f}σ",
        ),
        ConfluenceIndicator(
            name="Correlation Strengthening",
            active=correlation_strengthening,
            value=regime.value.replace("_", " "),
        ),
        ConfluenceIndicator(
            name="Signal Quality Strong",
            active=signal_quality_strong,
            value=quality.value,
        ),
    )

    return ConfluenceAnalysis(
        rating=rating,
        rating_label=RATING_LABELS[rating],
        z_score_extreme=z_score_extreme,
        correlation_strengthening=correlation_strengthening,
        signal_quality_strong=signal_quality_strong,
        indicator_details=details,
        meets_threshold=rating >= MIN_ACTIONABLE_RATING,
        direction=spread_direction(z),
    )


def filter_by_confluence(
    results: List[PairAnalysisResult],
    min_rating: int = MIN_ACTIONABLE_RATING
) -> List[PairAnalysisResult]:
    """Keep only results whose confluence rating reaches min_rating"""
    return [r for r in results if calculate_confluence(r).rating >= min_rating]


def sort_by_confluence(
    results: List[PairAnalysisResult]
) -> List[Tuple[PairAnalysisResult, ConfluenceAnalysis]]:
    """Pair each result with its confluence, highest rating first (stable)"""
    rated = [(r, calculate_confluence(r)) for r in results]
    return sorted(rated, key=lambda item: item[1].rating, reverse=True)
