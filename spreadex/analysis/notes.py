"""
Human-readable notes for a pair analysis.

Rule-based templates over the computed sub-signals: spread divergence,
correlation strength, correlation regime/acceleration, signal quality,
leg volatility imbalance and the stationarity gate.
"""

from typing import List, Optional

from .schemas import (
    CorrelationRegime,
    CorrelationVelocityResult,
    SignalQuality,
    StationarityInfo,
    VolatilitySpreadResult,
)

REGIME_NOTES = {
    CorrelationRegime.BREAKING_DOWN:
        "⚠️ REGIME CHANGE: Correlation breaking down ({v:+.4f}/bar). Avoid new positions.",
    CorrelationRegime.WEAKENING:
        "⚡ Correlation weakening ({v:+.4f}/bar). Monitor for regime change.",
    CorrelationRegime.RECOVERING:
        "📈 Correlation recovering ({v:+.4f}/bar). Potential opportunity emerging.",
    CorrelationRegime.STRENGTHENING:
        "🔥 Correlation strengthening ({v:+.4f}/bar). Favorable conditions.",
    CorrelationRegime.STABLE_STRONG: "✅ Correlation stable and strong. Good for pair trading.",
    CorrelationRegime.STABLE_WEAK: "⚠️ Correlation stable but weak. Not ideal for pair trading.",
    CorrelationRegime.STABLE: "➖ Correlation is stable.",
}

QUALITY_NOTES = {
    SignalQuality.PREMIUM:
        "💎 PREMIUM SIGNAL: High spread ({z:+.2f}) with low volatility. Best opportunity.",
    SignalQuality.STRONG: "💪 Strong signal quality (adj. Z: {z:+.2f}). Good opportunity.",
    SignalQuality.MODERATE: "📊 Moderate signal quality (adj. Z: {z:+.2f}). Proceed with caution.",
    SignalQuality.NOISY:
        "🔊 High volatility ({vol:.1%}) makes signal noisy. Wait for calmer conditions.",
    SignalQuality.WEAK: "📉 Weak signal. No clear opportunity at this time.",
}

ACCELERATION_THRESHOLD = 0.001


def _spread_note(z: float) -> str:
    abs_z = abs(z)
    if abs_z >= 2:
        return f"Spread Z-score {z:+.2f}σ: consider mean-reversion entry."
    if abs_z >= 1:
        return f"Spread Z-score {z:+.2f}σ: divergence building."
    return "Spread is near its mean; low divergence right now."


def _correlation_note(correlation: float) -> str:
    abs_corr = abs(correlation)
    if abs_corr >= 0.7:
        strength = "strong"
    elif abs_corr >= 0.4:
        strength = "moderate"
    else:
        strength = "weak"
    return f"Returns correlation is {strength} ({correlation:+.2f})."


def _velocity_notes(cv: CorrelationVelocityResult) -> List[str]:
    notes = [REGIME_NOTES[cv.regime].format(v=cv.velocity)]
    if abs(cv.acceleration) > ACCELERATION_THRESHOLD:
        direction = "accelerating" if cv.acceleration > 0 else "decelerating"
        notes.append(f"Correlation velocity is {direction} ({cv.acceleration:+.5f}).")
    return notes


def _volatility_notes(vs: VolatilitySpreadResult) -> List[str]:
    notes = []
    template = QUALITY_NOTES.get(vs.signal_quality)
    if template:
        notes.append(template.format(z=vs.adjusted_z_score, vol=vs.combined_volatility))

    if vs.primary_volatility > 0 and vs.secondary_volatility > 0:
        ratio = vs.primary_volatility / vs.secondary_volatility
        if ratio > 2.0 or ratio < 0.5:
            higher = "Primary" if ratio > 1 else "Secondary"
            notes.append(
                f"⚖️ Volatility imbalance: {higher} is "
                f"{max(ratio, 1 / ratio):.1f}x more volatile."
            )
    return notes


def _stationarity_note(stationarity: StationarityInfo) -> str:
    if stationarity.is_tradable:
        return (f"Spread is mean-reverting (half-life "
                f"{stationarity.half_life_bars:.1f} bars).")

    failed = []
    if not stationarity.adf_passed:
        failed.append("ADF")
    if not stationarity.cointegration_passed:
        failed.append("cointegration")
    if not stationarity.half_life_passed:
        failed.append("half-life")
    return f"🚫 Stationarity gate failed ({', '.join(failed)}). Pair is not tradable."


def build_notes(
    spread_z_score: float,
    correlation: float,
    correlation_velocity: Optional[CorrelationVelocityResult] = None,
    volatility_spread: Optional[VolatilitySpreadResult] = None,
    stationarity: Optional[StationarityInfo] = None
) -> List[str]:
    """
    Build analysis notes in display order.

    Velocity and volatility notes are only emitted when those
    enrichment steps ran.
    """
    notes = [_spread_note(spread_z_score), _correlation_note(correlation)]

    if correlation_velocity is not None:
        notes.extend(_velocity_notes(correlation_velocity))
    if volatility_spread is not None:
        notes.extend(_volatility_notes(volatility_spread))
    if stationarity is not None:
        notes.append(_stationarity_note(stationarity))

    return notes
