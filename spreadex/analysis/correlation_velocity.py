"""
Correlation Velocity

Rolling correlation of two return series, its rate of change and the
resulting correlation regime. Regimes compare correlation STRENGTH
(absolute value), so a deepening anti-correlation counts as strengthening.
"""

from typing import Optional, Sequence
import logging

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .config import CorrelationVelocityConfig
from .schemas import CorrelationRegime, CorrelationVelocityResult
from .statistics import EPSILON, pearson_correlation

LOG = logging.getLogger(__name__)

STRONG_THRESHOLD = 0.7
WEAK_THRESHOLD = 0.3
VELOCITY_THRESHOLD = 0.01


def rolling_correlation(
    a: Sequence[float],
    b: Sequence[float],
    window: int
) -> np.ndarray:
    """
    Pearson correlation over every trailing window of `window` bars.

    Element k covers bars [k, k + window). Near-constant windows yield 0.
    """
    n = min(len(a), len(b))
    if window < 2 or n < window:
        return np.empty(0)

    wa = sliding_window_view(np.asarray(a, dtype=float)[:n], window)
    wb = sliding_window_view(np.asarray(b, dtype=float)[:n], window)
    da = wa - wa.mean(axis=1, keepdims=True)
    db = wb - wb.mean(axis=1, keepdims=True)

    numerator = np.sum(da * db, axis=1)
    denominator = np.sqrt(np.sum(da * da, axis=1) * np.sum(db * db, axis=1))

    corr = np.zeros(len(numerator))
    valid = denominator >= EPSILON
    corr[valid] = numerator[valid] / denominator[valid]
    return np.clip(corr, -1.0, 1.0)


def determine_correlation_regime(
    current: float,
    velocity: float,
    previous: float
) -> CorrelationRegime:
    """
    Classify correlation dynamics.

    Args:
        current: Latest rolling correlation
        velocity: Change per bar over the lookback
        previous: Rolling correlation one lookback ago

    Returns:
        CorrelationRegime
    """
    strength = abs(current)
    previous_strength = abs(previous)

    if abs(velocity) > VELOCITY_THRESHOLD:
        if strength > previous_strength:
            if strength >= STRONG_THRESHOLD:
                return CorrelationRegime.STRENGTHENING
            return CorrelationRegime.RECOVERING
        if strength < previous_strength:
            if strength <= WEAK_THRESHOLD:
                return CorrelationRegime.BREAKING_DOWN
            return CorrelationRegime.WEAKENING

    if strength >= STRONG_THRESHOLD:
        return CorrelationRegime.STABLE_STRONG
    if strength <= WEAK_THRESHOLD:
        return CorrelationRegime.STABLE_WEAK
    return CorrelationRegime.STABLE


class CorrelationVelocityAnalyzer:
    """Rate of change of rolling return correlation"""

    def __init__(self, config: Optional[CorrelationVelocityConfig] = None):
        self.config = config or CorrelationVelocityConfig()

        LOG.info(f"Correlation velocity analyzer initialized: "
                 f"window={self.config.window}, lookback={self.config.lookback}")

    def analyze(
        self,
        returns_primary: Sequence[float],
        returns_secondary: Sequence[float]
    ) -> CorrelationVelocityResult:
        """
        Compute velocity and acceleration of rolling correlation.

        Below window + lookback samples the full-sample correlation is
        returned with zero velocity and a stable regime.
        """
        window = self.config.window
        lookback = self.config.lookback
        count = min(len(returns_primary), len(returns_secondary))

        if count < window + lookback:
            LOG.debug(f"Insufficient data for correlation velocity: "
                      f"{count} < {window + lookback}")
            corr = pearson_correlation(returns_primary, returns_secondary)
            return CorrelationVelocityResult(
                current_correlation=corr,
                previous_correlation=corr,
                velocity=0.0,
                acceleration=0.0,
                regime=CorrelationRegime.STABLE,
            )

        rolling = rolling_correlation(returns_primary, returns_secondary, window)

        current = float(rolling[-1])
        previous = float(rolling[-1 - lookback])
        velocity = (current - previous) / lookback

        acceleration = 0.0
        if len(rolling) >= 2 * lookback + 1:
            previous_velocity = (previous - float(rolling[-1 - 2 * lookback])) / lookback
            acceleration = velocity - previous_velocity

        return CorrelationVelocityResult(
            current_correlation=current,
            previous_correlation=previous,
            velocity=velocity,
            acceleration=acceleration,
            regime=determine_correlation_regime(current, velocity, previous),
        )
