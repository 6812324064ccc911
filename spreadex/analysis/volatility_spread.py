"""
Volatility-Adjusted Spread

High spread with low leg volatility is a cleaner signal than the same
spread in a noisy market. The raw spread z-score is amplified by
1 + 1/(1 + combined_vol * 10) and classified into a signal quality.
"""

from typing import Optional, Sequence
import logging
import math

import numpy as np

from .config import VolatilitySpreadConfig
from .schemas import SignalQuality, VolatilitySpreadResult
from .statistics import (
    EPSILON,
    calculate_returns,
    calculate_spread,
    calculate_z_score,
    standard_deviation,
)

LOG = logging.getLogger(__name__)

# Signal strength saturates here so extreme z never pins at 100
MAX_SIGNAL_STRENGTH = 85.0


def saturating_strength(z: float, cap: float = MAX_SIGNAL_STRENGTH) -> float:
    """(1 - 1/(1 + |z|*0.5)) * 100, clamped to [0, cap]"""
    value = (1.0 - 1.0 / (1.0 + abs(z) * 0.5)) * 100.0
    return max(0.0, min(cap, value))


def determine_signal_quality(adjusted_z: float, volatility: float) -> SignalQuality:
    """Classify a volatility-adjusted z-score"""
    abs_adjusted = abs(adjusted_z)

    if abs_adjusted >= 2.0 and volatility < 0.02:
        return SignalQuality.PREMIUM
    if abs_adjusted >= 1.5 and volatility < 0.04:
        return SignalQuality.STRONG
    if abs_adjusted >= 1.0:
        return SignalQuality.MODERATE
    if volatility > 0.05:
        return SignalQuality.NOISY
    return SignalQuality.WEAK


class VolatilitySpreadAnalyzer:
    """Combines spread divergence with trailing leg volatility"""

    def __init__(self, config: Optional[VolatilitySpreadConfig] = None):
        self.config = config or VolatilitySpreadConfig()

        LOG.info(f"Volatility spread analyzer initialized: "
                 f"lookback={self.config.lookback_period}")

    def analyze(
        self,
        primary: Sequence[float],
        secondary: Sequence[float]
    ) -> VolatilitySpreadResult:
        """
        Compute the volatility-adjusted spread for aligned closes.

        Args:
            primary: Aligned primary closes
            secondary: Aligned secondary closes

        Returns:
            VolatilitySpreadResult, insufficient_data below 2 bars
        """
        count = min(len(primary), len(secondary))
        if count < 2:
            return VolatilitySpreadResult()

        returns_primary = calculate_returns(np.asarray(primary, dtype=float)[:count])
        returns_secondary = calculate_returns(np.asarray(secondary, dtype=float)[:count])

        period = min(self.config.lookback_period, len(returns_primary))
        vol_primary = standard_deviation(returns_primary[-period:])
        vol_secondary = standard_deviation(returns_secondary[-period:])
        combined = math.sqrt((vol_primary ** 2 + vol_secondary ** 2) / 2.0)

        raw_z = calculate_z_score(calculate_spread(primary, secondary)).zscore

        volatility_factor = 1.0 / (1.0 + combined * 10.0) if combined > EPSILON else 1.0
        adjusted_z = raw_z * (1.0 + volatility_factor)

        return VolatilitySpreadResult(
            raw_z_score=raw_z,
            adjusted_z_score=adjusted_z,
            combined_volatility=combined,
            primary_volatility=vol_primary,
            secondary_volatility=vol_secondary,
            signal_strength=saturating_strength(adjusted_z),
            signal_quality=determine_signal_quality(adjusted_z, combined),
        )
