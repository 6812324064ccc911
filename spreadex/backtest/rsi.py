"""
RSI Primitives

Wilder-smoothed Relative Strength Index and threshold crossover detection
for the momentum/RSI strategy.
"""

from dataclasses import dataclass
from typing import List, Sequence
import math

import numpy as np


@dataclass(frozen=True)
class CrossoverEvent:
    """RSI crossing a threshold between bars index-1 and index"""
    index: int
    previous: float
    current: float
    crossed_below: bool
    crossed_above: bool


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0 and avg_gain == 0:
        return 50.0
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def calculate_rsi(closes: Sequence[float], period: int = 14) -> np.ndarray:
    """
    Wilder RSI for every bar.

    Args:
        closes: Close prices, chronological
        period: Smoothing period (floored, minimum 2)

    Returns:
        Array the length of closes; NaN until the first full period,
        50 for a flat market, 100 when there were no losses
    """
    prices = np.asarray(closes, dtype=float)
    n = len(prices)
    rsi = np.full(n, np.nan)

    safe_period = max(2, int(math.floor(period)))
    if n <= safe_period:
        return rsi

    changes = np.diff(prices)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = float(gains[:safe_period].sum()) / safe_period
    avg_loss = float(losses[:safe_period].sum()) / safe_period
    rsi[safe_period] = _rsi_value(avg_gain, avg_loss)

    # Wilder smoothing is recursive
    for i in range(safe_period + 1, n):
        avg_gain = (avg_gain * (safe_period - 1) + gains[i - 1]) / safe_period
        avg_loss = (avg_loss * (safe_period - 1) + losses[i - 1]) / safe_period
        rsi[i] = _rsi_value(avg_gain, avg_loss)

    return rsi


def detect_rsi_crossover(rsi_values: Sequence[float], threshold: float = 30.0) -> List[CrossoverEvent]:
    """
    Every bar where RSI crosses the threshold.

    Crossing below means previous > threshold >= current; crossing above
    means previous < threshold <= current. Bars next to a NaN are skipped.
    """
    events = []
    for i in range(1, len(rsi_values)):
        previous = float(rsi_values[i - 1])
        current = float(rsi_values[i])
        if not (math.isfinite(previous) and math.isfinite(current)):
            continue

        crossed_below = previous > threshold >= current
        crossed_above = previous < threshold <= current
        if crossed_below or crossed_above:
            events.append(CrossoverEvent(
                index=i,
                previous=previous,
                current=current,
                crossed_below=crossed_below,
                crossed_above=crossed_above,
            ))
    return events
