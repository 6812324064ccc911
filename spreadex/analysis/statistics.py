"""
Statistics Primitives

Pure functions over price arrays. No hidden state, inputs are never
mutated. Degenerate inputs (empty, too short, near-constant) return
well-defined fallback values instead of raising.
"""

from typing import Optional, Sequence
import math

import numpy as np

from .schemas import AlignedSeries, RegressionResult, ZScoreResult

# Guards logs and divisions against near-zero denominators
EPSILON = 1e-12


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for empty input"""
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def standard_deviation(values: Sequence[float], mean_value: Optional[float] = None) -> float:
    """
    Population standard deviation (divides by N).

    Args:
        values: Input series
        mean_value: Precomputed mean to reuse

    Returns:
        Standard deviation, 0 for fewer than 2 values
    """
    arr = _as_array(values)
    if arr.size < 2:
        return 0.0
    center = arr.mean() if mean_value is None else mean_value
    variance = float(np.mean((arr - center) ** 2))
    return math.sqrt(max(variance, 0.0))


def pearson_correlation(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Pearson correlation over the first min(len(a), len(b)) elements.

    Returns 0 for fewer than 2 usable elements or a near-constant input,
    otherwise a value clamped to [-1, 1].
    """
    n = min(len(a), len(b))
    if n < 2:
        return 0.0
    x = _as_array(a)[:n]
    y = _as_array(b)[:n]
    dx = x - x.mean()
    dy = y - y.mean()
    denominator = math.sqrt(float(np.dot(dx, dx)) * float(np.dot(dy, dy)))
    if denominator < EPSILON:
        return 0.0
    corr = float(np.dot(dx, dy)) / denominator
    return max(-1.0, min(1.0, corr))


def calculate_returns(closes: Sequence[float]) -> np.ndarray:
    """Log return per consecutive pair of closes (length n-1)"""
    arr = _as_array(closes)
    if arr.size < 2:
        return np.empty(0)
    logs = np.log(np.maximum(arr, EPSILON))
    return np.diff(logs)


def calculate_spread(primary: Sequence[float], secondary: Sequence[float]) -> np.ndarray:
    """Log spread ln(p) - ln(s), truncated to the shorter series"""
    n = min(len(primary), len(secondary))
    p = _as_array(primary)[:n]
    s = _as_array(secondary)[:n]
    return np.log(np.maximum(p, EPSILON)) - np.log(np.maximum(s, EPSILON))


def calculate_ratio(primary: Sequence[float], secondary: Sequence[float]) -> np.ndarray:
    """Price ratio p / s, 0 where s <= 0"""
    n = min(len(primary), len(secondary))
    p = _as_array(primary)[:n]
    s = _as_array(secondary)[:n]
    ratio = np.zeros(n)
    valid = s > 0
    ratio[valid] = p[valid] / s[valid]
    return ratio


def align_series(
    primary: Sequence[float],
    secondary: Sequence[float],
    require_positive: bool = True
) -> AlignedSeries:
    """
    Drop every index where either series is invalid.

    A bar is invalid when either value is non-finite or, with
    require_positive, not strictly positive. Only the first
    min(len(primary), len(secondary)) bars are considered.

    Args:
        primary: Primary close prices
        secondary: Secondary close prices
        require_positive: Also drop bars with a value <= 0

    Returns:
        AlignedSeries with equal-length arrays and the dropped count
    """
    n = min(len(primary), len(secondary))
    p = _as_array(primary)[:n]
    s = _as_array(secondary)[:n]

    keep = np.isfinite(p) & np.isfinite(s)
    if require_positive:
        keep &= (p > 0) & (s > 0)

    return AlignedSeries(
        primary=p[keep],
        secondary=s[keep],
        dropped_count=int(n - keep.sum()),
    )


def calculate_z_score(spread: Sequence[float]) -> ZScoreResult:
    """
    Z-score of the last element relative to the whole series.

    zscore is exactly 0 for empty input or a (near-)constant series.
    """
    arr = _as_array(spread)
    if arr.size == 0:
        return ZScoreResult()

    avg = float(arr.mean())
    std = standard_deviation(arr, avg)
    current = float(arr[-1])
    if std <= EPSILON:
        return ZScoreResult(zscore=0.0, mean=avg, std=0.0, current=current)
    return ZScoreResult(zscore=(current - avg) / std, mean=avg, std=std, current=current)


def linear_regression(y: Sequence[float], x: Sequence[float]) -> RegressionResult:
    """
    OLS fit of y on x with the standard error of the slope.

    Fewer than 3 points gives a flat fit with infinite slope error; a
    constant x gives slope 0 and the mean of y as intercept.
    """
    n = min(len(y), len(x))
    if n < 3:
        return RegressionResult(slope=0.0, intercept=0.0, slope_std_err=math.inf)

    ya = _as_array(y)[:n]
    xa = _as_array(x)[:n]
    x_mean = xa.mean()
    y_mean = ya.mean()
    dx = xa - x_mean
    var_x = float(np.dot(dx, dx))
    if var_x < EPSILON:
        return RegressionResult(slope=0.0, intercept=float(y_mean), slope_std_err=math.inf)

    slope = float(np.dot(dx, ya - y_mean)) / var_x
    intercept = float(y_mean - slope * x_mean)
    residuals = ya - (intercept + slope * xa)
    sse = float(np.dot(residuals, residuals))
    slope_std_err = math.sqrt(max(sse / (n - 2), 0.0) / var_x)
    return RegressionResult(slope=slope, intercept=intercept, slope_std_err=slope_std_err)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 → 3, -2.5 → -2)"""
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
