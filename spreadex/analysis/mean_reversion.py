"""
Mean Reversion / Cointegration Analysis

Stationarity gate for pair trading:
1. Rolling OLS hedge ratio → hedged log spread
2. Dickey-Fuller style test on the spread
3. Engle-Granger style cointegration test on full-sample residuals
4. Half-life of mean reversion

A pair is tradable only if all three tests pass.
"""

from typing import Optional, Sequence
import logging
import math

import numpy as np
from statsmodels.tsa.adfvalues import mackinnonp
from statsmodels.tsa.stattools import adfuller

from .config import MeanReversionConfig
from .schemas import (
    AdfResult,
    CointegrationResult,
    MeanReversionAnalysis,
    RollingBetaResult,
)
from .statistics import EPSILON, linear_regression

LOG = logging.getLogger(__name__)

# Minimum observations for ADF, cointegration and half-life
MIN_TEST_SAMPLES = 20

BETA_LIMIT = 5.0
MIN_ABS_BETA = 0.05


def _safe_log(values: Sequence[float]) -> np.ndarray:
    return np.log(np.maximum(np.asarray(values, dtype=float), EPSILON))


def _approximate_pvalue(t_stat: float, n_series: int) -> float:
    """MacKinnon approximate p-value for a constant-only DF regression"""
    if math.isnan(t_stat):
        return 1.0
    if math.isinf(t_stat):
        return 1.0 if t_stat > 0 else 0.0
    return float(mackinnonp(t_stat, regression="c", N=n_series))


def run_adf_test(
    series: Sequence[float],
    critical_value: float = -2.86,
    n_series: int = 1
) -> AdfResult:
    """
    Regress the first difference of a series on its lagged level.

    Non-augmented Dickey-Fuller regression with a constant, via
    statsmodels adfuller (no lagged differences).

    Args:
        series: Series to test (typically a spread)
        critical_value: Pass threshold for the t-statistic
        n_series: Number of integrated series behind it (p-value only)

    Returns:
        AdfResult; t_stat is 0 and passed is False below 20 observations
    """
    arr = np.asarray(series, dtype=float)
    if arr.size < MIN_TEST_SAMPLES:
        LOG.debug(f"Insufficient data for ADF: {arr.size} < {MIN_TEST_SAMPLES}")
        return AdfResult(
            t_stat=0.0,
            critical_value=critical_value,
            passed=False,
            sample_size=int(arr.size),
        )

    sample_size = arr.size - 1

    # Constant level: no slope to estimate
    if np.ptp(arr[:-1]) < EPSILON:
        LOG.debug("Constant series, ADF t-statistic set to 0")
        return AdfResult(
            t_stat=0.0,
            critical_value=critical_value,
            passed=False,
            sample_size=int(sample_size),
        )

    adf_stat, p_value, _, store = adfuller(
        arr,
        maxlag=0,
        regression='c',
        autolag=None,
        regresults=True
    )

    # Exact fit leaves no residual error
    if store.resols.bse[0] > EPSILON:
        t_stat = float(adf_stat)
    else:
        t_stat = math.inf

    if n_series > 1 or not math.isfinite(t_stat):
        p_value = _approximate_pvalue(t_stat, n_series)

    passed = math.isfinite(t_stat) and t_stat < critical_value

    return AdfResult(
        t_stat=t_stat,
        critical_value=critical_value,
        passed=passed,
        sample_size=int(sample_size),
        p_value=float(p_value),
    )


def estimate_half_life(series: Sequence[float]) -> float:
    """
    Half-life of mean reversion in bars, -ln(2)/λ.

    λ is the slope of Δs on lagged s. Returns +inf when the series is too
    short or λ is not meaningfully negative.
    """
    arr = np.asarray(series, dtype=float)
    if arr.size < MIN_TEST_SAMPLES:
        return math.inf

    regression = linear_regression(np.diff(arr), arr[:-1])
    speed = regression.slope
    if not math.isfinite(speed) or speed >= 0 or abs(speed) < EPSILON:
        return math.inf

    return -math.log(2) / speed


class MeanReversionAnalyzer:
    """
    Runs the stationarity gate over an aligned pair of price series.

    Both series must already be aligned (equal length, positive, finite).
    """

    def __init__(self, config: Optional[MeanReversionConfig] = None):
        """
        Initialize mean reversion analyzer.

        Args:
            config: Windows and thresholds (uses defaults if None)
        """
        self.config = config or MeanReversionConfig()

        LOG.info(f"Mean reversion analyzer initialized: "
                 f"beta_window={self.config.rolling_beta_window}/"
                 f"{self.config.rolling_beta_min_window}, "
                 f"adf_critical={self.config.adf_critical_value}, "
                 f"half_life=[{self.config.min_half_life_bars}, "
                 f"{self.config.max_half_life_bars}]")

    def rolling_beta_spread(
        self,
        primary: Sequence[float],
        secondary: Sequence[float]
    ) -> RollingBetaResult:
        """
        Per-bar hedge ratio from a trailing OLS of log(primary) on log(secondary).

        Near the start of the series the window widens to include at least
        rolling_beta_min_window bars (or everything available). The slope
        is clamped to [-5, 5] and pushed away from zero to ±0.05.

        Returns:
            RollingBetaResult with spread[i] = log p[i] - beta[i] * log s[i]
        """
        length = min(len(primary), len(secondary))
        if length < 3:
            return RollingBetaResult(spread=np.empty(0), betas=np.empty(0), current_beta=1.0)

        log_p = _safe_log(primary)[:length]
        log_s = _safe_log(secondary)[:length]
        window = self.config.rolling_beta_window
        min_window = self.config.rolling_beta_min_window

        betas = np.empty(length)
        for i in range(length):
            window_end = i + 1
            window_start = window_end - min(window, window_end)
            if window_end - window_start < min_window:
                window_start = max(0, window_end - min_window)

            regression = linear_regression(
                log_p[window_start:window_end],
                log_s[window_start:window_end],
            )
            beta = min(BETA_LIMIT, max(-BETA_LIMIT, regression.slope))
            if abs(beta) < MIN_ABS_BETA:
                beta = -MIN_ABS_BETA if beta < 0 else MIN_ABS_BETA
            betas[i] = beta

        spread = log_p - betas * log_s
        return RollingBetaResult(spread=spread, betas=betas, current_beta=float(betas[-1]))

    def cointegration_test(
        self,
        primary: Sequence[float],
        secondary: Sequence[float]
    ) -> CointegrationResult:
        """Full-sample OLS of log prices, then ADF on the residuals"""
        critical_value = self.config.adf_critical_value
        length = min(len(primary), len(secondary))
        if length < MIN_TEST_SAMPLES:
            LOG.debug(f"Insufficient data for cointegration: {length} < {MIN_TEST_SAMPLES}")
            return CointegrationResult(
                beta=0.0,
                intercept=0.0,
                t_stat=0.0,
                critical_value=critical_value,
                passed=False,
                sample_size=length,
            )

        log_p = _safe_log(primary)[:length]
        log_s = _safe_log(secondary)[:length]
        regression = linear_regression(log_p, log_s)
        residuals = log_p - (regression.intercept + regression.slope * log_s)
        adf = run_adf_test(residuals, critical_value, n_series=2)

        return CointegrationResult(
            beta=regression.slope,
            intercept=regression.intercept,
            t_stat=adf.t_stat,
            critical_value=critical_value,
            passed=adf.passed,
            sample_size=adf.sample_size,
            p_value=adf.p_value,
        )

    def analyze(
        self,
        primary: Sequence[float],
        secondary: Sequence[float]
    ) -> MeanReversionAnalysis:
        """
        Full stationarity gate for one pair.

        Args:
            primary: Aligned primary closes
            secondary: Aligned secondary closes

        Returns:
            MeanReversionAnalysis with the rolling-beta spread and verdict
        """
        rolling = self.rolling_beta_spread(primary, secondary)
        adf = run_adf_test(rolling.spread, self.config.adf_critical_value)
        cointegration = self.cointegration_test(primary, secondary)

        if rolling.spread.size < MIN_TEST_SAMPLES:
            return MeanReversionAnalysis(
                spread=rolling.spread,
                betas=rolling.betas,
                current_beta=rolling.current_beta,
                adf=adf,
                cointegration=cointegration,
                half_life=math.inf,
                half_life_passed=False,
                is_mean_reverting=False,
            )

        half_life = estimate_half_life(rolling.spread)
        half_life_passed = (
            math.isfinite(half_life) and
            self.config.min_half_life_bars <= half_life <= self.config.max_half_life_bars
        )
        is_mean_reverting = adf.passed and cointegration.passed and half_life_passed

        LOG.debug(f"Stationarity gate: adf={adf.t_stat:.3f} ({adf.passed}), "
                  f"coint={cointegration.t_stat:.3f} ({cointegration.passed}), "
                  f"half_life={half_life:.2f} ({half_life_passed}) → {is_mean_reverting}")

        return MeanReversionAnalysis(
            spread=rolling.spread,
            betas=rolling.betas,
            current_beta=rolling.current_beta,
            adf=adf,
            cointegration=cointegration,
            half_life=half_life,
            half_life_passed=half_life_passed,
            is_mean_reverting=is_mean_reverting,
        )
