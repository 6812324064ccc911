"""
Tests for Mean Reversion / Cointegration Analysis

Validates the ADF test, half-life estimate and the combined
stationarity gate.
"""

import math

import pytest
import numpy as np
from statsmodels.tsa.adfvalues import mackinnonp
from statsmodels.tsa.stattools import adfuller

from spreadex.analysis.config import MeanReversionConfig
from spreadex.analysis.mean_reversion import (
    MIN_TEST_SAMPLES,
    MeanReversionAnalyzer,
    estimate_half_life,
    run_adf_test,
)


def _ar1(phi: float, n: int, sigma: float = 1.0) -> np.ndarray:
    noise = np.random.normal(0, sigma, n)
    x = np.zeros(n)
    for t in range(1, n):
        x[t] = phi * x[t - 1] + noise[t]
    return x


@pytest.fixture
def stationary_series():
    """AR(1) with phi=0.5"""
    np.random.seed(42)
    return _ar1(0.5, 1000)


@pytest.fixture
def explosive_series():
    """AR(1) with phi=1.05"""
    np.random.seed(42)
    noise = np.random.normal(0, 0.1, 100)
    x = np.ones(100)
    for t in range(1, 100):
        x[t] = 1.05 * x[t - 1] + noise[t]
    return x


@pytest.fixture
def cointegrated_pair():
    """Random-walk secondary with a primary mean-reverting around it"""
    np.random.seed(42)
    n = 400
    secondary = np.exp(np.cumsum(np.random.normal(0, 0.01, n)))
    primary = secondary * np.exp(_ar1(0.85, n, 0.01))
    return primary, secondary


class TestAdfTest:
    """Test the Dickey-Fuller style test."""

    def test_stationary_passes(self, stationary_series):
        """Stationary AR(1) is well below the critical value."""
        result = run_adf_test(stationary_series)
        assert result.passed
        assert result.t_stat < -2.86
        assert result.sample_size == len(stationary_series) - 1
        assert result.p_value < 0.05

    def test_explosive_fails(self, explosive_series):
        """Explosive series has a positive t-statistic."""
        result = run_adf_test(explosive_series)
        assert not result.passed
        assert result.t_stat > 0

    def test_insufficient_data(self):
        """Below 20 samples t_stat is 0 and the test fails."""
        result = run_adf_test(np.arange(MIN_TEST_SAMPLES - 1, dtype=float))
        assert result.t_stat == 0.0
        assert not result.passed
        assert result.sample_size == MIN_TEST_SAMPLES - 1

    def test_zero_standard_error_fails(self):
        """A perfectly linear series has no residual error and never passes."""
        result = run_adf_test(np.arange(50, dtype=float))
        assert math.isinf(result.t_stat)
        assert not result.passed

    def test_custom_critical_value(self, stationary_series):
        """Critical value is carried through and used for the verdict."""
        result = run_adf_test(stationary_series, critical_value=-1000.0)
        assert result.critical_value == -1000.0
        assert not result.passed

    def test_matches_dickey_fuller_regression(self):
        """t-statistic and p-value match a lag-free constant DF regression."""
        np.random.seed(7)
        series = _ar1(0.8, 300)
        t_stat, p_value = adfuller(series, maxlag=0, autolag=None, regression='c')[:2]

        result = run_adf_test(series)
        assert result.t_stat == pytest.approx(t_stat, abs=1e-9)
        assert result.p_value == pytest.approx(p_value, abs=1e-9)

    def test_residual_p_value_uses_two_series(self):
        """Residual tests report the two-series MacKinnon p-value."""
        np.random.seed(7)
        series = _ar1(0.8, 300)

        result = run_adf_test(series, n_series=2)
        assert result.p_value == pytest.approx(mackinnonp(result.t_stat, regression='c', N=2))
        assert result.p_value > run_adf_test(series).p_value

    def test_constant_series(self):
        """A constant series has nothing to regress and never passes."""
        result = run_adf_test(np.full(50, 3.0))
        assert result.t_stat == 0.0
        assert not result.passed
        assert result.p_value == 1.0


class TestHalfLife:
    """Test half-life estimation."""

    def test_ar1_half_life(self, stationary_series):
        """phi=0.5 gives a half-life near ln(2)/0.5."""
        half_life = estimate_half_life(stationary_series)
        assert half_life == pytest.approx(math.log(2) / 0.5, abs=0.3)

    def test_non_reverting_is_infinite(self, explosive_series):
        """Non-negative speed gives +inf."""
        assert math.isinf(estimate_half_life(explosive_series))

    def test_short_series_is_infinite(self):
        """Too few samples gives +inf."""
        assert math.isinf(estimate_half_life([1.0, 0.5, 0.25]))


class TestMeanReversionAnalyzer:
    """Test the full stationarity gate."""

    def test_cointegrated_pair_is_tradable(self, cointegrated_pair):
        """All three tests pass for a cointegrated pair."""
        primary, secondary = cointegrated_pair
        analysis = MeanReversionAnalyzer().analyze(primary, secondary)

        assert analysis.adf.passed
        assert analysis.cointegration.passed
        assert analysis.half_life_passed
        assert analysis.is_mean_reverting
        assert len(analysis.spread) == len(primary)

    def test_gate_is_conjunction(self, cointegrated_pair):
        """A half-life band that excludes the estimate fails the pair."""
        primary, secondary = cointegrated_pair
        config = MeanReversionConfig(min_half_life_bars=500, max_half_life_bars=501)
        analysis = MeanReversionAnalyzer(config).analyze(primary, secondary)

        assert not analysis.half_life_passed
        assert not analysis.is_mean_reverting

    def test_betas_are_bounded(self, cointegrated_pair):
        """Hedge ratios stay within [-5, 5] and away from zero."""
        primary, secondary = cointegrated_pair
        rolling = MeanReversionAnalyzer().rolling_beta_spread(primary, secondary)

        assert np.all(np.abs(rolling.betas) <= 5.0)
        assert np.all(np.abs(rolling.betas) >= 0.05)
        assert rolling.current_beta == rolling.betas[-1]

    def test_spread_definition(self, cointegrated_pair):
        """spread[i] = ln p[i] - beta[i] * ln s[i]."""
        primary, secondary = cointegrated_pair
        rolling = MeanReversionAnalyzer().rolling_beta_spread(primary, secondary)
        expected = np.log(primary) - rolling.betas * np.log(secondary)
        np.testing.assert_allclose(rolling.spread, expected)

    def test_short_input_is_not_tradable(self):
        """Too little data never passes the gate."""
        primary = np.linspace(100, 101, 10)
        secondary = np.linspace(50, 51, 10)
        analysis = MeanReversionAnalyzer().analyze(primary, secondary)

        assert not analysis.is_mean_reverting
        assert math.isinf(analysis.half_life)
        assert not analysis.cointegration.passed

    def test_tiny_input_has_empty_spread(self):
        """Fewer than 3 bars yields an empty spread with beta 1."""
        rolling = MeanReversionAnalyzer().rolling_beta_spread([1.0, 2.0], [1.0, 2.0])
        assert rolling.spread.size == 0
        assert rolling.current_beta == 1.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
