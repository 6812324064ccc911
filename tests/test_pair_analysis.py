"""
Tests for Pair Analysis Engine

Validates end-to-end pair analysis, scoring, the stationarity gate and
configuration handling.
"""

from dataclasses import replace
import json

import pytest
import numpy as np

from spreadex.analysis import (
    AnalysisConfig,
    CorrelationRegime,
    PairAnalysisEngine,
    SignalQuality,
    calculate_base_opportunity,
)
from spreadex.analysis.config import (
    CorrelationVelocityConfig,
    MeanReversionConfig,
    VolatilitySpreadConfig,
)
from spreadex.analysis.engine import INSUFFICIENT_DATA_NOTE
from spreadex.analysis.reversion import combine_opportunity_score
from spreadex.analysis.schemas import json_safe


def _ar1(phi: float, n: int, sigma: float) -> np.ndarray:
    noise = np.random.normal(0, sigma, n)
    x = np.zeros(n)
    for t in range(1, n):
        x[t] = phi * x[t - 1] + noise[t]
    return x


@pytest.fixture
def cointegrated_pair():
    """Random-walk secondary with a primary mean-reverting around it"""
    np.random.seed(42)
    n = 400
    secondary = np.exp(np.cumsum(np.random.normal(0, 0.01, n)))
    primary = secondary * np.exp(_ar1(0.85, n, 0.01))
    return primary, secondary


@pytest.fixture
def independent_pair():
    """Two unrelated random walks"""
    np.random.seed(42)
    primary = 100 * np.exp(np.cumsum(np.random.normal(0, 0.01, 300)))
    secondary = 40 * np.exp(np.cumsum(np.random.normal(0, 0.01, 300)))
    return primary, secondary


@pytest.fixture
def engine():
    """Default engine"""
    return PairAnalysisEngine()


class _InflatingScorer:
    """Scorer that ignores the gate"""

    def score(self, result):
        return replace(result, opportunity_score=99, notes=result.notes + ("rescored",))


class TestPairAnalysisEngine:
    """Test end-to-end pair analysis."""

    def test_insufficient_data(self, engine):
        """Fewer than 2 aligned bars gives the empty result."""
        result = engine.analyze_pair([100.0], [50.0], "ETH", "BTC")

        assert result.opportunity_score == 0
        assert result.reversion_probability.probability == 0.0
        assert result.notes == (INSUFFICIENT_DATA_NOTE,)
        assert not result.stationarity.is_tradable

    def test_all_invalid_secondary(self, engine):
        """Invalid values everywhere leave nothing to analyze."""
        result = engine.analyze_pair([1.0, 2.0, 3.0], [float('nan'), 0.0, -1.0], "ETH", "BTC")
        assert result.notes == (INSUFFICIENT_DATA_NOTE,)
        assert result.aligned_bars == 0

    def test_result_bounds(self, engine, independent_pair):
        """Scores and correlation stay within their ranges."""
        primary, secondary = independent_pair
        result = engine.analyze_pair(primary, secondary, "ETH", "BTC")

        assert 0 <= result.opportunity_score <= 100
        assert 0 <= result.base_opportunity_score <= 100
        assert -1.0 <= result.correlation <= 1.0
        assert 0.0 <= result.reversion_probability.probability <= 1.0
        assert result.aligned_bars == 300
        assert result.pair_key == "BTC|ETH"
        assert result.timestamp.tzinfo is not None

    def test_tradable_pair(self, engine, cointegrated_pair):
        """Cointegrated pair passes the gate and blends its score."""
        primary, secondary = cointegrated_pair
        result = engine.analyze_pair(primary, secondary, "ETH", "BTC")

        assert result.stationarity.is_tradable
        expected = combine_opportunity_score(
            result.base_opportunity_score, result.reversion_probability.probability, True
        )
        assert result.opportunity_score == expected
        assert any("mean-reverting" in note for note in result.notes)

    def test_gate_forces_zero_score(self, cointegrated_pair):
        """Untradable pair always scores 0."""
        primary, secondary = cointegrated_pair
        config = AnalysisConfig(
            mean_reversion=MeanReversionConfig(min_half_life_bars=500, max_half_life_bars=501)
        )
        result = PairAnalysisEngine(config).analyze_pair(primary, secondary, "ETH", "BTC")

        assert not result.stationarity.is_tradable
        assert result.opportunity_score == 0
        assert result.base_opportunity_score > 0

    def test_gate_dominates_scorer(self, cointegrated_pair):
        """A scorer cannot lift an untradable pair above 0."""
        primary, secondary = cointegrated_pair
        config = AnalysisConfig(
            mean_reversion=MeanReversionConfig(min_half_life_bars=500, max_half_life_bars=501)
        )
        result = PairAnalysisEngine(config, scorer=_InflatingScorer()).analyze_pair(
            primary, secondary, "ETH", "BTC"
        )

        assert result.notes[-1] == "rescored"
        assert result.opportunity_score == 0

    def test_per_call_scorer_overrides_default(self, engine, cointegrated_pair):
        """A scorer passed per call is applied."""
        primary, secondary = cointegrated_pair
        result = engine.analyze_pair(primary, secondary, "ETH", "BTC", scorer=_InflatingScorer())
        assert result.opportunity_score == 99

    def test_dirty_data_is_aligned(self, engine, cointegrated_pair):
        """Invalid bars are dropped from both legs."""
        primary, secondary = cointegrated_pair
        primary = primary.copy()
        secondary = secondary.copy()
        primary[10] = np.nan
        secondary[20] = 0.0
        primary[30] = np.inf

        result = engine.analyze_pair(primary, secondary, "ETH", "BTC")
        assert result.aligned_bars == len(primary) - 3
        assert np.isfinite(result.spread_z_score)

    def test_analyze_all_pairs_preserves_order(self, engine, cointegrated_pair, independent_pair):
        """Batch results follow input order."""
        primary, secondary = cointegrated_pair
        _, other = independent_pair
        results = engine.analyze_all_pairs(
            primary,
            [("SOL", other), ("ETH", secondary), ("XRP", [1.0])],
            primary_symbol="BTC",
        )

        assert [r.symbol for r in results] == ["SOL", "ETH", "XRP"]
        assert all(r.primary_symbol == "BTC" for r in results)
        assert results[2].notes == (INSUFFICIENT_DATA_NOTE,)

    def test_disabled_enrichment(self, cointegrated_pair):
        """Toggled-off steps leave neutral defaults."""
        primary, secondary = cointegrated_pair
        config = AnalysisConfig(
            correlation_velocity=CorrelationVelocityConfig(enabled=False),
            volatility_spread=VolatilitySpreadConfig(enabled=False),
        )
        result = PairAnalysisEngine(config).analyze_pair(primary, secondary, "ETH", "BTC")

        assert result.correlation_velocity.regime == CorrelationRegime.STABLE
        assert result.volatility_spread.signal_quality == SignalQuality.INSUFFICIENT_DATA
        assert result.method_average == 0.0

    def test_to_dict_is_strict_json(self, engine):
        """Non-finite values serialize as null."""
        result = engine.analyze_pair([100.0, 101.0, 102.0], [50.0, 50.5, 51.2], "ETH", "BTC")
        payload = json_safe(result.to_dict())

        assert payload['stationarity']['half_life_bars'] is None
        json.dumps(payload, allow_nan=False)


class TestBaseOpportunity:
    """Test the base opportunity score."""

    def test_without_volatility(self):
        """0.45 * spread opportunity + 25 * |corr|."""
        score, spread_opportunity, method_average = calculate_base_opportunity(2.0, -0.8)
        assert spread_opportunity == pytest.approx(50.0)
        assert method_average == 0.0
        assert score == 43

    def test_zero_signal(self):
        """No divergence and no correlation scores 0."""
        assert calculate_base_opportunity(0.0, 0.0)[0] == 0


class TestAnalysisConfig:
    """Test configuration handling."""

    def test_config_hash_deterministic(self):
        """Equal configs hash equally; changes alter the hash."""
        assert AnalysisConfig().get_config_hash() == AnalysisConfig().get_config_hash()
        changed = AnalysisConfig(mean_reversion=MeanReversionConfig(rolling_beta_window=60))
        assert changed.get_config_hash() != AnalysisConfig().get_config_hash()
        assert len(AnalysisConfig().get_config_hash()) == 16

    def test_from_dict_partial(self):
        """Missing sections and keys keep their defaults."""
        config = AnalysisConfig.from_dict({'mean_reversion': {'rolling_beta_window': 80}})
        assert config.mean_reversion.rolling_beta_window == 80
        assert config.mean_reversion.rolling_beta_min_window == 40
        assert config.correlation_velocity.window == 50

    def test_round_trip(self):
        """to_dict / from_dict preserves the hash."""
        config = AnalysisConfig(reversion=None)
        assert AnalysisConfig.from_dict(config.to_dict()).get_config_hash() == config.get_config_hash()

    def test_validate_rejects_inverted_half_life(self):
        """Engine construction validates its config."""
        config = AnalysisConfig(
            mean_reversion=MeanReversionConfig(min_half_life_bars=50, max_half_life_bars=10)
        )
        with pytest.raises(ValueError):
            PairAnalysisEngine(config)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
