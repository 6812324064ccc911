"""
Tests for Reversion Probability

History labelling, bucket estimates, the fallback heuristic and
opportunity score recombination.
"""

from datetime import datetime, timedelta, timezone

import pytest

from spreadex.analysis.config import ReversionConfig
from spreadex.analysis.reversion import (
    HistoryReversionScorer,
    ReversionModel,
    apply_probability_scoring,
    bucket_keys,
    build_reversion_model,
    combine_opportunity_score,
    fallback_reversion_probability,
)
from spreadex.analysis.schemas import (
    HistoricalRecord,
    PairAnalysisResult,
    ReversionMethod,
    StationarityInfo,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _pair(z, tradable=True, symbol="ETH", correlation=0.8, base_score=60):
    return PairAnalysisResult(
        symbol=symbol,
        primary_symbol="BTC",
        spread_z_score=z,
        correlation=correlation,
        stationarity=StationarityInfo(is_tradable=tradable),
        base_opportunity_score=base_score,
    )


def _history(z_scores, interval="1h", primary="BTC", tradable=True):
    return [
        HistoricalRecord(
            timestamp=START + timedelta(hours=i),
            primary_pair=primary,
            interval=interval,
            results=(_pair(z, tradable),),
        )
        for i, z in enumerate(z_scores)
    ]


@pytest.fixture
def winning_history():
    """One signal that halves its divergence on the next snapshot"""
    return _history([2.5, 1.0])


class TestReversionModel:
    """Test history labelling."""

    def test_compression_counts_as_reversion(self, winning_history):
        """Halving |z| labels the signal reverted."""
        model = ReversionModel().fit(winning_history)
        estimate = model.estimate(_pair(2.5))

        assert model.labelled_signals == 1
        assert estimate.method == ReversionMethod.HISTORY
        assert estimate.wins == 1
        assert estimate.sample_size == 1
        assert estimate.probability == pytest.approx(2 / 3)

    def test_mean_cross_counts_as_reversion(self):
        """Crossing the mean labels the signal reverted."""
        model = ReversionModel().fit(_history([2.0, -1.9]))
        assert model.estimate(_pair(2.0)).wins == 1

    def test_incomplete_lookahead_is_unlabelled(self):
        """Without reversion or a full lookahead nothing is labelled."""
        model = ReversionModel().fit(_history([2.5, 2.4]))
        assert model.labelled_signals == 0
        assert model.estimate(_pair(2.5)) is None

    def test_full_lookahead_without_reversion_is_loss(self):
        """A signal that never reverts within the lookahead is a loss."""
        model = ReversionModel(ReversionConfig(lookahead_bars=2)).fit(_history([2.5, 2.4, 2.3]))
        estimate = model.estimate(_pair(2.5))

        assert model.labelled_signals == 1
        assert estimate.wins == 0
        assert estimate.probability == pytest.approx(1 / 3)

    def test_untradable_and_small_signals_ignored(self):
        """Only tradable signals beyond the entry z are labelled."""
        assert ReversionModel().fit(_history([2.5, 0.1], tradable=False)).labelled_signals == 0
        assert ReversionModel().fit(_history([1.0, 0.1])).labelled_signals == 0

    def test_specific_bucket_preferred_when_large_enough(self):
        """A bucket with min_sample_size samples wins over broader ones."""
        config = ReversionConfig(min_sample_size=2)
        model = ReversionModel(config).fit(_history([2.5, 1.0, 2.5, 1.0, -2.5, -2.4]))
        estimate = model.estimate(_pair(2.5))

        # Two short signals both reverted; the long one is unlabelled
        assert estimate.sample_size == 2
        assert estimate.wins == 2

    def test_bucket_keys(self):
        """Keys run from pair-specific to global."""
        keys = bucket_keys(_pair(-3.2, correlation=0.5))
        assert keys[0] == "pair:BTC|ETH|dir:long|z:extreme|corr:moderate"
        assert keys[-1] == "global"
        assert len(keys) == 6


class TestBuildReversionModel:
    """Test history scoping."""

    def test_scopes_by_primary_and_interval(self):
        """Other primaries and intervals are ignored."""
        history = (
            _history([2.5, 1.0], interval="5m")
            + _history([2.5, 1.0], primary="ALL_PAIRS")
            + _history([2.5, 1.0])
        )
        model = build_reversion_model(history, "BTC", "1h")
        assert model.labelled_signals == 1

    def test_sorts_chronologically(self, winning_history):
        """Reverse-ordered history is sorted before labelling."""
        model = build_reversion_model(list(reversed(winning_history)), "BTC", "1h")
        assert model.labelled_signals == 1
        assert model.estimate(_pair(2.5)).wins == 1


class TestScoring:
    """Test score recombination and the scorer."""

    def test_combine_opportunity_score(self):
        """Blend is 15% base and 85% probability, gated to 0."""
        assert combine_opportunity_score(50, 0.5, True) == 50
        assert combine_opportunity_score(100, 1.0, True) == 100
        assert combine_opportunity_score(50, 0.5, False) == 0

    def test_fallback_probability(self):
        """Heuristic components and clamping."""
        best = fallback_reversion_probability(3.0, 1.0, 0.0, True)
        assert best.probability == pytest.approx(0.95)
        assert best.method == ReversionMethod.FALLBACK
        assert best.sample_size == 0

        worst = fallback_reversion_probability(0.0, 0.0, 1.0, True)
        assert worst.probability == pytest.approx(0.05)

    def test_fallback_untradable_penalty(self):
        """Untradable pairs keep 15% of the estimate."""
        result = fallback_reversion_probability(3.0, 1.0, 0.0, False)
        assert result.probability == pytest.approx(0.95 * 0.15)

    def test_history_scorer(self, winning_history):
        """History estimate replaces the fallback and adds a note."""
        scorer = HistoryReversionScorer.from_history(winning_history, "BTC", "1h")
        scored = scorer.score(_pair(2.5, base_score=60))

        assert scored.reversion_probability.method == ReversionMethod.HISTORY
        assert scored.opportunity_score == 66
        assert scored.notes[-1].startswith("Historical edge: 67% reversion in 12 bars")

    def test_history_scorer_keeps_fallback(self):
        """Without a matching bucket the existing estimate is kept."""
        scorer = HistoryReversionScorer(ReversionModel())
        original = _pair(2.5)
        scored = scorer.score(original)

        assert scored.reversion_probability == original.reversion_probability
        assert scored.notes[-1].startswith("Estimated edge (fallback)")

    def test_history_scorer_respects_gate(self, winning_history):
        """Untradable results stay at 0."""
        scorer = HistoryReversionScorer.from_history(winning_history, "BTC", "1h")
        assert scorer.score(_pair(2.5, tradable=False)).opportunity_score == 0

    def test_apply_probability_scoring_sorts(self, winning_history):
        """Results are rescored and sorted best first."""
        scorer = HistoryReversionScorer.from_history(winning_history, "BTC", "1h")
        results = [
            _pair(2.5, tradable=False, symbol="SOL"),
            _pair(2.5, symbol="ETH", base_score=90),
            _pair(2.5, symbol="ADA", base_score=10),
        ]
        ranked = apply_probability_scoring(results, scorer)
        assert [r.symbol for r in ranked] == ["ETH", "ADA", "SOL"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
