"""
Reversion Probability

Estimates the probability that a pair's current spread divergence reverts
within a fixed number of bars.

Two sources:
- Fallback heuristic blending z-strength, correlation strength and a
  volatility penalty (always available)
- History model built from saved scan snapshots, labelling each past
  signal as reverted or not (used when a scorer is supplied)

The final opportunity score blends the statistical base score with the
probability and is forced to 0 for pairs failing the stationarity gate.
"""

from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Protocol, Sequence
import logging

from .config import ReversionConfig
from .schemas import (
    HistoricalRecord,
    PairAnalysisResult,
    ReversionMethod,
    ReversionProbability,
)
from .statistics import clamp, round_half_up

LOG = logging.getLogger(__name__)

# Blend weights for the final opportunity score
BASE_SCORE_WEIGHT = 0.15
PROBABILITY_WEIGHT = 0.85

# Probability multiplier for pairs failing the stationarity gate
UNTRADABLE_PENALTY = 0.15

ALL_PAIRS_PRIMARY = "ALL_PAIRS"


def combine_opportunity_score(base_score: float, probability: float, is_tradable: bool) -> int:
    """round(base*0.15 + probability*100*0.85), 0 when not tradable"""
    if not is_tradable:
        return 0
    score = round_half_up(base_score * BASE_SCORE_WEIGHT + probability * 100 * PROBABILITY_WEIGHT)
    return int(clamp(score, 0, 100))


def fallback_reversion_probability(
    spread_z_score: float,
    correlation: float,
    combined_volatility: float,
    is_tradable: bool,
    lookahead_bars: int = 12
) -> ReversionProbability:
    """
    Heuristic reversion probability when no history is available.

    Larger divergence and stronger correlation raise the estimate, high
    leg volatility lowers it. Pairs failing the stationarity gate keep
    only 15% of the estimate.
    """
    z_strength = min(abs(spread_z_score) / 3.0, 1.0)
    volatility_penalty = min(max(combined_volatility, 0.0) * 5.0, 0.3)

    probability = 0.35 + 0.35 * z_strength + 0.25 * min(abs(correlation), 1.0) - volatility_penalty
    probability = clamp(probability, 0.05, 0.95)
    if not is_tradable:
        probability *= UNTRADABLE_PENALTY

    return ReversionProbability(
        probability=probability,
        lookahead_bars=lookahead_bars,
        sample_size=0,
        wins=0,
        method=ReversionMethod.FALLBACK,
    )


class ReversionScorer(Protocol):
    """Collaborator that rescores a pair analysis with a better probability"""

    def score(self, result: PairAnalysisResult) -> PairAnalysisResult:
        ...


# ========================================
# HISTORY MODEL
# ========================================

@dataclass
class _Counter:
    wins: int = 0
    total: int = 0

    @property
    def probability(self) -> float:
        # Laplace smoothing avoids hard 0%/100% with sparse labels
        return (self.wins + 1) / (self.total + 2)


def _direction(z: float) -> str:
    return "short" if z >= 0 else "long"


def _z_bucket(z: float) -> str:
    abs_z = abs(z)
    if abs_z >= 3:
        return "extreme"
    if abs_z >= 2:
        return "high"
    return "medium"


def _correlation_bucket(correlation: float) -> str:
    abs_corr = abs(correlation)
    if abs_corr >= 0.7:
        return "strong"
    if abs_corr >= 0.4:
        return "moderate"
    return "weak"


def bucket_keys(result: PairAnalysisResult) -> List[str]:
    """Counter keys from most to least specific"""
    direction = _direction(result.spread_z_score)
    z_bucket = _z_bucket(result.spread_z_score)
    corr_bucket = _correlation_bucket(result.correlation)
    pair_id = result.pair_key

    return [
        f"pair:{pair_id}|dir:{direction}|z:{z_bucket}|corr:{corr_bucket}",
        f"pair:{pair_id}|dir:{direction}",
        f"primary:{result.primary_symbol}|symbol:{result.symbol}|dir:{direction}",
        f"dir:{direction}|z:{z_bucket}|corr:{corr_bucket}",
        f"dir:{direction}",
        "global",
    ]


def _is_reverted(entry_z: float, future_z: float, exit_z_score: float) -> bool:
    crossed_mean = _direction(entry_z) != _direction(future_z)
    normalized = abs(future_z) <= exit_z_score
    compressed = abs(future_z) <= abs(entry_z) * 0.5
    return crossed_mean or normalized or compressed


class ReversionModel:
    """
    Empirical reversion rates from labelled historical signals.

    Built once from a history, then queried per pair via estimate().
    """

    def __init__(self, config: Optional[ReversionConfig] = None):
        self.config = config or ReversionConfig()
        self.counters: Dict[str, _Counter] = defaultdict(_Counter)
        self.labelled_signals = 0

    def fit(self, records: Sequence[HistoricalRecord]) -> 'ReversionModel':
        """
        Label every tradable signal in chronologically ordered records.

        A signal is labelled reverted as soon as a later snapshot of the
        same pair crosses the mean, normalizes or halves its divergence.
        Signals with neither a reversion nor a full lookahead of future
        snapshots stay unlabelled.
        """
        lookahead = self.config.lookahead_bars

        for i, record in enumerate(records):
            for entry in record.results:
                if not entry.stationarity.is_tradable:
                    continue
                if abs(entry.spread_z_score) < self.config.entry_z_score:
                    continue

                seen = 0
                reverted = False
                for future_record in records[i + 1:]:
                    if seen >= lookahead:
                        break
                    future = _find_pair(future_record, entry)
                    if future is None:
                        continue
                    seen += 1
                    if _is_reverted(entry.spread_z_score, future.spread_z_score,
                                    self.config.exit_z_score):
                        reverted = True
                        break

                if not reverted and seen < lookahead:
                    continue

                self.labelled_signals += 1
                for key in bucket_keys(entry):
                    counter = self.counters[key]
                    counter.total += 1
                    if reverted:
                        counter.wins += 1

        LOG.debug(f"Reversion model fitted: {self.labelled_signals} labelled signals, "
                  f"{len(self.counters)} buckets")
        return self

    def estimate(self, result: PairAnalysisResult) -> Optional[ReversionProbability]:
        """
        Probability from the most specific bucket with enough samples.

        Falls back to the largest non-empty bucket; None when no bucket
        matches at all.
        """
        best = None
        for key in bucket_keys(result):
            counter = self.counters.get(key)
            if counter is None:
                continue
            if counter.total >= self.config.min_sample_size:
                best = counter
                break
            if best is None or counter.total > best.total:
                best = counter

        if best is None or best.total == 0:
            return None

        return ReversionProbability(
            probability=best.probability,
            lookahead_bars=self.config.lookahead_bars,
            sample_size=best.total,
            wins=best.wins,
            method=ReversionMethod.HISTORY,
        )


def _find_pair(record: HistoricalRecord, entry: PairAnalysisResult) -> Optional[PairAnalysisResult]:
    for candidate in record.results:
        if candidate.symbol == entry.symbol and candidate.primary_symbol == entry.primary_symbol:
            return candidate
    return None


def build_reversion_model(
    history: Iterable[HistoricalRecord],
    primary_pair: str,
    interval: str,
    config: Optional[ReversionConfig] = None
) -> ReversionModel:
    """
    Fit a reversion model on the history of one primary at one interval.

    Args:
        history: Saved scan snapshots, any order
        primary_pair: Primary symbol (or ALL_PAIRS_PRIMARY) to scope to
        interval: Bar interval to scope to
        config: Labelling options (uses defaults if None)

    Returns:
        Fitted ReversionModel
    """
    scoped = sorted(
        (r for r in history if r.primary_pair == primary_pair and r.interval == interval),
        key=lambda r: r.timestamp,
    )
    return ReversionModel(config).fit(scoped)


def probability_note(estimate: ReversionProbability) -> str:
    label = (f"{round_half_up(estimate.probability * 100)}% reversion in "
             f"{estimate.lookahead_bars} bars")
    if estimate.method == ReversionMethod.HISTORY:
        return f"Historical edge: {label} ({estimate.wins}/{estimate.sample_size} labeled samples)."
    return f"Estimated edge (fallback): {label}."


class HistoryReversionScorer:
    """
    ReversionScorer backed by a fitted ReversionModel.

    Keeps the result's existing (fallback) estimate when the model has no
    matching bucket, then recombines the opportunity score and appends a
    provenance note.
    """

    def __init__(self, model: ReversionModel):
        self.model = model

    @classmethod
    def from_history(
        cls,
        history: Iterable[HistoricalRecord],
        primary_pair: str,
        interval: str,
        config: Optional[ReversionConfig] = None
    ) -> 'HistoryReversionScorer':
        return cls(build_reversion_model(history, primary_pair, interval, config))

    def score(self, result: PairAnalysisResult) -> PairAnalysisResult:
        estimate = self.model.estimate(result) or result.reversion_probability
        opportunity = combine_opportunity_score(
            result.base_opportunity_score,
            estimate.probability,
            result.stationarity.is_tradable,
        )
        return replace(
            result,
            reversion_probability=estimate,
            opportunity_score=opportunity,
            notes=result.notes + (probability_note(estimate),),
        )


def apply_probability_scoring(
    results: Sequence[PairAnalysisResult],
    scorer: ReversionScorer
) -> List[PairAnalysisResult]:
    """Rescore every result and sort by opportunity score, best first"""
    rescored = [scorer.score(r) for r in results]
    return sorted(rescored, key=lambda r: r.opportunity_score, reverse=True)
