"""
Pair Analysis Health Monitor

Tracks analysis volume, stationarity gate outcomes, processing times and
per-pair status for the analysis API.
"""

import threading
import time
from datetime import datetime
from typing import Dict, List, Optional
from dataclasses import dataclass, field
from collections import deque
import logging
import json

from .schemas import PairAnalysisResult

LOG = logging.getLogger(__name__)


@dataclass
class AnalysisMetrics:
    """Counters for analysis outcomes"""
    total_analyses: int = 0
    tradable_results: int = 0
    gated_results: int = 0
    insufficient_data: int = 0
    errors: int = 0

    # Gate failure breakdown
    adf_failures: int = 0
    cointegration_failures: int = 0
    half_life_failures: int = 0

    # Performance metrics
    avg_processing_time_ms: float = 0.0
    max_processing_time_ms: float = 0.0
    min_processing_time_ms: float = float('inf')

    # Quality metrics
    avg_abs_z_score: float = 0.0
    avg_opportunity_score: float = 0.0

    def record_time(self, elapsed_ms: float):
        n = self.total_analyses + self.errors
        self.avg_processing_time_ms = (
            (self.avg_processing_time_ms * (n - 1) + elapsed_ms) / n
        )
        self.max_processing_time_ms = max(self.max_processing_time_ms, elapsed_ms)
        self.min_processing_time_ms = min(self.min_processing_time_ms, elapsed_ms)

    def record_result(self, result: PairAnalysisResult):
        """Fold one result into the counters (total_analyses already incremented)"""
        n = self.total_analyses
        stationarity = result.stationarity

        if result.aligned_bars < 2:
            self.insufficient_data += 1

        if stationarity.is_tradable:
            self.tradable_results += 1
        else:
            self.gated_results += 1
            self.adf_failures += int(not stationarity.adf_passed)
            self.cointegration_failures += int(not stationarity.cointegration_passed)
            self.half_life_failures += int(not stationarity.half_life_passed)

        self.avg_abs_z_score = (self.avg_abs_z_score * (n - 1) + abs(result.spread_z_score)) / n
        self.avg_opportunity_score = (
            (self.avg_opportunity_score * (n - 1) + result.opportunity_score) / n
        )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'total_analyses': self.total_analyses,
            'tradable_results': self.tradable_results,
            'gated_results': self.gated_results,
            'tradable_rate': self.tradable_results / max(1, self.total_analyses),
            'insufficient_data': self.insufficient_data,
            'errors': self.errors,
            'adf_failures': self.adf_failures,
            'cointegration_failures': self.cointegration_failures,
            'half_life_failures': self.half_life_failures,
            'avg_processing_time_ms': self.avg_processing_time_ms,
            'max_processing_time_ms': self.max_processing_time_ms,
            'min_processing_time_ms': self.min_processing_time_ms if self.min_processing_time_ms != float('inf') else 0.0,
            'avg_abs_z_score': self.avg_abs_z_score,
            'avg_opportunity_score': self.avg_opportunity_score,
        }


@dataclass
class PairHealth:
    """Health status for a single pair"""
    pair_key: str
    last_analysis_time: Optional[datetime] = None
    consecutive_gated: int = 0
    metrics: AnalysisMetrics = field(default_factory=AnalysisMetrics)
    recent_gated: deque = field(default_factory=lambda: deque(maxlen=10))

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'pair_key': self.pair_key,
            'last_analysis_time': self.last_analysis_time.isoformat() if self.last_analysis_time else None,
            'consecutive_gated': self.consecutive_gated,
            'metrics': self.metrics.to_dict(),
            'recent_gated': list(self.recent_gated),
        }


def gate_failure_reasons(result: PairAnalysisResult) -> List[str]:
    """Human-readable reasons a result failed the stationarity gate"""
    s = result.stationarity
    reasons = []
    if result.aligned_bars < 2:
        return ["Insufficient aligned data"]
    if not s.adf_passed:
        reasons.append(f"ADF not stationary: t={s.adf_t_stat:.3f} >= {s.adf_critical_value}")
    if not s.cointegration_passed:
        reasons.append(f"Not cointegrated: t={s.cointegration_t_stat:.3f} >= "
                       f"{s.cointegration_critical_value}")
    if not s.half_life_passed:
        reasons.append(f"Half-life out of range: {s.half_life_bars:.2f} bars")
    return reasons


class AnalysisHealthMonitor:
    """
    Health monitoring for the pair analysis service.

    Tracks:
        - Stationarity gate pass/fail rates
        - Processing times
        - Signal quality averages
        - Per-pair health status
        - Service uptime

    Thread-safe: sync API handlers record from the server threadpool.
    """

    def __init__(self):
        """Initialize health monitor"""
        self._lock = threading.RLock()
        self.start_time = datetime.now()
        self.pair_health: Dict[str, PairHealth] = {}
        self.global_metrics = AnalysisMetrics()

        # Recent analysis history (last 100)
        self.recent_analyses: deque = deque(maxlen=100)

        LOG.info("Analysis Health Monitor initialized")

    def record_analysis_start(self, pair_key: str) -> float:
        """
        Record start of an analysis.

        Args:
            pair_key: "PRIMARY|SYMBOL"

        Returns:
            Start time (for elapsed calculation)
        """
        with self._lock:
            if pair_key not in self.pair_health:
                self.pair_health[pair_key] = PairHealth(pair_key=pair_key)

        return time.time()

    def record_analysis(self, start_time: float, result: PairAnalysisResult):
        """
        Record a completed analysis.

        Args:
            start_time: Value returned by record_analysis_start()
            result: Analysis result
        """
        elapsed_ms = (time.time() - start_time) * 1000
        pair_key = result.pair_key

        entry = {
            'pair_key': pair_key,
            'timestamp': datetime.now().isoformat(),
            'tradable': result.stationarity.is_tradable,
            'opportunity_score': result.opportunity_score,
            'elapsed_ms': elapsed_ms,
        }

        with self._lock:
            health = self.pair_health.setdefault(pair_key, PairHealth(pair_key=pair_key))
            health.last_analysis_time = datetime.now()

            for metrics in (health.metrics, self.global_metrics):
                metrics.total_analyses += 1
                metrics.record_time(elapsed_ms)
                metrics.record_result(result)

            if result.stationarity.is_tradable:
                health.consecutive_gated = 0
            else:
                health.consecutive_gated += 1
                reasons = gate_failure_reasons(result)
                health.recent_gated.append({
                    'timestamp': datetime.now().isoformat(),
                    'reasons': reasons,
                })
                entry['reasons'] = reasons

            self.recent_analyses.append(entry)

        LOG.debug(f"Analysis recorded: {pair_key} ({elapsed_ms:.2f}ms)")

    def record_analysis_error(self, pair_key: str, start_time: float, error: str):
        """Record an analysis that raised before producing a result"""
        elapsed_ms = (time.time() - start_time) * 1000

        with self._lock:
            health = self.pair_health.setdefault(pair_key, PairHealth(pair_key=pair_key))
            health.last_analysis_time = datetime.now()

            for metrics in (health.metrics, self.global_metrics):
                metrics.errors += 1
                metrics.record_time(elapsed_ms)

            self.recent_analyses.append({
                'pair_key': pair_key,
                'timestamp': datetime.now().isoformat(),
                'error': error,
                'elapsed_ms': elapsed_ms,
            })

        LOG.warning(f"Analysis error: {pair_key} - {error}")

    def get_health_status(self) -> Dict:
        """
        Get overall health status.

        Returns:
            Health status dictionary
        """
        with self._lock:
            uptime = (datetime.now() - self.start_time).total_seconds()
            attempts = self.global_metrics.total_analyses + self.global_metrics.errors
            error_rate = self.global_metrics.errors / max(1, attempts)

            if error_rate <= 0.05:
                status = "HEALTHY"
            elif error_rate <= 0.25:
                status = "DEGRADED"
            else:
                status = "UNHEALTHY"

            return {
                'status': status,
                'uptime_seconds': uptime,
                'global_metrics': self.global_metrics.to_dict(),
                'pairs_tracked': len(self.pair_health),
                'persistently_gated_pairs': sum(
                    1 for h in self.pair_health.values() if h.consecutive_gated >= 5
                ),
                'recent_analyses_count': len(self.recent_analyses),
                'error_rate': error_rate,
            }

    def get_pair_health(self, pair_key: str) -> Optional[Dict]:
        """Health for one pair, None if never analyzed"""
        with self._lock:
            if pair_key not in self.pair_health:
                return None
            return self.pair_health[pair_key].to_dict()

    def get_symbol_health(self, symbol: str) -> Dict[str, Dict]:
        """Health for every tracked pair containing symbol on either leg"""
        with self._lock:
            return {
                key: health.to_dict()
                for key, health in self.pair_health.items()
                if symbol in key.split('|')
            }

    def get_recent_analyses(self, limit: int = 20) -> List[Dict]:
        with self._lock:
            return list(self.recent_analyses)[-limit:]

    def export_health_report(self, filepath: str):
        """
        Export health report to JSON file.

        Args:
            filepath: Path to save report
        """
        with self._lock:
            report = {
                'timestamp': datetime.now().isoformat(),
                'health_status': self.get_health_status(),
                'pair_health': {k: h.to_dict() for k, h in self.pair_health.items()},
                'recent_analyses': self.get_recent_analyses(50),
            }

        with open(filepath, 'w') as f:
            json.dump(report, f, indent=2)

        LOG.info(f"Health report exported to {filepath}")

    def reset_metrics(self):
        """Reset all metrics"""
        with self._lock:
            self.pair_health.clear()
            self.global_metrics = AnalysisMetrics()
            self.recent_analyses.clear()
            self.start_time = datetime.now()

        LOG.info("Health metrics reset")
