"""
Metrics Collection for the Reconciliation Service

Collects and exposes metrics for:
- Reconciliation passes (by agreement kind, by rollup status)
- Installment statuses produced
- Chain read failures (per contract field)
- Record syncs written back to the record store
- Activity execution (started, completed, failed)
- Processing times (average, p95)

Metrics are kept in-memory; the worker process owns one collector.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class ReconciliationMetrics:
    """Counters for reconciliation passes."""
    passes: int = 0
    cache_hits: int = 0
    record_syncs: int = 0

    # "single", "recurring" or "batch"
    by_kind: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_rollup: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    installments_by_status: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class ChainReadMetrics:
    """Counters for chain snapshot reads."""
    snapshots: int = 0
    failed_fields: int = 0

    by_field: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class ActivityMetrics:
    """Metrics for activity execution."""
    started: int = 0
    completed: int = 0
    failed: int = 0

    by_name: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"started": 0, "completed": 0, "failed": 0}))


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_reconciliation("batch", "active", ["executed", "pending"])
        metrics.record_chain_read_failure("monthExecuted")
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.reconciliations = ReconciliationMetrics()
        self.chain_reads = ChainReadMetrics()
        self.activities = ActivityMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    # =========================================================================
    # Reconciliation Metrics
    # =========================================================================

    def record_reconciliation(self, kind: str, rollup_status: str, statuses: List[str], duration_ms: float = None):
        """Record one reconciliation pass and the statuses it produced."""
        with self._lock:
            self.reconciliations.passes += 1
            self.reconciliations.by_kind[kind] += 1
            self.reconciliations.by_rollup[rollup_status] += 1
            for status in statuses:
                self.reconciliations.installments_by_status[status] += 1

            if duration_ms is not None:
                self.timings.add_sample(duration_ms, f"reconcile.{kind}")

    def record_cache_hit(self):
        with self._lock:
            self.reconciliations.cache_hits += 1

    def record_record_sync(self):
        """Record a payment record patched to match its contract."""
        with self._lock:
            self.reconciliations.record_syncs += 1

    # =========================================================================
    # Chain Read Metrics
    # =========================================================================

    def record_snapshot_read(self, duration_ms: float = None):
        """Record a completed (possibly partial) snapshot read."""
        with self._lock:
            self.chain_reads.snapshots += 1
            if duration_ms is not None:
                self.timings.add_sample(duration_ms, "chain.snapshot")

    def record_chain_read_failure(self, field_name: str):
        """Record a single contract field that could not be read."""
        with self._lock:
            self.chain_reads.failed_fields += 1
            self.chain_reads.by_field[field_name] += 1

    # =========================================================================
    # Activity Metrics
    # =========================================================================

    def record_activity_started(self, activity_name: str):
        """Record an activity start."""
        with self._lock:
            self.activities.started += 1
            self.activities.by_name[activity_name]["started"] += 1

    def record_activity_completed(self, activity_name: str, duration_ms: float = None):
        """Record an activity completion."""
        with self._lock:
            self.activities.completed += 1
            self.activities.by_name[activity_name]["completed"] += 1

            if duration_ms:
                self.timings.add_sample(duration_ms, f"activity.{activity_name}")

    def record_activity_failed(self, activity_name: str):
        """Record an activity failure."""
        with self._lock:
            self.activities.failed += 1
            self.activities.by_name[activity_name]["failed"] += 1

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "reconciliations": {
                    "passes": self.reconciliations.passes,
                    "cache_hits": self.reconciliations.cache_hits,
                    "record_syncs": self.reconciliations.record_syncs,
                    "by_kind": dict(self.reconciliations.by_kind),
                    "by_rollup": dict(self.reconciliations.by_rollup),
                    "installments_by_status": dict(self.reconciliations.installments_by_status),
                },
                "chain_reads": {
                    "snapshots": self.chain_reads.snapshots,
                    "failed_fields": self.chain_reads.failed_fields,
                    "by_field": dict(self.chain_reads.by_field),
                },
                "activities": {
                    "started": self.activities.started,
                    "completed": self.activities.completed,
                    "failed": self.activities.failed,
                    "by_name": dict(self.activities.by_name),
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_reconciliation(kind: str, rollup_status: str, statuses: List[str], duration_ms: float = None):
    """Record one reconciliation pass."""
    get_metrics().record_reconciliation(kind, rollup_status, statuses, duration_ms)


def record_chain_read_failure(field_name: str):
    """Record a contract field read failure."""
    get_metrics().record_chain_read_failure(field_name)


def record_activity_started(activity_name: str):
    """Record an activity start."""
    get_metrics().record_activity_started(activity_name)


def record_activity_completed(activity_name: str, duration_ms: float = None):
    """Record an activity completion."""
    get_metrics().record_activity_completed(activity_name, duration_ms)


def record_activity_failed(activity_name: str):
    """Record an activity failure."""
    get_metrics().record_activity_failed(activity_name)


def record_processing_time(stage: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(stage, duration_ms)
