"""
Observability Module for the Reconciliation Service

Provides:
- Structured logging with correlation IDs
- Metrics collection (reconciliation passes, chain reads, processing times)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_reconciliation,
    record_chain_read_failure,
    record_activity_started,
    record_activity_completed,
    record_activity_failed,
    record_processing_time,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

from core.observability.tracking import track_activity

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_reconciliation",
    "record_chain_read_failure",
    "record_activity_started",
    "record_activity_completed",
    "record_activity_failed",
    "record_processing_time",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    # Activities
    "track_activity",
]
