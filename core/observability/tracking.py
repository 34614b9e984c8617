"""Activity tracking: correlation, start/complete/error logs and metrics in one scope."""

import time
from contextlib import contextmanager

from core.observability.logging import (
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)
from core.observability.metrics import (
    record_activity_completed,
    record_activity_failed,
    record_activity_started,
)


@contextmanager
def track_activity(activity_name: str, **correlation):
    """
    Wrap an activity body.

    Usage:
        with track_activity("load_agreement", agreement_id=input.agreement_id):
            ...
    """
    started = time.perf_counter()
    with with_correlation(activity_name=activity_name, **correlation):
        log_activity_start(activity_name)
        record_activity_started(activity_name)
        try:
            yield
        except Exception as e:
            log_activity_error(activity_name, f"{type(e).__name__}: {e}")
            record_activity_failed(activity_name)
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        log_activity_complete(activity_name, duration_ms=round(duration_ms, 1))
        record_activity_completed(activity_name, duration_ms)
