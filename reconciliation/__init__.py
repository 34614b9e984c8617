"""Payment status reconciliation.

Merges keeper DB records, contract flags/counters and contract event logs
into one authoritative status per installment.

Usage:
    from reconciliation import reconcile_agreement

    timeline = reconcile_agreement(agreement, snapshot, now=int(time.time()))
    for installment in timeline.historical():
        print(installment.month_number, installment.status.value)
"""

from reconciliation.batch import (
    ShapeMismatchError,
    aggregate,
    aggregate_index,
    batch_rollup_status,
)
from reconciliation.engine import (
    ResolutionCache,
    agreement_kind,
    cache_key,
    reconcile_agreement,
)
from reconciliation.indexing import (
    db_statuses_by_index,
    events_by_index,
    infer_index_base,
)
from reconciliation.resolver import (
    resolve,
    resolve_single,
    rollup_status,
)
from reconciliation.sync import RecordPatch, plan_record_sync
from reconciliation.timeline import (
    expand,
    installment_amount,
    next_installment_amount,
)

__all__ = [
    # Resolver
    "resolve",
    "resolve_single",
    "rollup_status",
    # Batch
    "ShapeMismatchError",
    "aggregate",
    "aggregate_index",
    "batch_rollup_status",
    # Timeline
    "expand",
    "installment_amount",
    "next_installment_amount",
    # Indexing
    "db_statuses_by_index",
    "events_by_index",
    "infer_index_base",
    # Engine
    "ResolutionCache",
    "agreement_kind",
    "cache_key",
    "reconcile_agreement",
    # Sync
    "RecordPatch",
    "plan_record_sync",
]
