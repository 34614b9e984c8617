"""Activity definitions module."""

from activities.chain import (
    fetch_snapshots,
    configure_chain_reader,
    FetchSnapshotsInput,
    FetchSnapshotsOutput,
)
from activities.records import (
    load_agreement,
    apply_record_sync,
    configure_record_store,
    LoadAgreementInput,
    LoadAgreementOutput,
    ApplyRecordSyncInput,
    ApplyRecordSyncOutput,
)
from activities.reconcile import (
    reconcile_payment,
    ReconcilePaymentInput,
    ReconcilePaymentOutput,
)

ALL_ACTIVITIES = [
    load_agreement,
    fetch_snapshots,
    reconcile_payment,
    apply_record_sync,
]

__all__ = [
    # Chain activities
    "fetch_snapshots",
    "configure_chain_reader",
    "FetchSnapshotsInput",
    "FetchSnapshotsOutput",
    # Record activities
    "load_agreement",
    "apply_record_sync",
    "configure_record_store",
    "LoadAgreementInput",
    "LoadAgreementOutput",
    "ApplyRecordSyncInput",
    "ApplyRecordSyncOutput",
    # Reconcile activities
    "reconcile_payment",
    "ReconcilePaymentInput",
    "ReconcilePaymentOutput",
    "ALL_ACTIVITIES",
]
