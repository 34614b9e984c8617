"""Record store activities for the payment reconciliation pipeline.

Load agreement records (and batch children) and write sync patches back.
The store is created lazily from settings; call `configure_record_store` to
inject one (local runs, tests).
"""

from dataclasses import dataclass, field
from typing import List, Optional

from temporalio import activity

from connectors.record_store import RecordNotFoundError, RecordStore, SupabaseRecordStore
from core.config import get_cadence_seconds, load_settings
from core.observability.metrics import get_metrics
from core.observability.tracking import track_activity
from models.chain import ChainSnapshot
from models.payments import PaymentAgreement
from reconciliation.engine import agreement_kind, is_recurring_payment
from reconciliation.sync import plan_record_sync


_record_store: Optional[RecordStore] = None


def configure_record_store(store: Optional[RecordStore]) -> None:
    """Use `store` for every record activity in this process (None resets)."""
    global _record_store
    _record_store = store


def get_record_store() -> RecordStore:
    global _record_store
    if _record_store is None:
        _record_store = SupabaseRecordStore.from_settings(load_settings())
    return _record_store


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class LoadAgreementInput:
    """Input for load_agreement activity.

    Attributes:
        agreement_id: Payment record to load
        include_children: Also load batch child records
    """
    agreement_id: str
    include_children: bool = True


@dataclass
class LoadAgreementOutput:
    """Output from load_agreement activity.

    Attributes:
        agreement: Serialized PaymentAgreement (record column names)
        children: Serialized batch child records
        kind: "batch", "recurring" or "single"
        recurring: Installment schedule (false for single payments and batch singles)
    """
    agreement: dict
    children: List[dict] = field(default_factory=list)
    kind: str = "single"
    recurring: bool = False


@dataclass
class ApplyRecordSyncInput:
    """Input for apply_record_sync activity.

    Attributes:
        agreement: Serialized PaymentAgreement
        snapshot: Serialized ChainSnapshot of its contract
        cadence_seconds: Installment interval (None = configured default)
        dry_run: Plan only, do not write
    """
    agreement: dict
    snapshot: Optional[dict] = None
    cadence_seconds: Optional[int] = None
    dry_run: bool = False


@dataclass
class ApplyRecordSyncOutput:
    """Output from apply_record_sync activity."""
    agreement_id: str
    updated: bool
    patch: Optional[dict] = None


def serialize_agreement(agreement: PaymentAgreement) -> dict:
    return agreement.model_dump(mode="json", by_alias=True)


# =============================================================================
# Activity Definitions
# =============================================================================

@activity.defn
async def load_agreement(input: LoadAgreementInput) -> LoadAgreementOutput:
    """Load an agreement and, for batches, its per-beneficiary children.

    Raises:
        RecordNotFoundError: unknown agreement id (not retried)
    """
    with track_activity("load_agreement", agreement_id=input.agreement_id):
        activity.logger.info(f"Loading payment record {input.agreement_id}")
        store = get_record_store()

        try:
            agreement = await store.get_agreement(input.agreement_id)
        except RecordNotFoundError:
            activity.logger.error(f"Payment record not found: {input.agreement_id}")
            raise

        children: List[PaymentAgreement] = []
        if input.include_children and agreement.batch:
            children = await store.get_children(agreement)
            activity.logger.info(f"Loaded {len(children)} batch child records")

        kind = agreement_kind(agreement)
        recurring = kind == "recurring" or (kind == "batch" and is_recurring_payment(agreement, children))

        return LoadAgreementOutput(
            agreement=serialize_agreement(agreement),
            children=[serialize_agreement(child) for child in children],
            kind=kind,
            recurring=recurring,
        )


@activity.defn
async def apply_record_sync(input: ApplyRecordSyncInput) -> ApplyRecordSyncOutput:
    """Align a recurring payment record's counter and status with its contract."""
    agreement = PaymentAgreement.model_validate(input.agreement)
    snapshot = ChainSnapshot.model_validate(input.snapshot) if input.snapshot else None

    with track_activity("apply_record_sync", agreement_id=agreement.id):
        cadence = input.cadence_seconds if input.cadence_seconds is not None else get_cadence_seconds()
        patch = plan_record_sync(agreement, snapshot, cadence)
        if patch is None:
            activity.logger.info(f"Record {agreement.id} already matches the contract")
            return ApplyRecordSyncOutput(agreement_id=agreement.id, updated=False)

        activity.logger.info(f"Record {agreement.id} differs from the contract: {patch.reasons}")
        if input.dry_run:
            return ApplyRecordSyncOutput(agreement_id=agreement.id, updated=False, patch=patch.to_dict())

        await get_record_store().update_agreement(agreement.id, patch.to_update())
        get_metrics().record_record_sync()
        return ApplyRecordSyncOutput(agreement_id=agreement.id, updated=True, patch=patch.to_dict())
