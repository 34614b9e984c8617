"""Reconciliation activity for the payment reconciliation pipeline.

Runs the pure reconciliation engine on records and snapshots loaded by the
other activities. Results are memoized per snapshot block in a process-wide
ResolutionCache.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from temporalio import activity

from core.observability.tracking import track_activity
from models.chain import ChainSnapshot
from models.payments import PaymentAgreement
from reconciliation.engine import ResolutionCache
from reconciliation.timeline import next_installment_amount


_cache = ResolutionCache()


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ReconcilePaymentInput:
    """Input for reconcile_payment activity.

    Attributes:
        agreement: Serialized PaymentAgreement
        snapshot: Serialized ChainSnapshot of the agreement's contract
        now: Unix time to evaluate against (workflow time)
        children: Serialized batch child records
        child_snapshots: Serialized snapshots of the children's contracts
        cadence_seconds: Installment interval (None = configured default)
        preferred_lead_address: Beneficiary to list first in batch breakdowns
    """
    agreement: dict
    snapshot: Optional[dict]
    now: int
    children: List[dict] = field(default_factory=list)
    child_snapshots: List[dict] = field(default_factory=list)
    cadence_seconds: Optional[int] = None
    preferred_lead_address: Optional[str] = None


@dataclass
class ReconcilePaymentOutput:
    """Output from reconcile_payment activity.

    Attributes:
        agreement_id: Reconciled agreement
        rollup_status: Agreement-level status label
        timeline: Serialized AgreementTimeline
        progress: Installment counts per status
        next_amount: Amount of the next execution (None once completed)
    """
    agreement_id: str
    rollup_status: str
    timeline: dict
    progress: Dict[str, int] = field(default_factory=dict)
    next_amount: Optional[str] = None


# =============================================================================
# Activity Definition
# =============================================================================

@activity.defn
async def reconcile_payment(input: ReconcilePaymentInput) -> ReconcilePaymentOutput:
    """Reconcile one agreement into its installment timeline.

    Args:
        input: ReconcilePaymentInput with serialized records and snapshots

    Returns:
        ReconcilePaymentOutput with rollup status and serialized timeline
    """
    agreement = PaymentAgreement.model_validate(input.agreement)
    snapshot = ChainSnapshot.model_validate(input.snapshot) if input.snapshot else None
    children = [PaymentAgreement.model_validate(c) for c in input.children]
    child_snapshots = [ChainSnapshot.model_validate(s) for s in input.child_snapshots]

    with track_activity("reconcile_payment", agreement_id=agreement.id):
        activity.logger.info(f"Reconciling payment {agreement.id}")

        timeline = _cache.reconcile(
            agreement,
            snapshot,
            input.now,
            children=children,
            child_snapshots=child_snapshots,
            cadence_seconds=input.cadence_seconds,
            preferred_lead_address=input.preferred_lead_address,
        )

        executed = snapshot.executed_months if snapshot is not None else None
        next_amount = next_installment_amount(agreement, executed)

        activity.logger.info(
            f"Payment {agreement.id}: {timeline.rollup_status.value}, "
            f"{len(timeline.historical())}/{len(timeline.installments)} installments processed"
        )

        return ReconcilePaymentOutput(
            agreement_id=agreement.id,
            rollup_status=timeline.rollup_status.value,
            timeline=timeline.model_dump(mode="json"),
            progress=timeline.progress().model_dump(),
            next_amount=str(next_amount) if next_amount is not None else None,
        )
