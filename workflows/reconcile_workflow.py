"""
Payment Reconciliation Workflow

Per-agreement workflow that orchestrates:
LOAD_RECORDS -> READ_CHAIN -> RECONCILE -> SYNC_RECORD (optional)

Chain reads for a batch parent and its child contracts run concurrently. A
contract that cannot be read degrades to an empty snapshot; reconciliation
then falls back on the stored record.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.chain import FetchSnapshotsInput, fetch_snapshots
    from activities.reconcile import ReconcilePaymentInput, reconcile_payment
    from activities.records import (
        ApplyRecordSyncInput,
        LoadAgreementInput,
        apply_record_sync,
        load_agreement,
    )


class ReconcileStage(str, Enum):
    """Stages of the reconciliation workflow."""
    LOAD_RECORDS = "LOAD_RECORDS"
    READ_CHAIN = "READ_CHAIN"
    RECONCILE = "RECONCILE"
    SYNC_RECORD = "SYNC_RECORD"
    DONE = "DONE"


@dataclass
class ReconcileWorkflowInput:
    """Input for the payment reconciliation workflow.

    Attributes:
        agreement_id: Payment record to reconcile
        sync_record: Write counter/status corrections back to the record store
        dry_run: Plan corrections without writing them
        cadence_seconds: Installment interval (None = configured default)
        preferred_lead_address: Beneficiary to list first in batch breakdowns
    """
    agreement_id: str
    sync_record: bool = False
    dry_run: bool = False
    cadence_seconds: Optional[int] = None
    preferred_lead_address: Optional[str] = None


@dataclass
class ReconcileWorkflowOutput:
    """Output from the payment reconciliation workflow."""
    agreement_id: str
    kind: str
    rollup_status: str
    timeline: Dict[str, Any]
    progress: Dict[str, int] = field(default_factory=dict)
    next_amount: Optional[str] = None
    incomplete_snapshots: List[str] = field(default_factory=list)
    record_patch: Optional[Dict[str, Any]] = None
    record_updated: bool = False


@workflow.defn
class ReconcilePaymentWorkflow:
    """Reconcile one payment agreement against its contract(s)."""

    def __init__(self):
        self.stage = ReconcileStage.LOAD_RECORDS

    @workflow.query
    def current_stage(self) -> str:
        return self.stage.value

    @workflow.run
    async def run(self, input: ReconcileWorkflowInput) -> ReconcileWorkflowOutput:
        """Execute the reconciliation workflow."""
        workflow.logger.info(f"Starting reconciliation for payment {input.agreement_id}")

        # Record store calls: retried, except for missing/malformed records
        store_options = {
            "start_to_close_timeout": timedelta(seconds=30),
            "retry_policy": RetryPolicy(
                maximum_attempts=5,
                initial_interval=timedelta(seconds=1),
                maximum_interval=timedelta(seconds=30),
                backoff_coefficient=2.0,
                non_retryable_error_types=["RecordNotFoundError", "ValidationError"],
            ),
        }

        # Chain reads degrade per field and rarely raise
        chain_options = {
            "start_to_close_timeout": timedelta(minutes=2),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=2),
                backoff_coefficient=2.0,
            ),
        }

        # Pure computation: a failure here is a bug, retrying will not help
        compute_options = {
            "start_to_close_timeout": timedelta(seconds=30),
            "retry_policy": RetryPolicy(
                maximum_attempts=2,
                non_retryable_error_types=["ValidationError", "ShapeMismatchError"],
            ),
        }

        # =====================================================================
        # Stage: LOAD_RECORDS
        # =====================================================================
        loaded = await workflow.execute_activity(
            load_agreement,
            LoadAgreementInput(agreement_id=input.agreement_id),
            **store_options,
        )
        agreement = loaded.agreement
        recurring = loaded.recurring

        # =====================================================================
        # Stage: READ_CHAIN
        # =====================================================================
        self.stage = ReconcileStage.READ_CHAIN
        parent_address = agreement.get("contract_address")
        child_addresses = []
        for child in loaded.children:
            address = child.get("contract_address")
            if address and address.lower() != (parent_address or "").lower() and address not in child_addresses:
                child_addresses.append(address)

        reads = []
        if parent_address:
            reads.append(workflow.execute_activity(
                fetch_snapshots,
                FetchSnapshotsInput(contract_addresses=[parent_address], recurring=recurring),
                **chain_options,
            ))
        if child_addresses:
            reads.append(workflow.execute_activity(
                fetch_snapshots,
                FetchSnapshotsInput(contract_addresses=child_addresses, recurring=recurring),
                **chain_options,
            ))
        results = await asyncio.gather(*reads)

        snapshot = None
        child_snapshots: List[dict] = []
        incomplete: List[str] = []
        for position, result in enumerate(results):
            incomplete.extend(result.incomplete)
            if position == 0 and parent_address:
                snapshot = result.snapshots[0] if result.snapshots else None
            else:
                child_snapshots.extend(result.snapshots)

        # =====================================================================
        # Stage: RECONCILE
        # =====================================================================
        self.stage = ReconcileStage.RECONCILE
        reconciled = await workflow.execute_activity(
            reconcile_payment,
            ReconcilePaymentInput(
                agreement=agreement,
                snapshot=snapshot,
                now=int(workflow.now().timestamp()),
                children=loaded.children,
                child_snapshots=child_snapshots,
                cadence_seconds=input.cadence_seconds,
                preferred_lead_address=input.preferred_lead_address,
            ),
            **compute_options,
        )

        output = ReconcileWorkflowOutput(
            agreement_id=input.agreement_id,
            kind=loaded.kind,
            rollup_status=reconciled.rollup_status,
            timeline=reconciled.timeline,
            progress=reconciled.progress,
            next_amount=reconciled.next_amount,
            incomplete_snapshots=incomplete,
        )

        # =====================================================================
        # Stage: SYNC_RECORD
        # =====================================================================
        if input.sync_record and loaded.kind == "recurring" and snapshot is not None:
            self.stage = ReconcileStage.SYNC_RECORD
            synced = await workflow.execute_activity(
                apply_record_sync,
                ApplyRecordSyncInput(
                    agreement=agreement,
                    snapshot=snapshot,
                    cadence_seconds=input.cadence_seconds,
                    dry_run=input.dry_run,
                ),
                **store_options,
            )
            output.record_patch = synced.patch
            output.record_updated = synced.updated

        self.stage = ReconcileStage.DONE
        workflow.logger.info(f"Payment {input.agreement_id} reconciled: {output.rollup_status}")
        return output
