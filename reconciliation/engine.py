"""Reconciliation engine for scheduled, recurring and batch payments.

Exposes high-level function:
- reconcile_agreement(agreement, snapshot, now, ...) -> AgreementTimeline

and a ResolutionCache for callers that re-run reconciliation on every poll.
"""

import hashlib
import json
import time
from collections import OrderedDict
from threading import Lock
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from models.chain import ChainSnapshot
from models.payments import AgreementStatus, InstallmentStatus, PaymentAgreement
from models.timeline import AgreementTimeline

from core.config import get_cadence_seconds
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from reconciliation.batch import aggregate, batch_rollup_status
from reconciliation.normalize import fallback_agreement_status
from reconciliation.resolver import (
    resolve,
    resolve_single,
    resolved_total_months,
    rollup_status,
)
from reconciliation.timeline import expand


logger = get_logger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _address_key(address: Optional[str]) -> Optional[str]:
    return address.lower() if address else None


def index_snapshots(snapshots: Optional[Sequence[ChainSnapshot]]) -> Dict[str, ChainSnapshot]:
    """Key snapshots by lower-cased contract address."""
    indexed: Dict[str, ChainSnapshot] = {}
    for snapshot in snapshots or []:
        key = _address_key(snapshot.contract_address)
        if key:
            indexed[key] = snapshot
    return indexed


def _lookup(snapshots: Mapping[str, ChainSnapshot], contract_address: Optional[str]) -> ChainSnapshot:
    key = _address_key(contract_address)
    if key and key in snapshots:
        return snapshots[key]
    return ChainSnapshot.empty(contract_address)


def agreement_kind(agreement: PaymentAgreement) -> str:
    """"batch", "recurring" or "single"."""
    if agreement.batch:
        return "batch"
    if agreement.recurring:
        return "recurring"
    return "single"


def is_recurring_payment(
    agreement: PaymentAgreement,
    children: Optional[Sequence[PaymentAgreement]] = None,
) -> bool:
    """True when the agreement (or any batch child) pays in installments.

    A batch is either recurring or a single scheduled payment to several
    beneficiaries; the latter is read with the single-payment ABI.
    """
    return agreement.recurring or any(child.recurring for child in children or [])


def single_rollup_status(status: InstallmentStatus, db_status: Optional[str]) -> AgreementStatus:
    """Agreement status of a single payment from its one installment."""
    if status == InstallmentStatus.EXECUTED:
        return AgreementStatus.COMPLETED
    if status == InstallmentStatus.FAILED:
        return AgreementStatus.FAILED
    if status == InstallmentStatus.CANCELLED:
        return AgreementStatus.CANCELLED
    return fallback_agreement_status(db_status)


# =============================================================================
# Per-kind reconciliation
# =============================================================================

def _batch_members(
    agreement: PaymentAgreement,
    snapshot: ChainSnapshot,
    children: Sequence[PaymentAgreement],
    child_snapshots: Mapping[str, ChainSnapshot],
) -> List[Tuple[str, PaymentAgreement, ChainSnapshot]]:
    """(address, record, snapshot) for each beneficiary of a batch."""
    if children:
        members = []
        parent_key = _address_key(agreement.contract_address)
        for child in children:
            child_key = _address_key(child.contract_address)
            if child_key is None or child_key == parent_key:
                child_snapshot = snapshot
            else:
                child_snapshot = _lookup(child_snapshots, child.contract_address)
            members.append((child.payee_address or child.id, child, child_snapshot))
        return members

    # No child records: every share rides on the parent contract
    return [(share.address, agreement, snapshot) for share in agreement.batch_beneficiaries]


def _share_amounts(agreement: PaymentAgreement, members) -> List:
    shares = {_address_key(s.address): s.amount for s in agreement.batch_beneficiaries}
    amounts = []
    for address, record, _ in members:
        amount = shares.get(_address_key(address))
        if amount is None:
            amount = record.monthly_amount if record.monthly_amount is not None else record.amount
        amounts.append(amount)
    return amounts


def _reconcile_batch(
    agreement: PaymentAgreement,
    snapshot: ChainSnapshot,
    now: int,
    cadence: int,
    children: Sequence[PaymentAgreement],
    child_snapshots: Mapping[str, ChainSnapshot],
    preferred_lead_address: Optional[str],
    recurring: bool,
) -> Tuple[AgreementStatus, list]:
    members = _batch_members(agreement, snapshot, children, child_snapshots)

    if recurring:
        total = resolved_total_months(agreement, snapshot)
        for _, record, member_snapshot in members:
            total = max(total, resolved_total_months(record, member_snapshot))

        per_beneficiary = [
            resolve(record, member_snapshot, now, cadence, total_months=total)
            for _, record, member_snapshot in members
        ]
        beneficiary_rollups = [
            rollup_status(statuses, record.db_status)
            for statuses, (_, record, _) in zip(per_beneficiary, members)
        ]
    else:
        # Single scheduled batch: one installment per beneficiary
        per_beneficiary = [
            resolve_single(record, member_snapshot, now)
            for _, record, member_snapshot in members
        ]
        beneficiary_rollups = [
            single_rollup_status(statuses[0], record.db_status)
            for statuses, (_, record, _) in zip(per_beneficiary, members)
        ]

    result = aggregate(
        per_beneficiary,
        addresses=[address for address, _, _ in members],
        amounts=_share_amounts(agreement, members),
    )
    rollup = batch_rollup_status(result.status, beneficiary_rollups, agreement.db_status)
    installments = expand(
        agreement,
        result.status,
        cadence,
        detail=result.detail,
        preferred_lead_address=preferred_lead_address,
    )
    return rollup, installments


# =============================================================================
# Main Reconciliation Engine
# =============================================================================

def reconcile_agreement(
    agreement: PaymentAgreement,
    snapshot: Optional[ChainSnapshot],
    now: int,
    children: Optional[Sequence[PaymentAgreement]] = None,
    child_snapshots: Optional[Sequence[ChainSnapshot]] = None,
    cadence_seconds: Optional[int] = None,
    lead_preferences: Optional[Mapping[str, str]] = None,
    preferred_lead_address: Optional[str] = None,
) -> AgreementTimeline:
    """Reconcile one agreement against its chain snapshot(s).

    Args:
        agreement: Persisted agreement (batch parent for batches)
        snapshot: Snapshot of the agreement's own contract
        now: Current unix time
        children: Batch child records, one per beneficiary
        child_snapshots: Snapshots of the children's contracts
        cadence_seconds: Interval between installments (defaults to configuration)
        lead_preferences: transaction hash -> beneficiary address to list first
        preferred_lead_address: Explicit lead beneficiary, overrides lead_preferences

    Returns:
        AgreementTimeline with rollup status and every installment
    """
    started = time.perf_counter()
    snapshot = snapshot if snapshot is not None else ChainSnapshot.empty(agreement.contract_address)
    cadence = cadence_seconds if cadence_seconds is not None else get_cadence_seconds()
    kind = agreement_kind(agreement)
    recurring = kind == "recurring" or (kind == "batch" and is_recurring_payment(agreement, children))

    if preferred_lead_address is None and lead_preferences and agreement.transaction_hash:
        preferred_lead_address = lead_preferences.get(agreement.transaction_hash)

    with with_correlation(
        agreement_id=agreement.id,
        contract_address=agreement.contract_address,
        transaction_hash=agreement.transaction_hash,
        stage="reconcile",
    ):
        if kind == "batch":
            rollup, installments = _reconcile_batch(
                agreement,
                snapshot,
                now,
                cadence,
                list(children or []),
                index_snapshots(child_snapshots),
                preferred_lead_address,
                recurring,
            )
        elif kind == "recurring":
            statuses = resolve(agreement, snapshot, now, cadence)
            rollup = rollup_status(statuses, agreement.db_status)
            installments = expand(agreement, statuses, cadence)
        else:
            statuses = resolve_single(agreement, snapshot, now)
            rollup = single_rollup_status(statuses[0], agreement.db_status)
            installments = expand(agreement, statuses, cadence)

        timeline = AgreementTimeline(
            agreement_id=agreement.id,
            rollup_status=rollup,
            installments=installments,
            is_batch=kind == "batch",
            is_recurring=recurring,
            snapshot_version=snapshot.version,
        )

        duration_ms = (time.perf_counter() - started) * 1000
        get_metrics().record_reconciliation(
            kind,
            rollup.value,
            [s.value for s in timeline.statuses],
            duration_ms,
        )

        missing = snapshot.failed_fields
        logger.info(
            f"Agreement reconciled: {rollup.value}",
            extra_fields={
                "kind": kind,
                "installments": len(installments),
                "historical": len(timeline.historical()),
                "missing_chain_fields": ",".join(missing) if missing else None,
            },
        )

    return timeline


# =============================================================================
# Resolution Cache
# =============================================================================

def _fingerprint(records: Sequence[PaymentAgreement]) -> str:
    payload = json.dumps([r.model_dump(mode="json") for r in records], sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def cache_key(
    agreement: PaymentAgreement,
    snapshot: Optional[ChainSnapshot],
    now: int,
    children: Optional[Sequence[PaymentAgreement]] = None,
    child_snapshots: Optional[Sequence[ChainSnapshot]] = None,
) -> Optional[Tuple]:
    """Key identifying a reconciliation result, or None if not cacheable.

    Results only depend on `now` through the cancellation guard, so `now`
    is part of the key only when a snapshot reports a cancelled contract.
    Snapshots without a version are never cached.
    """
    snapshots = [snapshot] + list(child_snapshots or [])
    if any(s is None or s.version is None for s in snapshots):
        return None

    versions = tuple(sorted((s.contract_address or "", s.version) for s in snapshots))
    cancelled = any(s.cancelled is True for s in snapshots)
    records = [agreement] + list(children or [])

    return (agreement.id, versions, _fingerprint(records), now if cancelled else None)


class ResolutionCache:
    """Thread-safe LRU of AgreementTimeline keyed by (agreement, snapshot version).

    Usage:
        cache = ResolutionCache()
        timeline = cache.reconcile(agreement, snapshot, now)
    """

    def __init__(self, max_entries: int = 1024):
        self.max_entries = max_entries
        self._entries: "OrderedDict[Tuple, AgreementTimeline]" = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Tuple) -> Optional[AgreementTimeline]:
        with self._lock:
            timeline = self._entries.get(key)
            if timeline is not None:
                self._entries.move_to_end(key)
            return timeline

    def put(self, key: Tuple, timeline: AgreementTimeline) -> None:
        with self._lock:
            self._entries[key] = timeline
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def reconcile(
        self,
        agreement: PaymentAgreement,
        snapshot: Optional[ChainSnapshot],
        now: int,
        children: Optional[Sequence[PaymentAgreement]] = None,
        child_snapshots: Optional[Sequence[ChainSnapshot]] = None,
        **kwargs,
    ) -> AgreementTimeline:
        """reconcile_agreement, memoized when the snapshots are versioned."""
        key = cache_key(agreement, snapshot, now, children, child_snapshots)
        if key is not None:
            extra = tuple(sorted((k, repr(v)) for k, v in kwargs.items()))
            key = key + extra
            cached = self.get(key)
            if cached is not None:
                get_metrics().record_cache_hit()
                return cached

        timeline = reconcile_agreement(
            agreement,
            snapshot,
            now,
            children=children,
            child_snapshots=child_snapshots,
            **kwargs,
        )
        if key is not None:
            self.put(key, timeline)
        return timeline
