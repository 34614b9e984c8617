"""
Reconciliation Engine Tests

Tests for reconcile_agreement() across single, recurring and batch payments,
and for the ResolutionCache.
"""

from decimal import Decimal

from core.observability.metrics import get_metrics
from models.chain import ChainSnapshot, LogKind, PaymentLogEntry
from models.payments import AgreementStatus, InstallmentStatus, PaymentAgreement
from reconciliation.engine import (
    ResolutionCache,
    agreement_kind,
    cache_key,
    reconcile_agreement,
    single_rollup_status,
)


CADENCE = 2592000
START = 1_700_000_000
NOW = START + 10 * CADENCE

PARENT = "0x00000000000000000000000000000000000000aa"
CHILD_A = "0x00000000000000000000000000000000000000c1"
CHILD_B = "0x00000000000000000000000000000000000000c2"

E = InstallmentStatus.EXECUTED
F = InstallmentStatus.FAILED
P = InstallmentStatus.PENDING
C = InstallmentStatus.CANCELLED
M = InstallmentStatus.MIXED


def make_agreement(**overrides) -> PaymentAgreement:
    data = {
        "id": "pay-1",
        "total_months": 3,
        "first_payment_time": START,
        "monthly_amount": "100",
        "status": "active",
        "contract_address": PARENT,
        "transaction_hash": "0xtx",
        "is_recurring": True,
    }
    data.update(overrides)
    return PaymentAgreement.model_validate(data)


def make_batch(**overrides) -> PaymentAgreement:
    data = {
        "id": "batch-1",
        "total_months": 2,
        "is_batch": True,
        "batch_beneficiaries": [
            {"address": "0xA", "amount": "60"},
            {"address": "0xB", "amount": "40"},
        ],
    }
    data.update(overrides)
    return make_agreement(**data)


def make_child(child_id: str, payee: str, contract: str, **overrides) -> PaymentAgreement:
    data = {
        "id": child_id,
        "payee_address": payee,
        "total_months": 2,
        "contract_address": contract,
        "monthly_amount": "0",
    }
    data.update(overrides)
    return make_agreement(**data)


def snapshot(address: str, **fields) -> ChainSnapshot:
    data = {"contract_address": address, "version": 100, "total_months": 2, "executed_months": 0, "cancelled": False}
    data.update(fields)
    return ChainSnapshot(**data)


class TestAgreementKinds:
    """Dispatch on agreement kind."""

    def test_kinds(self):
        assert agreement_kind(make_agreement()) == "recurring"
        assert agreement_kind(make_batch()) == "batch"
        assert agreement_kind(make_agreement(total_months=0, is_recurring=False)) == "single"

    def test_single_rollup(self):
        assert single_rollup_status(E, "pending") == AgreementStatus.COMPLETED
        assert single_rollup_status(F, "pending") == AgreementStatus.FAILED
        assert single_rollup_status(C, "pending") == AgreementStatus.CANCELLED
        assert single_rollup_status(P, "active") == AgreementStatus.ACTIVE


class TestRecurring:
    """Recurring payments."""

    def test_timeline(self):
        agreement = make_agreement()

        timeline = reconcile_agreement(agreement, snapshot(PARENT, total_months=3, executed_months=1), NOW, cadence_seconds=CADENCE)

        assert timeline.statuses == [E, P, P]
        assert timeline.rollup_status == AgreementStatus.ACTIVE
        assert timeline.is_recurring and not timeline.is_batch
        assert timeline.snapshot_version == 100
        assert timeline.installments[1].due_time == START + CADENCE

    def test_completed(self):
        agreement = make_agreement()

        timeline = reconcile_agreement(agreement, snapshot(PARENT, total_months=3, executed_months=3), NOW, cadence_seconds=CADENCE)

        assert timeline.rollup_status == AgreementStatus.COMPLETED

    def test_unreadable_contract(self):
        agreement = make_agreement(status="pending")

        timeline = reconcile_agreement(agreement, None, NOW, cadence_seconds=CADENCE)

        assert timeline.statuses == [P, P, P]
        assert timeline.rollup_status == AgreementStatus.PENDING
        assert timeline.snapshot_version is None


class TestSingle:
    """Single scheduled payments."""

    def test_released(self):
        agreement = make_agreement(total_months=0, is_recurring=False, monthly_amount=None, amount="250", status="pending")
        chain = ChainSnapshot(contract_address=PARENT, version=5, released=True, cancelled=False)

        timeline = reconcile_agreement(agreement, chain, NOW, cadence_seconds=CADENCE)

        assert timeline.statuses == [E]
        assert timeline.rollup_status == AgreementStatus.COMPLETED
        assert timeline.is_recurring is False
        assert timeline.installments[0].due_time == START
        assert timeline.installments[0].amount == Decimal("250")


class TestBatch:
    """Batch payments."""

    def test_children_on_own_contracts(self):
        parent = make_batch()
        children = [
            make_child("child-a", "0xA", CHILD_A),
            make_child("child-b", "0xB", CHILD_B),
        ]
        child_snapshots = [
            snapshot(CHILD_A, executed_months=1),
            snapshot(CHILD_B, events=[PaymentLogEntry(status=LogKind.FAILED, month_number=0)]),
        ]

        timeline = reconcile_agreement(
            parent, None, NOW,
            children=children,
            child_snapshots=child_snapshots,
            cadence_seconds=CADENCE,
        )

        assert timeline.is_batch
        assert timeline.statuses == [F, P]
        assert timeline.rollup_status == AgreementStatus.ACTIVE

        breakdown = timeline.installments[0].beneficiary_breakdown
        assert [(o.address, o.status) for o in breakdown] == [("0xA", E), ("0xB", F)]
        assert [o.amount for o in breakdown] == [Decimal("60"), Decimal("40")]

    def test_lead_preference_by_transaction_hash(self):
        parent = make_batch()
        children = [
            make_child("child-a", "0xA", CHILD_A),
            make_child("child-b", "0xB", CHILD_B),
        ]

        timeline = reconcile_agreement(
            parent, None, NOW,
            children=children,
            child_snapshots=[snapshot(CHILD_A), snapshot(CHILD_B)],
            cadence_seconds=CADENCE,
            lead_preferences={"0xtx": "0xb"},
        )

        assert [o.address for o in timeline.installments[0].beneficiary_breakdown] == ["0xB", "0xA"]

    def test_missing_child_snapshot_is_empty(self):
        parent = make_batch()
        children = [
            make_child("child-a", "0xA", CHILD_A, executed_months=2),
            make_child("child-b", "0xB", CHILD_B, executed_months=2),
        ]

        timeline = reconcile_agreement(parent, None, NOW, children=children, cadence_seconds=CADENCE)

        # Falls back on each child's own counter
        assert timeline.statuses == [E, E]
        assert timeline.rollup_status == AgreementStatus.COMPLETED

    def test_shares_ride_on_parent_contract(self):
        parent = make_batch()

        timeline = reconcile_agreement(parent, snapshot(PARENT, executed_months=1), NOW, cadence_seconds=CADENCE)

        assert timeline.statuses == [E, P]
        assert [o.address for o in timeline.installments[1].beneficiary_breakdown] == ["0xA", "0xB"]

    def test_partially_cancelled(self):
        parent = make_batch()
        children = [
            make_child("child-a", "0xA", CHILD_A),
            make_child("child-b", "0xB", CHILD_B),
        ]
        child_snapshots = [
            snapshot(CHILD_A, executed_months=1, month_executed=[True, False], cancelled=True),
            snapshot(CHILD_B, cancelled=True),
        ]

        timeline = reconcile_agreement(parent, None, NOW, children=children, child_snapshots=child_snapshots, cadence_seconds=CADENCE)

        assert timeline.statuses == [M, C]
        assert timeline.rollup_status == AgreementStatus.ACTIVE

    def test_every_beneficiary_cancelled(self):
        parent = make_batch()
        children = [
            make_child("child-a", "0xA", CHILD_A),
            make_child("child-b", "0xB", CHILD_B),
        ]
        child_snapshots = [snapshot(CHILD_A, cancelled=True), snapshot(CHILD_B, cancelled=True)]

        timeline = reconcile_agreement(parent, None, NOW, children=children, child_snapshots=child_snapshots, cadence_seconds=CADENCE)

        assert timeline.statuses == [C, C]
        assert timeline.rollup_status == AgreementStatus.CANCELLED

    def test_released_batch_single(self):
        parent = make_batch(total_months=0, is_recurring=False)
        chain = ChainSnapshot(contract_address=PARENT, version=5, released=True, cancelled=False)

        timeline = reconcile_agreement(parent, chain, NOW, cadence_seconds=CADENCE)

        assert timeline.statuses == [E]
        assert timeline.rollup_status == AgreementStatus.COMPLETED
        assert timeline.is_batch and timeline.is_recurring is False
        assert timeline.installments[0].due_time == START
        breakdown = timeline.installments[0].beneficiary_breakdown
        assert [(o.address, o.status) for o in breakdown] == [("0xA", E), ("0xB", E)]

    def test_partly_cancelled_batch_single(self):
        parent = make_batch(total_months=0, is_recurring=False)
        children = [
            make_child("child-a", "0xA", CHILD_A, total_months=0, is_recurring=False),
            make_child("child-b", "0xB", CHILD_B, total_months=0, is_recurring=False),
        ]
        child_snapshots = [
            ChainSnapshot(contract_address=CHILD_A, version=5, released=True, cancelled=False),
            ChainSnapshot(contract_address=CHILD_B, version=5, released=False, cancelled=True),
        ]

        timeline = reconcile_agreement(parent, None, NOW, children=children, child_snapshots=child_snapshots, cadence_seconds=CADENCE)

        assert timeline.statuses == [M]
        assert timeline.rollup_status == AgreementStatus.COMPLETED
        assert timeline.is_recurring is False
        breakdown = timeline.installments[0].beneficiary_breakdown
        assert [(o.address, o.status) for o in breakdown] == [("0xA", E), ("0xB", C)]

    def test_batch_single_before_due_date(self):
        parent = make_batch(total_months=0, is_recurring=False, status="pending")
        chain = ChainSnapshot(contract_address=PARENT, version=5, released=False, cancelled=False)

        timeline = reconcile_agreement(parent, chain, START - CADENCE, cadence_seconds=CADENCE)

        assert timeline.statuses == [P]
        assert timeline.rollup_status == AgreementStatus.PENDING


class TestResolutionCache:
    """ResolutionCache memoization."""

    def test_versioned_snapshot_is_cached(self):
        cache = ResolutionCache()
        agreement = make_agreement()
        chain = snapshot(PARENT, total_months=3, executed_months=1)
        hits_before = get_metrics().reconciliations.cache_hits

        first = cache.reconcile(agreement, chain, NOW, cadence_seconds=CADENCE)
        second = cache.reconcile(agreement, chain, NOW + 60, cadence_seconds=CADENCE)

        assert second is first
        assert len(cache) == 1
        assert get_metrics().reconciliations.cache_hits == hits_before + 1

    def test_new_block_misses(self):
        cache = ResolutionCache()
        agreement = make_agreement()

        cache.reconcile(agreement, snapshot(PARENT, version=1), NOW, cadence_seconds=CADENCE)
        cache.reconcile(agreement, snapshot(PARENT, version=2), NOW, cadence_seconds=CADENCE)

        assert len(cache) == 2

    def test_unversioned_snapshot_not_cached(self):
        cache = ResolutionCache()

        cache.reconcile(make_agreement(), snapshot(PARENT, version=None), NOW, cadence_seconds=CADENCE)

        assert len(cache) == 0
        assert cache_key(make_agreement(), None, NOW) is None

    def test_cancelled_snapshot_keys_on_time(self):
        agreement = make_agreement()
        chain = snapshot(PARENT, cancelled=True)

        assert cache_key(agreement, chain, NOW) != cache_key(agreement, chain, NOW + 1)
        assert cache_key(agreement, snapshot(PARENT), NOW) == cache_key(agreement, snapshot(PARENT), NOW + 1)

    def test_record_change_misses(self):
        chain = snapshot(PARENT)

        assert cache_key(make_agreement(), chain, NOW) != cache_key(make_agreement(executed_months=1), chain, NOW)

    def test_eviction(self):
        cache = ResolutionCache(max_entries=1)
        agreement = make_agreement()

        cache.reconcile(agreement, snapshot(PARENT, version=1), NOW, cadence_seconds=CADENCE)
        cache.reconcile(agreement, snapshot(PARENT, version=2), NOW, cadence_seconds=CADENCE)

        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestEngineMetrics:
    """Reconciliation passes are counted."""

    def test_pass_recorded(self):
        metrics = get_metrics()
        before = metrics.reconciliations.by_kind["recurring"]

        reconcile_agreement(make_agreement(), None, NOW, cadence_seconds=CADENCE)

        assert metrics.reconciliations.by_kind["recurring"] == before + 1
