"""
Index Convention and Status Normalization Tests

Tests for:
- 0-/1-based month number inference for logs and DB keys
- Event bucketing (last log wins, out-of-range dropped)
- Status vocabulary normalization
"""

import pytest

from models.chain import ChainSnapshot, LogKind, PaymentLogEntry
from models.payments import AgreementStatus, InstallmentStatus
from reconciliation.indexing import (
    db_statuses_by_index,
    events_by_index,
    infer_index_base,
    order_events,
    to_index,
)
from reconciliation.normalize import (
    fallback_agreement_status,
    normalize_agreement_status,
    normalize_installment_status,
    normalize_single_status,
)


def entry(kind, month, block=1, index=0):
    return PaymentLogEntry(status=kind, month_number=month, block_number=block, log_index=index)


class TestInferIndexBase:
    """infer_index_base()"""

    def test_one_based(self):
        assert infer_index_base([1, 2, 3], 3) == 1

    def test_zero_based(self):
        assert infer_index_base([0, 1, 2], 3) == 0

    def test_any_zero_means_zero_based(self):
        assert infer_index_base([0, 3], 3) == 0

    def test_max_equal_to_last_index(self):
        assert infer_index_base([2], 3) == 0

    def test_partial_one_based(self):
        assert infer_index_base([1], 3) == 1

    def test_empty(self):
        assert infer_index_base([], 3) == 0

    @pytest.mark.parametrize("raw,base,expected", [
        (1, 1, 0),
        (3, 1, 2),
        (0, 1, None),
        (3, 0, None),
        (-1, 0, None),
    ])
    def test_to_index(self, raw, base, expected):
        assert to_index(raw, base, 3) == expected


class TestEventsByIndex:
    """events_by_index()"""

    def test_one_and_zero_based_resolve_to_same_indices(self):
        one_based = ChainSnapshot(events=[entry(LogKind.EXECUTED, m, block=m) for m in (1, 2, 3)])
        zero_based = ChainSnapshot(events=[entry(LogKind.EXECUTED, m, block=m) for m in (0, 1, 2)])

        assert sorted(events_by_index(one_based, 3)) == [0, 1, 2]
        assert sorted(events_by_index(zero_based, 3)) == [0, 1, 2]

    def test_failure_then_retry(self):
        snapshot = ChainSnapshot(events=[
            entry(LogKind.EXECUTED, 0, block=20),
            entry(LogKind.FAILED, 0, block=10),
        ])

        assert events_by_index(snapshot, 2) == {0: InstallmentStatus.EXECUTED}

    def test_out_of_range_dropped(self):
        snapshot = ChainSnapshot(events=[
            entry(LogKind.EXECUTED, 1),
            entry(LogKind.FAILED, 7, block=2),
        ])

        # base 1 (no zero, max 7 != 1)
        assert events_by_index(snapshot, 2) == {0: InstallmentStatus.EXECUTED}

    def test_no_events(self):
        assert events_by_index(ChainSnapshot(), 3) == {}

    def test_order_events(self):
        a = entry(LogKind.EXECUTED, 0, block=2, index=0)
        b = entry(LogKind.EXECUTED, 1, block=1, index=5)
        c = entry(LogKind.EXECUTED, 2, block=2, index=1)

        assert order_events([a, c, b]) == [b, a, c]


class TestDbStatusesByIndex:
    """db_statuses_by_index()"""

    def test_one_based_keys(self):
        result = db_statuses_by_index({"1": "failed", "2": "executed"}, 4)

        assert result == {0: InstallmentStatus.FAILED, 1: InstallmentStatus.EXECUTED}

    def test_zero_based_keys(self):
        result = db_statuses_by_index({"0": "executed", "1": "failed"}, 4)

        assert result == {0: InstallmentStatus.EXECUTED, 1: InstallmentStatus.FAILED}

    def test_unreadable_value_still_sets_convention(self):
        # "0" marks the map as 0-based even though its value is dropped
        result = db_statuses_by_index({"0": "unknown", "1": "failed"}, 3)

        assert result == {1: InstallmentStatus.FAILED}

    def test_non_integer_keys_ignored(self):
        assert db_statuses_by_index({"month-1": "failed"}, 3) == {}

    def test_empty(self):
        assert db_statuses_by_index({}, 3) == {}
        assert db_statuses_by_index({"1": "failed"}, 0) == {}


class TestNormalize:
    """Status vocabulary normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("executed", InstallmentStatus.EXECUTED),
        ("RELEASED", InstallmentStatus.EXECUTED),
        (" failed ", InstallmentStatus.FAILED),
        ("pending", InstallmentStatus.PENDING),
        ("canceled", InstallmentStatus.CANCELLED),
        ("mixed", None),
        ("", None),
        (None, None),
        (3, None),
    ])
    def test_installment_status(self, raw, expected):
        assert normalize_installment_status(raw) == expected

    def test_single_status_only_decided_values(self):
        assert normalize_single_status("completed") == InstallmentStatus.EXECUTED
        assert normalize_single_status("cancelled") == InstallmentStatus.CANCELLED
        assert normalize_single_status("pending") is None
        assert normalize_single_status("active") is None

    def test_agreement_status(self):
        assert normalize_agreement_status("released") == AgreementStatus.COMPLETED
        assert normalize_agreement_status("Active") == AgreementStatus.ACTIVE
        assert normalize_agreement_status("paused") is None
        assert fallback_agreement_status("paused") == AgreementStatus.PENDING
