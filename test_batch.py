"""
Batch Aggregation Tests

Tests for folding per-beneficiary status lists into one status per
installment, batch rollup status and shape validation.
"""

import itertools
from decimal import Decimal

import pytest

from models.payments import AgreementStatus, InstallmentStatus
from reconciliation.batch import (
    ShapeMismatchError,
    aggregate,
    aggregate_index,
    batch_rollup_status,
)


E = InstallmentStatus.EXECUTED
F = InstallmentStatus.FAILED
P = InstallmentStatus.PENDING
C = InstallmentStatus.CANCELLED
M = InstallmentStatus.MIXED


class TestAggregateIndex:
    """aggregate_index() rules."""

    @pytest.mark.parametrize("column,expected", [
        ([E, E], E),
        ([E, F], F),
        ([C, F, E], F),
        ([C, C], C),
        ([C, E], M),
        ([C, P], C),
        ([E, P], P),
        ([P, P], P),
        ([], P),
    ])
    def test_rules(self, column, expected):
        assert aggregate_index(column) == expected

    def test_failure_dominates_any_order(self):
        for column in itertools.permutations([E, C, P, F]):
            assert aggregate_index(list(column)) == F


class TestAggregate:
    """aggregate()"""

    def test_executed_and_failed_beneficiaries(self):
        result = aggregate([[E, P], [F, P]], addresses=["0xA", "0xB"])

        assert result.status == [F, P]
        assert [o.status for o in result.detail[0]] == [E, F]
        assert [o.address for o in result.detail[0]] == ["0xA", "0xB"]

    def test_order_independent(self):
        beneficiaries = [[E, E, C], [E, F, C], [E, P, E]]
        expected = aggregate(beneficiaries).status

        for permutation in itertools.permutations(beneficiaries):
            assert aggregate(list(permutation)).status == expected

    def test_default_labels_and_amounts(self):
        result = aggregate([[E], [P]], amounts=[Decimal("10"), Decimal("5")])

        assert [o.address for o in result.detail[0]] == ["#1", "#2"]
        assert [o.amount for o in result.detail[0]] == [Decimal("10"), Decimal("5")]

    def test_empty_batch(self):
        result = aggregate([])

        assert result.status == []
        assert result.detail == []

    def test_inputs_not_mutated(self):
        beneficiaries = [[E, P], [F, P]]

        aggregate(beneficiaries)

        assert beneficiaries == [[E, P], [F, P]]

    def test_unequal_lengths(self):
        with pytest.raises(ShapeMismatchError):
            aggregate([[E, P], [E]])

    def test_address_count_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            aggregate([[E], [E]], addresses=["0xA"])

    def test_amount_count_mismatch(self):
        with pytest.raises(ValueError):
            aggregate([[E], [E]], amounts=[Decimal("1")])


class TestBatchRollup:
    """batch_rollup_status()"""

    def test_all_processed(self):
        assert batch_rollup_status([E, M, F], [AgreementStatus.ACTIVE], "active") == AgreementStatus.COMPLETED

    def test_every_beneficiary_cancelled(self):
        rollups = [AgreementStatus.CANCELLED, AgreementStatus.CANCELLED]

        assert batch_rollup_status([C, C], rollups, "active") == AgreementStatus.CANCELLED

    def test_some_processed(self):
        rollups = [AgreementStatus.ACTIVE, AgreementStatus.CANCELLED]

        assert batch_rollup_status([M, C], rollups, "pending") == AgreementStatus.ACTIVE

    def test_nothing_processed(self):
        rollups = [AgreementStatus.PENDING, AgreementStatus.PENDING]

        assert batch_rollup_status([P, P], rollups, "active") == AgreementStatus.ACTIVE
        assert batch_rollup_status([P, P], rollups, None) == AgreementStatus.PENDING
