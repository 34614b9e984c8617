"""Batch aggregation.

A batch payment pays several beneficiaries per installment. Each beneficiary
resolves its own status list; this module folds them into one status per
installment and keeps the per-beneficiary detail intact for display.
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from models.payments import AgreementStatus, InstallmentStatus
from models.timeline import BatchAggregate, BeneficiaryOutcome

from reconciliation.normalize import fallback_agreement_status


class ShapeMismatchError(ValueError):
    """Batch inputs do not describe the same number of installments/beneficiaries."""
    pass


def aggregate_index(statuses: Sequence[InstallmentStatus]) -> InstallmentStatus:
    """Aggregate every beneficiary's status for one installment.

    - any failed -> failed
    - any cancelled: all cancelled -> cancelled, some executed -> mixed,
      otherwise cancelled
    - all executed -> executed
    - otherwise pending
    """
    if not statuses:
        return InstallmentStatus.PENDING

    if InstallmentStatus.FAILED in statuses:
        return InstallmentStatus.FAILED

    if InstallmentStatus.CANCELLED in statuses:
        if all(s == InstallmentStatus.CANCELLED for s in statuses):
            return InstallmentStatus.CANCELLED
        if InstallmentStatus.EXECUTED in statuses:
            return InstallmentStatus.MIXED
        return InstallmentStatus.CANCELLED

    if all(s == InstallmentStatus.EXECUTED for s in statuses):
        return InstallmentStatus.EXECUTED

    return InstallmentStatus.PENDING


def aggregate(
    per_beneficiary_statuses: Sequence[Sequence[InstallmentStatus]],
    addresses: Optional[Sequence[str]] = None,
    amounts: Optional[Sequence[Optional[Decimal]]] = None,
) -> BatchAggregate:
    """Aggregate the status lists of every beneficiary of a batch.

    Args:
        per_beneficiary_statuses: One status list per beneficiary, all the same length
        addresses: Beneficiary addresses in the same order (labels default to "#n")
        amounts: Per-beneficiary installment amounts in the same order

    Returns:
        BatchAggregate with one aggregate status per installment and the
        unmerged per-beneficiary detail

    Raises:
        ShapeMismatchError: inner lists differ in length, or addresses/amounts
            do not match the beneficiary count
    """
    count = len(per_beneficiary_statuses)

    if addresses is not None and len(addresses) != count:
        raise ShapeMismatchError(
            f"Got {len(addresses)} addresses for {count} beneficiary status lists"
        )
    if amounts is not None and len(amounts) != count:
        raise ShapeMismatchError(
            f"Got {len(amounts)} amounts for {count} beneficiary status lists"
        )

    if count == 0:
        return BatchAggregate()

    lengths = {len(statuses) for statuses in per_beneficiary_statuses}
    if len(lengths) != 1:
        raise ShapeMismatchError(
            f"Beneficiary status lists have different lengths: {sorted(lengths)}"
        )
    total = lengths.pop()

    labels = list(addresses) if addresses is not None else [f"#{i + 1}" for i in range(count)]
    shares = list(amounts) if amounts is not None else [None] * count

    status: List[InstallmentStatus] = []
    detail: List[List[BeneficiaryOutcome]] = []
    for index in range(total):
        column = [statuses[index] for statuses in per_beneficiary_statuses]
        status.append(aggregate_index(column))
        detail.append([
            BeneficiaryOutcome(address=labels[b], amount=shares[b], status=column[b])
            for b in range(count)
        ])

    return BatchAggregate(status=status, detail=detail)


def batch_rollup_status(
    aggregate_statuses: Sequence[InstallmentStatus],
    beneficiary_rollups: Sequence[AgreementStatus],
    db_status: Optional[str],
) -> AgreementStatus:
    """Agreement-level status of a batch.

    - every installment processed (executed, failed or mixed) -> completed
    - every beneficiary's own rollup cancelled -> cancelled
    - any installment processed -> active
    - otherwise the record's own status
    """
    total = len(aggregate_statuses)
    processed = sum(1 for s in aggregate_statuses if s.is_terminal)

    if total > 0 and processed == total:
        return AgreementStatus.COMPLETED

    if beneficiary_rollups and all(r == AgreementStatus.CANCELLED for r in beneficiary_rollups):
        return AgreementStatus.CANCELLED

    if processed > 0:
        return AgreementStatus.ACTIVE

    return fallback_agreement_status(db_status)
