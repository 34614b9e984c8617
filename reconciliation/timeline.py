"""Timeline expansion.

Turns a resolved status list into dated, priced installments. The full list
is always returned; `is_historical` tells the consumer which entries belong
in a "past activity" view and which only feed progress bars.
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from models.payments import InstallmentStatus, PaymentAgreement
from models.timeline import BeneficiaryOutcome, ResolvedInstallment

from reconciliation.resolver import due_time


HISTORICAL_STATUSES = frozenset({
    InstallmentStatus.EXECUTED,
    InstallmentStatus.FAILED,
    InstallmentStatus.MIXED,
})


def installment_amount(agreement: PaymentAgreement, index: int) -> Optional[Decimal]:
    """Amount of installment `index` (custom first month when configured)."""
    if index == 0 and agreement.is_first_month_custom and agreement.first_month_amount:
        return agreement.first_month_amount
    if agreement.monthly_amount is not None:
        return agreement.monthly_amount
    return agreement.amount


def order_breakdown(
    outcomes: Sequence[BeneficiaryOutcome],
    preferred_lead_address: Optional[str],
) -> List[BeneficiaryOutcome]:
    """Move the preferred beneficiary first, keep everyone else in order."""
    ordered = list(outcomes)
    if not preferred_lead_address:
        return ordered

    lead = preferred_lead_address.lower()
    for position, outcome in enumerate(ordered):
        if outcome.address.lower() == lead:
            if position > 0:
                ordered.insert(0, ordered.pop(position))
            break
    return ordered


def expand(
    agreement: PaymentAgreement,
    statuses: Sequence[InstallmentStatus],
    cadence_seconds: int,
    detail: Optional[Sequence[Sequence[BeneficiaryOutcome]]] = None,
    preferred_lead_address: Optional[str] = None,
) -> List[ResolvedInstallment]:
    """Build the dated installment list for an agreement.

    Args:
        agreement: Agreement the statuses belong to
        statuses: Resolved (or batch-aggregated) status per installment
        cadence_seconds: Interval between installments
        detail: Batch detail, detail[i] = beneficiary outcomes of installment i
        preferred_lead_address: Beneficiary to list first in each breakdown

    Returns:
        One ResolvedInstallment per status, in installment order
    """
    installments = []
    for index, status in enumerate(statuses):
        breakdown = None
        if detail is not None and index < len(detail):
            breakdown = order_breakdown(detail[index], preferred_lead_address)

        installments.append(ResolvedInstallment(
            month_index=index,
            due_time=due_time(agreement, index, cadence_seconds),
            amount=installment_amount(agreement, index),
            status=status,
            is_historical=status in HISTORICAL_STATUSES,
            beneficiary_breakdown=breakdown,
        ))
    return installments


def next_installment_amount(agreement: PaymentAgreement, executed_months: Optional[int] = None) -> Optional[Decimal]:
    """Total amount leaving the payer's wallet at the next execution.

    Batches pay every beneficiary at once: the sum of their shares, or the
    custom first-month amount for each beneficiary before the first execution.
    Returns None once every installment has been executed.
    """
    executed = agreement.executed_months if executed_months is None else executed_months
    total = agreement.total_months or 0
    if total > 0 and executed >= total:
        return None

    custom_first = (
        agreement.is_first_month_custom
        and executed == 0
        and bool(agreement.first_month_amount)
    )

    if agreement.batch_beneficiaries:
        if custom_first:
            return agreement.first_month_amount * len(agreement.batch_beneficiaries)
        return sum((share.amount for share in agreement.batch_beneficiaries), Decimal("0"))

    if custom_first:
        return agreement.first_month_amount
    if agreement.monthly_amount is not None:
        return agreement.monthly_amount
    return agreement.amount
