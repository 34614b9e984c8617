"""Status resolver for recurring and single payments.

Exposes:
- resolve(agreement, snapshot, now, cadence_seconds) -> per-installment statuses
- resolve_single(agreement, snapshot, now) -> one-element status list
- rollup_status(statuses, db_status) -> agreement-level status

Source precedence per installment index (first match wins):
1. Keeper DB `monthly_statuses` entry
2. MonthlyPaymentExecuted / MonthlyPaymentFailed log (last one wins)
3. monthExecuted(index) == true
4. cancelled(): future installment -> pending, past -> cancelled
5. index < executedMonths
6. pending

Pure functions: no I/O, no clock, inputs are never mutated. A missing chain
field falls through to the next rule; nothing in here raises for missing data.
"""

from typing import Dict, List, Optional, Sequence

from models.chain import ChainSnapshot
from models.payments import AgreementStatus, InstallmentStatus, PaymentAgreement

from core.observability.logging import get_logger
from reconciliation.indexing import db_statuses_by_index, events_by_index
from reconciliation.normalize import fallback_agreement_status, normalize_single_status


logger = get_logger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def resolved_total_months(
    agreement: PaymentAgreement,
    snapshot: Optional[ChainSnapshot],
    total_months: Optional[int] = None,
) -> int:
    """Installment count: the largest count any source reports."""
    chain_total = snapshot.total_months if snapshot is not None else None
    return max(agreement.total_months or 0, chain_total or 0, total_months or 0, 0)


def due_time(agreement: PaymentAgreement, index: int, cadence_seconds: int) -> int:
    """Unix time installment `index` falls due."""
    return (agreement.first_payment_time or 0) + index * cadence_seconds


def _executed_counter(agreement: PaymentAgreement, snapshot: ChainSnapshot) -> int:
    # The keeper bumps the DB counter after the chain, an RPC node may lag
    # behind the keeper: take whichever has seen more executions.
    return max(snapshot.executed_months or 0, agreement.executed_months or 0)


def _resolve_index(
    index: int,
    db_statuses: Dict[int, InstallmentStatus],
    logged: Dict[int, InstallmentStatus],
    snapshot: ChainSnapshot,
    executed_counter: int,
    due: int,
    now: int,
) -> InstallmentStatus:
    if index in db_statuses:
        return db_statuses[index]

    if index in logged:
        return logged[index]

    if snapshot.month_flag(index) is True:
        return InstallmentStatus.EXECUTED

    if snapshot.cancelled is True:
        if due > now:
            return InstallmentStatus.PENDING
        return InstallmentStatus.CANCELLED

    if index < executed_counter:
        return InstallmentStatus.EXECUTED

    return InstallmentStatus.PENDING


# =============================================================================
# Recurring Payments
# =============================================================================

def resolve(
    agreement: PaymentAgreement,
    snapshot: Optional[ChainSnapshot],
    now: int,
    cadence_seconds: int,
    total_months: Optional[int] = None,
) -> List[InstallmentStatus]:
    """Resolve the status of every installment of a recurring payment.

    Args:
        agreement: Persisted agreement record
        snapshot: Chain snapshot of the agreement's contract (None = unreadable)
        now: Current unix time
        cadence_seconds: Interval between installments
        total_months: Minimum length, used to align batch beneficiaries

    Returns:
        List of InstallmentStatus, one per installment
    """
    snapshot = snapshot if snapshot is not None else ChainSnapshot.empty(agreement.contract_address)
    total = resolved_total_months(agreement, snapshot, total_months)

    db_statuses = db_statuses_by_index(agreement.monthly_statuses, total)
    logged = events_by_index(snapshot, total)
    executed_counter = _executed_counter(agreement, snapshot)

    if agreement.monthly_statuses and len(db_statuses) < len(agreement.monthly_statuses):
        logger.debug(
            f"Ignored {len(agreement.monthly_statuses) - len(db_statuses)} unreadable monthly_statuses entries",
            extra_fields={"agreement_id": agreement.id},
        )

    return [
        _resolve_index(
            index,
            db_statuses,
            logged,
            snapshot,
            executed_counter,
            due_time(agreement, index, cadence_seconds),
            now,
        )
        for index in range(total)
    ]


# =============================================================================
# Single Payments
# =============================================================================

def resolve_single(
    agreement: PaymentAgreement,
    snapshot: Optional[ChainSnapshot],
    now: int,
) -> List[InstallmentStatus]:
    """Resolve a non-recurring scheduled payment as a single installment.

    Precedence: decided DB status, then released(), then cancelled() with the
    same future-due guard as recurring installments, then pending.
    """
    snapshot = snapshot if snapshot is not None else ChainSnapshot.empty(agreement.contract_address)

    decided = normalize_single_status(agreement.db_status)
    if decided is not None:
        return [decided]

    if snapshot.released is True:
        return [InstallmentStatus.EXECUTED]

    if snapshot.cancelled is True:
        if (agreement.first_payment_time or 0) > now:
            return [InstallmentStatus.PENDING]
        return [InstallmentStatus.CANCELLED]

    return [InstallmentStatus.PENDING]


# =============================================================================
# Rollup
# =============================================================================

def count_terminal(statuses: Sequence[InstallmentStatus]) -> int:
    """Installments whose execution outcome is known (executed or failed)."""
    return sum(1 for s in statuses if s in (InstallmentStatus.EXECUTED, InstallmentStatus.FAILED))


def rollup_status(statuses: Sequence[InstallmentStatus], db_status: Optional[str]) -> AgreementStatus:
    """Agreement-level status derived from its installments.

    - every installment cancelled -> cancelled
    - every installment executed or failed -> completed
    - at least one executed or failed -> active
    - otherwise the record's own status
    """
    total = len(statuses)
    if total > 0 and all(s == InstallmentStatus.CANCELLED for s in statuses):
        return AgreementStatus.CANCELLED

    terminal = count_terminal(statuses)
    if total > 0 and terminal == total:
        return AgreementStatus.COMPLETED
    if terminal > 0:
        return AgreementStatus.ACTIVE

    return fallback_agreement_status(db_status)
