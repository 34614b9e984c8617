"""Record sync planning.

Decides how a stored recurring payment record should be updated so that its
counters and lifecycle status match the contract:

- cancelled() -> status "cancelled"
- executedMonths >= totalMonths -> status "completed", next_execution_time 0
- otherwise -> status "active", next_execution_time = start + executed * cadence

Only the plan is computed here; writing it is the record store's job.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from models.chain import ChainSnapshot
from models.payments import AgreementStatus, PaymentAgreement

from reconciliation.normalize import normalize_agreement_status


@dataclass
class RecordPatch:
    """Columns to update on a payment record.

    Attributes:
        agreement_id: Record to update
        executed_months: New execution counter
        status: New lifecycle status
        next_execution_time: Next due time (0 when completed, None to leave as is)
        reasons: Which columns differ and why, for logs
    """
    agreement_id: str
    executed_months: int
    status: str
    next_execution_time: Optional[int] = None
    reasons: Dict[str, Any] = field(default_factory=dict)

    def to_update(self) -> Dict[str, Any]:
        """Column values to send to the record store."""
        data = {
            "executed_months": self.executed_months,
            "status": self.status,
        }
        if self.next_execution_time is not None:
            data["next_execution_time"] = self.next_execution_time
        return data

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def plan_record_sync(
    agreement: PaymentAgreement,
    snapshot: Optional[ChainSnapshot],
    cadence_seconds: int,
) -> Optional[RecordPatch]:
    """Plan the update that aligns `agreement` with `snapshot`.

    Returns None when the snapshot is missing a field the decision needs or
    when the record already matches the chain. A record whose counter is
    ahead of the chain (a lagging RPC node) is left alone.
    """
    if snapshot is None:
        return None
    if snapshot.executed_months is None or snapshot.total_months is None or snapshot.cancelled is None:
        return None

    executed = snapshot.executed_months
    total = snapshot.total_months

    if (agreement.executed_months or 0) > executed:
        return None

    next_execution_time: Optional[int] = None
    if snapshot.cancelled:
        status = AgreementStatus.CANCELLED
    elif executed >= total:
        status = AgreementStatus.COMPLETED
        next_execution_time = 0
    else:
        status = AgreementStatus.ACTIVE
        next_execution_time = (agreement.first_payment_time or 0) + executed * cadence_seconds

    reasons: Dict[str, Any] = {}
    if (agreement.executed_months or 0) != executed:
        reasons["executed_months"] = [agreement.executed_months, executed]
    if normalize_agreement_status(agreement.db_status) != status:
        reasons["status"] = [agreement.db_status, status.value]
    if next_execution_time is not None and agreement.next_execution_time != next_execution_time:
        reasons["next_execution_time"] = [agreement.next_execution_time, next_execution_time]

    if not reasons:
        return None

    return RecordPatch(
        agreement_id=agreement.id,
        executed_months=executed,
        status=status.value,
        next_execution_time=next_execution_time,
        reasons=reasons,
    )
