"""Reconciliation output models.

Built fresh on every reconciliation pass; nothing here is persisted.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from models.payments import AgreementStatus, InstallmentStatus


class BeneficiaryOutcome(BaseModel):
    """One beneficiary's own status for one installment of a batch."""
    address: str
    amount: Optional[Decimal] = None
    status: InstallmentStatus


class BatchAggregate(BaseModel):
    """Per-installment aggregate of a batch plus the unmerged detail.

    Attributes:
        status: Aggregate status per installment
        detail: detail[i] lists every beneficiary's outcome for installment i,
            in the order the beneficiaries were given
    """
    status: List[InstallmentStatus] = Field(default_factory=list)
    detail: List[List[BeneficiaryOutcome]] = Field(default_factory=list)


class ResolvedInstallment(BaseModel):
    """One dated installment as shown to a consumer.

    Attributes:
        month_index: 0-based installment index
        due_time: Unix seconds the installment is due
        amount: Amount of this installment
        status: Resolved (or aggregated) status
        is_historical: True when something actually happened (executed, failed, mixed)
        beneficiary_breakdown: Per-beneficiary outcomes for batches
    """
    month_index: int
    due_time: int
    amount: Optional[Decimal] = None
    status: InstallmentStatus
    is_historical: bool = False
    beneficiary_breakdown: Optional[List[BeneficiaryOutcome]] = None

    @property
    def month_number(self) -> int:
        """1-based number used in user-facing labels."""
        return self.month_index + 1


class TimelineProgress(BaseModel):
    """Counts used by progress bars."""
    total: int = 0
    executed: int = 0
    failed: int = 0
    mixed: int = 0
    cancelled: int = 0
    pending: int = 0

    @property
    def processed(self) -> int:
        return self.executed + self.failed + self.mixed

    @property
    def percent(self) -> float:
        return round(100.0 * self.processed / self.total, 1) if self.total else 0.0


class AgreementTimeline(BaseModel):
    """Full reconciliation result for one agreement.

    Attributes:
        agreement_id: Agreement the timeline belongs to
        rollup_status: Agreement-level status label
        installments: Every installment, historical or not
        is_batch: Installments carry beneficiary breakdowns
        is_recurring: False for single scheduled payments
        snapshot_version: Block number of the chain snapshot used, if known
    """
    agreement_id: str
    rollup_status: AgreementStatus
    installments: List[ResolvedInstallment] = Field(default_factory=list)
    is_batch: bool = False
    is_recurring: bool = True
    snapshot_version: Optional[int] = None

    @property
    def statuses(self) -> List[InstallmentStatus]:
        return [inst.status for inst in self.installments]

    def historical(self) -> List[ResolvedInstallment]:
        """Past-activity view: only installments where something happened."""
        return [inst for inst in self.installments if inst.is_historical]

    def progress(self) -> TimelineProgress:
        counts = TimelineProgress(total=len(self.installments))
        for inst in self.installments:
            name = inst.status.value
            setattr(counts, name, getattr(counts, name) + 1)
        return counts

    def next_installment(self) -> Optional[ResolvedInstallment]:
        """First installment still pending, if any."""
        for inst in self.installments:
            if inst.status == InstallmentStatus.PENDING:
                return inst
        return None
