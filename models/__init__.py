"""Models Package.

Data models for the payment reconciliation service:
- Payment agreement records (recurring, single, batch)
- On-chain snapshots and payment logs
- Reconciliation outputs (installments, batch aggregates, timelines)
"""

from models.payments import (
    AgreementStatus,
    BeneficiaryShare,
    InstallmentStatus,
    PaymentAgreement,
)

from models.chain import (
    ChainSnapshot,
    LogKind,
    PaymentLogEntry,
)

from models.timeline import (
    AgreementTimeline,
    BatchAggregate,
    BeneficiaryOutcome,
    ResolvedInstallment,
    TimelineProgress,
)

__all__ = [
    # Records
    "AgreementStatus",
    "BeneficiaryShare",
    "InstallmentStatus",
    "PaymentAgreement",
    # Chain
    "ChainSnapshot",
    "LogKind",
    "PaymentLogEntry",
    # Outputs
    "AgreementTimeline",
    "BatchAggregate",
    "BeneficiaryOutcome",
    "ResolvedInstallment",
    "TimelineProgress",
]
