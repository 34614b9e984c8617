"""Payment agreement models.

These models mirror the persisted `recurring_payments` / `scheduled_payments`
rows closely enough that a raw record can be validated directly:

    agreement = PaymentAgreement.model_validate(row)

Records written by different producers (frontend, keeper, indexer) disagree on
types: booleans arrive as "true", amounts as strings of base units, timestamps
as numeric strings. The parsers below absorb those differences.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers
# =============================================================================

def _parse_decimal(value):
    """Parse a token amount (base units or decimal string)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip().replace(",", "")
        if s == "":
            return None
        return Decimal(s)
    return value


def _parse_int(value):
    """Parse integer counters and unix timestamps."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        return int(float(s))
    return value


def _parse_count(value):
    """Counters and timestamps: null or empty columns read as 0."""
    parsed = _parse_int(value)
    return 0 if parsed is None else parsed


def _parse_bool(value):
    """Parse booleans stored as strings ("true"/"false") or ints."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "t")
    return value


def _parse_statuses(value):
    """Keep only string-keyed, string-valued entries of `monthly_statuses`."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
IntValue = Annotated[int, BeforeValidator(_parse_int)]
CountValue = Annotated[int, BeforeValidator(_parse_count)]
BoolValue = Annotated[bool, BeforeValidator(_parse_bool)]
StatusMap = Annotated[Dict[str, str], BeforeValidator(_parse_statuses)]


# =============================================================================
# Enums
# =============================================================================

class InstallmentStatus(str, Enum):
    """Execution status of one installment."""
    EXECUTED = "executed"
    FAILED = "failed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    MIXED = "mixed"  # Batch aggregates only

    @property
    def is_terminal(self) -> bool:
        """Processing finished for this installment."""
        return self in (InstallmentStatus.EXECUTED, InstallmentStatus.FAILED, InstallmentStatus.MIXED)


class AgreementStatus(str, Enum):
    """Agreement-level lifecycle status."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


# =============================================================================
# Base Model
# =============================================================================

class RecordBase(BaseModel):
    """Base model for persisted payment records.

    Frozen: the reconciliation core receives these objects read-only.
    Unknown record columns are ignored.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


# =============================================================================
# Agreement
# =============================================================================

class BeneficiaryShare(RecordBase):
    """One beneficiary of a batch payment."""
    address: str
    amount: DecimalValue = Decimal("0")
    name: Optional[str] = None


class PaymentAgreement(RecordBase):
    """A scheduled, recurring or batch payment.

    Attributes:
        id: Record identifier
        payer_address: Wallet funding the payment
        payee_address: Beneficiary (None for a batch parent)
        batch_beneficiaries: Shares of a batch payment
        token_symbol: Token ticker (e.g. "USDC")
        total_months: Number of installments, 0 for a single payment
        executed_months: Keeper-maintained execution counter
        first_payment_time: Unix seconds of the first installment
        amount: Total amount of a single payment (base units)
        monthly_amount: Amount per installment (base units)
        first_month_amount: Amount of the first installment when custom
        is_first_month_custom: First installment uses first_month_amount
        cancellable: Payer may cancel
        db_status: Raw lifecycle status from the record ("status" column)
        monthly_statuses: Sparse month -> status map maintained by the keeper
        contract_address: Payment contract
        transaction_hash: Funding transaction, shared by batch children
        next_execution_time: Keeper's next due time
        is_recurring: Recurring payment flag
        is_batch: Batch payment flag
    """
    id: str
    payer_address: Optional[str] = None
    payee_address: Optional[str] = None
    batch_beneficiaries: List[BeneficiaryShare] = Field(default_factory=list)
    token_symbol: Optional[str] = None

    total_months: CountValue = 0
    executed_months: CountValue = 0
    first_payment_time: CountValue = 0

    amount: Optional[DecimalValue] = None
    monthly_amount: Optional[DecimalValue] = None
    first_month_amount: Optional[DecimalValue] = None
    is_first_month_custom: BoolValue = False
    cancellable: BoolValue = False

    db_status: Optional[str] = Field(default=None, alias="status")
    monthly_statuses: StatusMap = Field(default_factory=dict)

    contract_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    next_execution_time: Optional[IntValue] = None

    is_recurring: BoolValue = False
    is_batch: BoolValue = False

    @property
    def recurring(self) -> bool:
        """True for installment payments (flag or a positive month count)."""
        return self.is_recurring or self.total_months > 0

    @property
    def batch(self) -> bool:
        return self.is_batch or len(self.batch_beneficiaries) > 1

    @property
    def beneficiary_count(self) -> int:
        return len(self.batch_beneficiaries) if self.batch_beneficiaries else 1
