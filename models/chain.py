"""On-chain snapshot models.

A ChainSnapshot is a point-in-time read of one payment contract. Every field
is optional: a field the reader could not fetch is None and means "no
information from this source", never "false" or "zero".
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LogKind(str, Enum):
    """Kind of monthly payment event emitted by the contract."""
    EXECUTED = "executed"
    FAILED = "failed"


class PaymentLogEntry(BaseModel):
    """One MonthlyPaymentExecuted / MonthlyPaymentFailed log.

    Attributes:
        status: executed or failed
        month_number: Raw month number as emitted (0- or 1-based)
        block_number: Block containing the log
        log_index: Position of the log in the block
    """
    model_config = ConfigDict(frozen=True)

    status: LogKind
    month_number: int
    block_number: int = 0
    log_index: int = 0

    @property
    def order_key(self):
        return (self.block_number, self.log_index)


class ChainSnapshot(BaseModel):
    """Contract state and logs for one payment contract.

    Attributes:
        contract_address: Contract that was read
        version: Block number the snapshot was read at (cache key)
        total_months: totalMonths()
        executed_months: executedMonths()
        next_month_to_process: nextMonthToProcess()
        cancelled: cancelled()
        released: released() (single payments)
        month_executed: monthExecuted(i) per index; None entries are failed reads
        events: Execution/failure logs in any order
    """
    model_config = ConfigDict(frozen=True)

    contract_address: Optional[str] = None
    version: Optional[int] = None

    total_months: Optional[int] = None
    executed_months: Optional[int] = None
    next_month_to_process: Optional[int] = None
    cancelled: Optional[bool] = None
    released: Optional[bool] = None

    month_executed: Optional[List[Optional[bool]]] = None
    events: List[PaymentLogEntry] = Field(default_factory=list)

    @classmethod
    def empty(cls, contract_address: Optional[str] = None) -> "ChainSnapshot":
        """Snapshot carrying no information (contract unreadable or unknown)."""
        return cls(contract_address=contract_address)

    def month_flag(self, index: int) -> Optional[bool]:
        """monthExecuted(index), or None when unknown."""
        if self.month_executed is None or index < 0 or index >= len(self.month_executed):
            return None
        return self.month_executed[index]

    @property
    def failed_fields(self) -> List[str]:
        """Names of scalar fields that carry no information."""
        names = ["total_months", "executed_months", "next_month_to_process", "cancelled"]
        return [name for name in names if getattr(self, name) is None]
