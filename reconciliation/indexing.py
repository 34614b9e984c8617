"""Month index convention helpers.

Deployed contracts are not consistent about whether `MonthlyPaymentExecuted`
/ `MonthlyPaymentFailed` carry 0-based or 1-based month numbers, and keeper
versions disagree on the keys of `monthly_statuses`. The convention is
inferred here, once per source, and nowhere else. Once every contract emits
0-based months, `infer_index_base` can simply return 0.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from models.chain import ChainSnapshot, LogKind, PaymentLogEntry
from models.payments import InstallmentStatus

from reconciliation.normalize import normalize_installment_status


def infer_index_base(raw_numbers: Iterable[int], total_months: int) -> int:
    """Return 0 or 1: the base the raw month numbers are expressed in.

    - any raw value of 0 -> 0-based
    - otherwise, max raw value == total_months - 1 -> 0-based
    - otherwise 1-based
    """
    values = list(raw_numbers)
    if not values:
        return 0
    if any(v == 0 for v in values):
        return 0
    if max(values) == total_months - 1:
        return 0
    return 1


def to_index(raw: int, base: int, total_months: int) -> Optional[int]:
    """Convert a raw month number to a 0-based index, None if out of range."""
    index = raw - base
    if index < 0 or index >= total_months:
        return None
    return index


def order_events(events: Iterable[PaymentLogEntry]) -> List[PaymentLogEntry]:
    """Chronological order: (block_number, log_index) ascending."""
    return sorted(events, key=lambda e: e.order_key)


def events_by_index(snapshot: ChainSnapshot, total_months: int) -> Dict[int, InstallmentStatus]:
    """Bucket a snapshot's logs by resolved installment index.

    When an index has several logs (a failure followed by a successful retry,
    or the reverse) the chronologically last one wins.
    """
    if not snapshot.events or total_months <= 0:
        return {}

    base = infer_index_base((e.month_number for e in snapshot.events), total_months)

    result: Dict[int, InstallmentStatus] = {}
    for event in order_events(snapshot.events):
        index = to_index(event.month_number, base, total_months)
        if index is None:
            continue
        if event.status == LogKind.EXECUTED:
            result[index] = InstallmentStatus.EXECUTED
        else:
            result[index] = InstallmentStatus.FAILED
    return result


def _parse_key(key) -> Optional[int]:
    try:
        return int(str(key).strip())
    except (TypeError, ValueError):
        return None


def db_statuses_by_index(monthly_statuses: Mapping[str, str], total_months: int) -> Dict[int, InstallmentStatus]:
    """Resolve the keeper's sparse `monthly_statuses` map to 0-based indices.

    Keys that are not integers and values that do not normalize are dropped.
    The key convention is inferred with the same rule as event logs.
    """
    if not monthly_statuses or total_months <= 0:
        return {}

    keys: List[int] = []
    parsed: List[Tuple[int, InstallmentStatus]] = []
    for key, value in monthly_statuses.items():
        raw = _parse_key(key)
        if raw is None:
            continue
        # The writer's key convention holds even for values we cannot read
        keys.append(raw)
        status = normalize_installment_status(value)
        if status is not None:
            parsed.append((raw, status))

    base = infer_index_base(keys, total_months)

    result: Dict[int, InstallmentStatus] = {}
    for raw, status in parsed:
        index = to_index(raw, base, total_months)
        if index is not None:
            result[index] = status
    return result
