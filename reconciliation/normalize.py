"""Status vocabulary normalization.

The keeper, the indexer and the frontend each wrote their own words into the
database. Everything is folded into InstallmentStatus / AgreementStatus here;
anything unrecognized becomes None and is treated as missing information.
"""

from typing import Optional

from models.payments import AgreementStatus, InstallmentStatus


# "released" is what single payments and older keeper versions write for a
# successful transfer.
_INSTALLMENT_SYNONYMS = {
    "executed": InstallmentStatus.EXECUTED,
    "released": InstallmentStatus.EXECUTED,
    "failed": InstallmentStatus.FAILED,
    "pending": InstallmentStatus.PENDING,
    "cancelled": InstallmentStatus.CANCELLED,
    "canceled": InstallmentStatus.CANCELLED,
}

# Top-level record status of a single payment -> its one installment.
# "pending"/"active" are lifecycle defaults and decide nothing.
_SINGLE_DECIDED = {
    "released": InstallmentStatus.EXECUTED,
    "executed": InstallmentStatus.EXECUTED,
    "completed": InstallmentStatus.EXECUTED,
    "failed": InstallmentStatus.FAILED,
    "cancelled": InstallmentStatus.CANCELLED,
    "canceled": InstallmentStatus.CANCELLED,
}

_AGREEMENT_SYNONYMS = {
    "pending": AgreementStatus.PENDING,
    "active": AgreementStatus.ACTIVE,
    "completed": AgreementStatus.COMPLETED,
    "released": AgreementStatus.COMPLETED,
    "cancelled": AgreementStatus.CANCELLED,
    "canceled": AgreementStatus.CANCELLED,
    "failed": AgreementStatus.FAILED,
}


def _clean(value) -> Optional[str]:
    if value is None or not isinstance(value, str):
        return None
    s = value.strip().lower()
    return s or None


def normalize_installment_status(value) -> Optional[InstallmentStatus]:
    """Map a DB monthly status to an InstallmentStatus, or None if malformed.

    `mixed` is never accepted from storage: it only exists as a batch aggregate.
    """
    key = _clean(value)
    if key is None:
        return None
    return _INSTALLMENT_SYNONYMS.get(key)


def normalize_single_status(value) -> Optional[InstallmentStatus]:
    """Map a single payment's record status to a decided installment status."""
    key = _clean(value)
    if key is None:
        return None
    return _SINGLE_DECIDED.get(key)


def normalize_agreement_status(value) -> Optional[AgreementStatus]:
    """Map a raw record status to an AgreementStatus, or None if malformed."""
    key = _clean(value)
    if key is None:
        return None
    return _AGREEMENT_SYNONYMS.get(key)


def fallback_agreement_status(value) -> AgreementStatus:
    """Raw record status used when no installment has been processed yet."""
    return normalize_agreement_status(value) or AgreementStatus.PENDING
