"""
Expiry Date Check Service

Classifies a document's expiry date against a reference day:
- expired       (strictly before the reference day; time of day is ignored)
- expiring_soon (today or within the warning window)
- valid
- unknown       (no expiry date available)
"""
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from utils.config import EXPIRING_SOON_DAYS
from utils.date_utils import format_date, parse_iso_date, today_or


class ExpiryStatus(str, Enum):
    """Document expiry status."""
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


@dataclass
class ExpiryCheckResult:
    """Result of an expiry check."""
    is_expired: bool
    status: ExpiryStatus
    expiry_date: Optional[str]  # YYYY-MM-DD
    days_until_expiry: Optional[int]  # Negative if expired
    message: str

    def to_dict(self) -> dict:
        return {
            "isExpired": self.is_expired,
            "status": self.status.value,
            "expiryDate": self.expiry_date,
            "daysUntilExpiry": self.days_until_expiry,
            "message": self.message
        }


def _as_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_iso_date(value)


def check_expiry_date(
    expiry: Union[date, datetime, str, None],
    reference_date: Optional[date] = None,
    expiring_soon_days: int = EXPIRING_SOON_DAYS,
) -> ExpiryCheckResult:
    """
    Check a document's expiry date.

    Args:
        expiry: Expiry as a date, datetime or YYYY-MM-DD string
        reference_date: Day to check against (defaults to today)
        expiring_soon_days: Days before expiry that count as "expiring soon"

    Returns:
        ExpiryCheckResult; a document expiring on the reference day is not expired
    """
    expiry_date = _as_date(expiry)
    if expiry_date is None:
        return ExpiryCheckResult(
            is_expired=False,
            status=ExpiryStatus.UNKNOWN,
            expiry_date=None,
            days_until_expiry=None,
            message="Expiry date not provided or could not be extracted"
        )

    reference_date = today_or(_as_date(reference_date))
    days_diff = (expiry_date - reference_date).days
    formatted = format_date(expiry_date)

    if days_diff < 0:
        return ExpiryCheckResult(
            is_expired=True,
            status=ExpiryStatus.EXPIRED,
            expiry_date=formatted,
            days_until_expiry=days_diff,
            message=f"Document expired {abs(days_diff)} day(s) ago"
        )

    if days_diff == 0:
        return ExpiryCheckResult(
            is_expired=False,
            status=ExpiryStatus.EXPIRING_SOON,
            expiry_date=formatted,
            days_until_expiry=0,
            message="Document expires today"
        )

    if days_diff <= expiring_soon_days:
        return ExpiryCheckResult(
            is_expired=False,
            status=ExpiryStatus.EXPIRING_SOON,
            expiry_date=formatted,
            days_until_expiry=days_diff,
            message=f"Document will expire in {days_diff} day(s)"
        )

    return ExpiryCheckResult(
        is_expired=False,
        status=ExpiryStatus.VALID,
        expiry_date=formatted,
        days_until_expiry=days_diff,
        message=f"Document is valid for {days_diff} more day(s)"
    )
