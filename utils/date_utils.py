"""
Date Utilities for document fields.

Provides centralized date construction, formatting and age arithmetic so every
parser and policy check agrees on a single standard format (YYYY-MM-DD) and on
what counts as a real calendar date.

Usage:
    from utils.date_utils import build_date, format_date, parse_iso_date, calculate_age

    d = build_date(1990, 5, 14)            # -> date(1990, 5, 14)
    build_date(2024, 2, 30)                # -> None (no roll-over into March)
    format_date(d)                         # -> "1990-05-14"
    calculate_age(d, date(2024, 6, 1))     # -> 34
"""
import re
from datetime import date, datetime
from typing import Optional, Union


# =============================================================================
# STANDARD FORMAT CONSTANT
# =============================================================================
STANDARD_DATE_FORMAT = "%Y-%m-%d"

ISO_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


# =============================================================================
# CORE FUNCTIONS
# =============================================================================

def build_date(year: Union[int, str], month: Union[int, str], day: Union[int, str]) -> Optional[date]:
    """
    Construct a calendar date from its parts, or None if the parts are not a real date.

    This is the single validator every date candidate goes through. The
    constructed date must echo the parts exactly, so impossible dates such as
    day 31 of a 30-day month are rejected instead of rolling over.

    Example:
        >>> build_date("2024", "02", "29")
        datetime.date(2024, 2, 29)
        >>> build_date(2023, 2, 29) is None
        True
    """
    try:
        y, m, d = int(year), int(month), int(day)
        value = date(y, m, d)
    except (TypeError, ValueError):
        return None

    if (value.year, value.month, value.day) != (y, m, d):
        return None
    return value


def format_date(date_obj: Union[date, datetime]) -> str:
    """
    Convert a date to the application-wide standard string format.

    Example:
        >>> format_date(date(2024, 1, 15))
        '2024-01-15'
    """
    return date_obj.strftime(STANDARD_DATE_FORMAT)


def parse_iso_date(date_str: Optional[str]) -> Optional[date]:
    """
    Parse a strict YYYY-MM-DD string.

    Returns None for anything else, including well-formed strings that name an
    impossible date.
    """
    if not date_str:
        return None

    match = ISO_DATE_PATTERN.match(date_str.strip())
    if not match:
        return None
    return build_date(*match.groups())


def is_iso_date(date_str: Optional[str]) -> bool:
    """True if the string is a YYYY-MM-DD representation of a real date."""
    return parse_iso_date(date_str) is not None


def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    """
    Exact age in whole years on ``today``.

    Years elapsed, minus one if this year's birthday has not happened yet.
    A 29 February birthday counts as reached on 1 March in non-leap years.

    Example:
        >>> calculate_age(date(2006, 6, 1), date(2024, 5, 31))
        17
        >>> calculate_age(date(2006, 6, 1), date(2024, 6, 1))
        18
    """
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def today_or(today: Optional[date]) -> date:
    """Return ``today`` if given, else the current local date."""
    return today if today is not None else date.today()
