"""
Date candidate scanner shared by the birth-date and expiry parsers.

Finds every calendar-valid date in raw OCR text, in either year-first
(``YYYY/MM/DD``) or day/month-first (``DD/MM/YYYY`` or ``MM/DD/YYYY``) form,
with ``/``, ``-`` or ``.`` separators. Ambiguous day/month-first forms are read
month-first, then day-first if that is not a real date. Every candidate goes
through ``build_date``, so roll-over dates such as 2024-02-30 never appear.

Each candidate carries the nearest field label found in the characters just
before it ("birth", "issue", "expiry", "valid" or None).
"""
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from utils.config import LABEL_CONTEXT_WINDOW
from utils.date_utils import build_date, format_date

BIRTH = "birth"
ISSUE = "issue"
EXPIRY = "expiry"
VALID = "valid"

# Labels marking issue / expiry dates, never a birth date
EXCLUSION_LABELS = frozenset({ISSUE, EXPIRY, VALID})

BIRTH_LABEL = r"D[O0]B|DATE\s+OF\s+BIRTH|BIRTH|BORN|NAISSANCE"
# Ontario field numbers: 4a issue date, 4b expiry date
ISSUE_LABEL = r"(?<![A-Z0-9])4A(?![A-Z0-9])|(?<![A-Z])(?:ISS|DEL)"
EXPIRY_LABEL = r"(?<![A-Z0-9])4B(?![A-Z0-9])|E[XK][PFR]"
VALID_LABEL = r"VALID"

_LABELS = re.compile(
    rf"(?P<{BIRTH}>{BIRTH_LABEL})|(?P<{ISSUE}>{ISSUE_LABEL})"
    rf"|(?P<{EXPIRY}>{EXPIRY_LABEL})|(?P<{VALID}>{VALID_LABEL})",
    re.IGNORECASE,
)

_SEP = r"\s?[/\-.]\s?"
YEAR_FIRST = re.compile(rf"(?<!\d)(\d{{4}}){_SEP}(\d{{1,2}}){_SEP}(\d{{1,2}})(?!\d)")
YEAR_LAST = re.compile(rf"(?<!\d)(\d{{1,2}}){_SEP}(\d{{1,2}}){_SEP}(\d{{4}})(?!\d)")

# Punctuation allowed between a label and the date it introduces
_LABEL_GAP = r"[\s:.,#\-]*"


@dataclass(frozen=True)
class DateCandidate:
    value: date
    start: int
    end: int
    raw: str
    label: Optional[str] = None

    @property
    def iso(self) -> str:
        return format_date(self.value)

    @property
    def year(self) -> int:
        return self.value.year


def nearest_label(text: str, position: int, window: int = LABEL_CONTEXT_WINDOW) -> Optional[str]:
    """Kind of the label closest before ``position`` within ``window`` characters."""
    context = text[max(0, position - window):position]
    last = None
    for match in _LABELS.finditer(context):
        last = match.lastgroup
    return last


def interpret_year_last(first: str, second: str, year: str) -> Optional[date]:
    """Month-first, then day-first."""
    return build_date(year, first, second) or build_date(year, second, first)


def find_date_candidates(text: str, window: int = LABEL_CONTEXT_WINDOW) -> List[DateCandidate]:
    """All calendar-valid dates in ``text``, in reading order."""
    if not text:
        return []

    candidates = []
    for match in YEAR_FIRST.finditer(text):
        value = build_date(*match.groups())
        if value is not None:
            candidates.append(_candidate(text, match, value, window))

    for match in YEAR_LAST.finditer(text):
        value = interpret_year_last(*match.groups())
        if value is not None:
            candidates.append(_candidate(text, match, value, window))

    candidates.sort(key=lambda c: c.start)
    return candidates


def _candidate(text: str, match: re.Match, value: date, window: int) -> DateCandidate:
    return DateCandidate(
        value=value,
        start=match.start(),
        end=match.end(),
        raw=match.group(0),
        label=nearest_label(text, match.start(), window),
    )


def immediately_labeled(text: str, candidate: DateCandidate, label_pattern: str) -> bool:
    """True if ``label_pattern`` sits directly before the candidate (only punctuation between)."""
    prefix = text[max(0, candidate.start - 40):candidate.start]
    return re.search(rf"(?:{label_pattern}){_LABEL_GAP}$", prefix, re.IGNORECASE) is not None
