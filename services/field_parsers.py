"""
Field Parsers

Pure functions turning raw OCR text into normalized field values, or None.
None always means "field not found"; parsers never raise for string input.

- Name:       letters, spaces, comma, apostrophe, hyphen; label-only residue rejected
- ID number:  digits only, exact length, regrouped with hyphens (5-5-5)
- Expiry:     labeled EXP date, then "mashed" digits, then furthest-future date
- Birth date: see services.dob_extractor
"""
import re
from datetime import date
from typing import List, Optional, Sequence

from utils.config import (
    EXPIRY_MAX_YEARS_AHEAD,
    EXPIRY_MIN_YEAR,
    ID_NUMBER_DIGITS,
    ID_NUMBER_GROUPS,
)
from utils.date_utils import build_date, today_or

from services.date_candidates import (
    BIRTH,
    ISSUE,
    DateCandidate,
    find_date_candidates,
    immediately_labeled,
    nearest_label,
)


# =============================================================================
# NAME
# =============================================================================

NAME_LABEL_WORDS = frozenset({
    "NAME", "NAMES", "SURNAME", "GIVEN", "FIRST", "LAST", "NOM", "PRENOM", "PRENOMS",
    "DOB", "EXP", "ISS", "SEX", "HGT", "CLASS", "REST", "DRIVER", "DRIVERS",
    "LICENCE", "LICENSE", "PERMIS", "CONDUIRE", "ONTARIO", "CANADA",
})

_NAME_CHARS = re.compile(r"[^A-Za-z ,'\-]")
_WORDS = re.compile(r"[A-Za-z]+")


def clean_name(raw: Optional[str]) -> str:
    """Strip to name characters and collapse whitespace (newlines become spaces)."""
    if not raw:
        return ""
    text = _NAME_CHARS.sub(" ", raw.replace("\n", " "))
    text = re.sub(r"\s+", " ", text)
    return text.strip(" ,'-")


def _only_labels(text: str) -> bool:
    words = _WORDS.findall(text.upper())
    return not words or all(w in NAME_LABEL_WORDS for w in words)


def parse_name(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a name crop's OCR text.

    >>> parse_name("SURNAME\\nSMITH, JOHN")
    'SURNAME SMITH, JOHN'
    >>> parse_name("NAME") is None
    True
    """
    name = clean_name(raw)
    if not name or _only_labels(name):
        return None
    return name


def name_from_document(raw_text: Optional[str]) -> Optional[str]:
    """
    Fallback: first whole-document line that looks like a name.

    Skips lines that start with a known label, carry more than two digits, or
    are mostly non-letters.
    """
    for line in (raw_text or "").splitlines():
        stripped = line.strip()
        if len(stripped) < 3:
            continue
        if sum(ch.isdigit() for ch in stripped) > 2:
            continue
        letters = sum(ch.isalpha() for ch in stripped)
        if letters / len(stripped) < 0.6:
            continue
        first_word = _WORDS.match(stripped.upper())
        if first_word and first_word.group(0) in NAME_LABEL_WORDS:
            continue
        name = parse_name(stripped)
        if name:
            return name
    return None


# =============================================================================
# ID NUMBER
# =============================================================================

def format_id_number(digits: str, groups: Sequence[int] = ID_NUMBER_GROUPS) -> str:
    parts = []
    pos = 0
    for size in groups:
        parts.append(digits[pos:pos + size])
        pos += size
    return "-".join(parts)


def parse_id_number(
    raw: Optional[str],
    digit_count: int = ID_NUMBER_DIGITS,
    groups: Sequence[int] = ID_NUMBER_GROUPS,
) -> Optional[str]:
    """
    Keep the digits; require exactly ``digit_count`` of them; regroup.

    >>> parse_id_number("A12345-67890-54321")
    '12345-67890-54321'
    >>> parse_id_number("1234-56789-54321") is None
    True
    """
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) != digit_count:
        return None
    return format_id_number(digits, groups)


def id_number_from_document(
    raw_text: Optional[str],
    groups: Sequence[int] = ID_NUMBER_GROUPS,
) -> Optional[str]:
    """Fallback: a hyphen-grouped number such as ``A1234-56789-01234`` in the whole text."""
    pattern = r"[\s\-–]*".join(rf"\d{{{size}}}" for size in groups)
    match = re.search(rf"(?<!\d){pattern}(?!\d)", raw_text or "")
    if not match:
        return None
    return parse_id_number(match.group(0), sum(groups), groups)


# =============================================================================
# EXPIRY DATE
# =============================================================================

EXPIRY_LABEL = r"(?:4b\s*)?E[XK][PFR](?:IRY|IRES|IRATION|\.)?(?:\s+DATE)?"

# 20xx followed by 4-6 digits: a date whose separators were read as digits
_MASHED = re.compile(r"(?<!\d)(20\d{2})(\d{4,6})(?!\d)")


def _expiry_year_ok(year: int, today: date) -> bool:
    return EXPIRY_MIN_YEAR <= year <= today.year + EXPIRY_MAX_YEARS_AHEAD


def mashed_date_interpretations(year: str, rest: str) -> List[date]:
    """
    Possible dates for ``year`` followed by a run of digits.

    4 digits: MMDD. 5 digits: one stray separator digit, either after the year
    or between month and day. 6 digits: two stray separators.
    """
    if len(rest) == 4:
        splits = [(rest[0:2], rest[2:4])]
    elif len(rest) == 5:
        splits = [(rest[1:3], rest[3:5]), (rest[0:2], rest[3:5])]
    elif len(rest) == 6:
        splits = [(rest[1:3], rest[4:6])]
    else:
        return []

    dates = []
    for month, day in splits:
        if int(month) > 12 or int(day) > 31:
            continue
        value = build_date(year, month, day)
        if value is not None:
            dates.append(value)
    return dates


def parse_expiry_date(raw: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """
    Find the expiry date in OCR text.

    Order: a date directly after an EXP label (including OCR garbles such as
    EKP / EXF / EXR), then "mashed" digit runs not labeled as a birth or
    issue date, then the furthest-future unlabeled date in the plausible
    expiry range.
    """
    today = today_or(today)
    text = raw or ""
    if not text.strip():
        return None

    candidates = find_date_candidates(text)

    for candidate in candidates:
        if immediately_labeled(text, candidate, EXPIRY_LABEL):
            return candidate.value

    for match in _MASHED.finditer(text):
        if nearest_label(text, match.start()) in (BIRTH, ISSUE):
            continue
        for value in mashed_date_interpretations(*match.groups()):
            if _expiry_year_ok(value.year, today):
                return value

    future_leaning: List[DateCandidate] = [
        c for c in candidates
        if c.label not in (BIRTH, ISSUE) and _expiry_year_ok(c.year, today)
    ]
    if not future_leaning:
        return None
    return max(future_leaning, key=lambda c: c.value).value
