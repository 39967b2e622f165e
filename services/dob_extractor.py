"""
Date-of-Birth Extractor

Resolves the birth date from raw OCR text that may hold three dates (birth,
issue, expiry) with no reliable positional anchor. Resolution is an ordered
list of strategies over the shared date candidates:

1. labeled            - a birth label ("DOB", "DATE OF BIRTH", "BIRTH", ...)
                        directly followed by a date
2. birth_year_window  - a date whose year is birth-plausible; birth-labeled
                        first, then unlabeled, then those near issue/expiry
                        labels (ISS, EXP, DEL, VALID)
3. oldest             - the oldest date in a broad plausible range

The same rules run client-side (document extraction) and server-side
(re-validation gate), so both always agree on the same text.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

from utils.config import (
    BIRTH_WINDOW_MIN_AGE,
    BIRTH_WINDOW_MIN_YEAR,
    MIN_AGE,
    OLDEST_FALLBACK_MIN_AGE,
    OLDEST_FALLBACK_MIN_YEAR,
)
from utils.date_utils import calculate_age, format_date, today_or

from services.date_candidates import (
    BIRTH,
    BIRTH_LABEL,
    EXCLUSION_LABELS,
    DateCandidate,
    find_date_candidates,
    immediately_labeled,
)

logger = logging.getLogger(__name__)


@dataclass
class DobExtractionResult:
    birth_date: Optional[date] = None
    age: Optional[int] = None
    is_over_min_age: bool = False
    raw_match: Optional[str] = None
    strategy: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.birth_date is not None

    @property
    def iso(self) -> Optional[str]:
        return format_date(self.birth_date) if self.birth_date else None

    def to_dict(self) -> dict:
        return {
            "birthDate": self.iso,
            "age": self.age,
            "isOver19": self.is_over_min_age,
            "rawMatch": self.raw_match,
            "strategy": self.strategy,
        }


Strategy = Callable[[str, List[DateCandidate], date], Optional[DateCandidate]]


def labeled_strategy(text: str, candidates: List[DateCandidate], today: date) -> Optional[DateCandidate]:
    for candidate in candidates:
        if immediately_labeled(text, candidate, BIRTH_LABEL):
            return candidate
    return None


def birth_year_window_strategy(text: str, candidates: List[DateCandidate], today: date) -> Optional[DateCandidate]:
    max_year = today.year - BIRTH_WINDOW_MIN_AGE
    in_window = [c for c in candidates if BIRTH_WINDOW_MIN_YEAR <= c.year <= max_year]
    if not in_window:
        return None

    def rank(c: DateCandidate) -> int:
        if c.label == BIRTH:
            return 0
        if c.label in EXCLUSION_LABELS:
            return 2
        return 1

    # sorted() is stable, so reading order breaks ties
    return sorted(in_window, key=rank)[0]


def oldest_date_strategy(text: str, candidates: List[DateCandidate], today: date) -> Optional[DateCandidate]:
    max_year = today.year - OLDEST_FALLBACK_MIN_AGE
    in_range = [c for c in candidates if OLDEST_FALLBACK_MIN_YEAR <= c.year <= max_year]
    if not in_range:
        return None
    return min(in_range, key=lambda c: c.value)


DOB_STRATEGIES: Sequence[Tuple[str, Strategy]] = (
    ("labeled", labeled_strategy),
    ("birth_year_window", birth_year_window_strategy),
    ("oldest", oldest_date_strategy),
)


def extract_dob_from_text(
    text: Optional[str],
    today: Optional[date] = None,
    min_age: int = MIN_AGE,
    strategies: Sequence[Tuple[str, Strategy]] = DOB_STRATEGIES,
) -> DobExtractionResult:
    """
    Find the birth date in raw OCR text and compute the age on ``today``.

    Never raises for any string input; a miss returns an empty result.

    Example:
        >>> r = extract_dob_from_text("DOB: 1990/05/14", today=date(2024, 6, 1))
        >>> r.iso, r.age, r.is_over_min_age
        ('1990-05-14', 34, True)
    """
    today = today_or(today)
    if not text or not text.strip():
        return DobExtractionResult()

    candidates = find_date_candidates(text)
    if not candidates:
        return DobExtractionResult()

    for name, strategy in strategies:
        candidate = strategy(text, candidates, today)
        if candidate is None:
            continue
        age = calculate_age(candidate.value, today)
        logger.debug(
            f"Birth date {candidate.iso} from '{candidate.raw}'",
            extra={"strategy": name, "field": "dob"},
        )
        return DobExtractionResult(
            birth_date=candidate.value,
            age=age,
            is_over_min_age=age >= min_age,
            raw_match=candidate.raw,
            strategy=name,
        )

    return DobExtractionResult()


def contains_labeled_dob(text: Optional[str]) -> bool:
    """True if the text already has a birth label directly followed by a valid date."""
    if not text:
        return False
    return any(immediately_labeled(text, c, BIRTH_LABEL) for c in find_date_candidates(text))


def contains_birth_plausible_date(text: Optional[str], today: Optional[date] = None) -> bool:
    """True if any valid date in the text falls in the birth-plausible window."""
    today = today_or(today)
    max_year = today.year - BIRTH_WINDOW_MIN_AGE
    return any(BIRTH_WINDOW_MIN_YEAR <= c.year <= max_year for c in find_date_candidates(text or ""))
