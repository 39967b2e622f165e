"""
Server-side birth date re-validation.

The client runs the extraction pipeline in an environment we do not control,
so its claimed birth date is never taken at face value:

1. Re-run the birth date extractor on the raw OCR text the client submitted.
2. If that succeeds, the server's result wins, whatever the client claimed.
3. If it fails, LENIENT mode accepts a well-formed YYYY-MM-DD claim whose
   age meets the minimum. This keeps the fast path usable on partial OCR
   text but trusts the client; STRICT mode rejects instead.
4. Otherwise reject.

Rejection reasons are kept for logs only; callers show a generic message.
"""
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from utils.config import CLIENT_DOB_TRUST_MODE, MIN_AGE
from utils.date_utils import calculate_age, format_date, parse_iso_date, today_or

from services.dob_extractor import extract_dob_from_text

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Verification could not be completed"

SOURCE_SERVER = "server"
SOURCE_CLIENT = "client"


class ClientTrustMode(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"


def configured_trust_mode() -> ClientTrustMode:
    try:
        return ClientTrustMode(CLIENT_DOB_TRUST_MODE)
    except ValueError:
        logger.warning(f"Unknown CLIENT_DOB_TRUST_MODE '{CLIENT_DOB_TRUST_MODE}', using strict")
        return ClientTrustMode.STRICT


@dataclass
class RevalidationResult:
    passed: bool
    birth_date: Optional[date] = None
    age: Optional[int] = None
    source: Optional[str] = None
    reason: Optional[str] = None

    @property
    def age_passed(self) -> bool:
        return self.passed and self.age is not None and self.age >= MIN_AGE

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "birthDate": format_date(self.birth_date) if self.birth_date else None,
            "age": self.age,
            "source": self.source,
        }


def revalidate_birth_date(
    raw_text: Optional[str],
    claimed_birth_date: Optional[str] = None,
    claimed_age: Optional[int] = None,
    mode: Optional[ClientTrustMode] = None,
    today: Optional[date] = None,
    min_age: int = MIN_AGE,
) -> RevalidationResult:
    """
    Corroborate a birth date from raw OCR text, optionally falling back to
    the client's claim (see module docstring).

    ``passed`` means a birth date was established; whether the age is enough
    is reported separately through ``age`` so callers can tell "could not
    verify" from "too young".
    """
    mode = mode or configured_trust_mode()
    today = today_or(today)

    try:
        extraction = extract_dob_from_text(raw_text or "", today=today, min_age=min_age)
    except Exception as e:
        logger.warning(f"Birth date extraction raised; treating as not found: {e}", exc_info=True)
        extraction = None

    if extraction is not None and extraction.found:
        claimed = parse_iso_date(claimed_birth_date)
        if claimed is not None and claimed != extraction.birth_date:
            logger.warning("Client birth date differs from server extraction; using server value")
        logger.info(
            "Birth date corroborated by server extraction",
            extra={"strategy": extraction.strategy}
        )
        return RevalidationResult(
            passed=True,
            birth_date=extraction.birth_date,
            age=extraction.age,
            source=SOURCE_SERVER,
        )

    if mode == ClientTrustMode.LENIENT:
        claimed = parse_iso_date(claimed_birth_date)
        if claimed is not None and claimed_age is not None and claimed_age >= min_age:
            age = calculate_age(claimed, today)
            if age >= min_age:
                logger.warning("Server extraction failed; trusting client-claimed birth date (lenient mode)")
                return RevalidationResult(
                    passed=True,
                    birth_date=claimed,
                    age=age,
                    source=SOURCE_CLIENT,
                )
            reason = "claimed age does not match claimed birth date"
        else:
            reason = "no birth date in text and claim not usable"
    else:
        reason = "no birth date in text (strict mode)"

    logger.info(f"Birth date re-validation rejected: {reason}")
    return RevalidationResult(passed=False, reason=reason)
