"""
Verification Policy: turns extracted document fields into a verdict.

Hard errors (block validity):
    NO_BIRTH_DATE, INVALID_BIRTH_DATE, UNDER_AGE, ID_EXPIRED
Warnings (never block):
    NO_EXPIRY_DATE, NO_ID_NUMBER, NO_NAME, LOW_CONFIDENCE, ID_EXPIRING_SOON

Policy violations are returned as data, never raised.

    is_valid = no errors AND age >= MIN_AGE AND not expired
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from utils.config import (
    EXPIRING_SOON_DAYS,
    LOW_CONFIDENCE_THRESHOLD,
    MAX_PLAUSIBLE_AGE,
    MIN_AGE,
)
from utils.date_utils import calculate_age, format_date, today_or

from services.expiry_date_service import ExpiryStatus, check_expiry_date
from services.face_recognition import FaceMatchResult

logger = logging.getLogger(__name__)


# Error codes
NO_BIRTH_DATE = "NO_BIRTH_DATE"
INVALID_BIRTH_DATE = "INVALID_BIRTH_DATE"
UNDER_AGE = "UNDER_AGE"
ID_EXPIRED = "ID_EXPIRED"

# Warning codes
NO_EXPIRY_DATE = "NO_EXPIRY_DATE"
NO_ID_NUMBER = "NO_ID_NUMBER"
NO_NAME = "NO_NAME"
LOW_CONFIDENCE = "LOW_CONFIDENCE"
ID_EXPIRING_SOON = "ID_EXPIRING_SOON"


@dataclass(frozen=True)
class Issue:
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class PolicyConfig:
    min_age: int = MIN_AGE
    max_plausible_age: int = MAX_PLAUSIBLE_AGE
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD
    expiring_soon_days: int = EXPIRING_SOON_DAYS


DEFAULT_POLICY = PolicyConfig()


@dataclass
class ValidationVerdict:
    is_valid: bool
    age: Optional[int] = None
    is_over_min_age: bool = False
    is_expired: bool = False
    birth_date: Optional[date] = None
    expiry_date: Optional[date] = None
    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)

    @property
    def first_error(self) -> Optional[Issue]:
        return self.errors[0] if self.errors else None

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "age": self.age,
            "isOver19": self.is_over_min_age,
            "isExpired": self.is_expired,
            "birthDate": format_date(self.birth_date) if self.birth_date else None,
            "expiryDate": format_date(self.expiry_date) if self.expiry_date else None,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def evaluate_fields(
    birth_date: Optional[date],
    expiry_date: Optional[date] = None,
    id_number: Optional[str] = None,
    name: Optional[str] = None,
    confidence: Optional[float] = None,
    today: Optional[date] = None,
    config: PolicyConfig = DEFAULT_POLICY,
) -> ValidationVerdict:
    """Apply the age / expiry / completeness rules to already-parsed field values."""
    today = today_or(today)
    errors: List[Issue] = []
    warnings: List[Issue] = []

    age = None
    is_over_min_age = False
    if birth_date is None:
        errors.append(Issue(
            NO_BIRTH_DATE,
            "Could not find date of birth. Make sure it is clearly visible and retake the photo."
        ))
    else:
        age = calculate_age(birth_date, today)
        if age < 0 or age > config.max_plausible_age:
            errors.append(Issue(
                INVALID_BIRTH_DATE,
                "The date of birth read from the document is not plausible. Please retake the photo."
            ))
        elif age < config.min_age:
            errors.append(Issue(
                UNDER_AGE,
                f"You must be at least {config.min_age} years old. Detected age: {age}."
            ))
        else:
            is_over_min_age = True

    is_expired = False
    if expiry_date is None:
        warnings.append(Issue(NO_EXPIRY_DATE, "Could not read the expiry date from the document."))
    else:
        expiry = check_expiry_date(expiry_date, today, config.expiring_soon_days)
        if expiry.is_expired:
            is_expired = True
            errors.append(Issue(
                ID_EXPIRED,
                f"This ID expired on {expiry.expiry_date}. Please use a valid ID."
            ))
        elif expiry.status == ExpiryStatus.EXPIRING_SOON:
            warnings.append(Issue(ID_EXPIRING_SOON, expiry.message))

    if not id_number:
        warnings.append(Issue(NO_ID_NUMBER, "Could not read the licence number."))

    if not name:
        warnings.append(Issue(NO_NAME, "Could not read the name on the document."))

    if confidence is not None and confidence < config.low_confidence_threshold:
        warnings.append(Issue(
            LOW_CONFIDENCE,
            "The image was hard to read. Results may be incomplete; consider retaking the photo."
        ))

    is_valid = not errors and is_over_min_age and not is_expired

    logger.debug(
        f"Policy verdict valid={is_valid} errors={[e.code for e in errors]} "
        f"warnings={[w.code for w in warnings]}"
    )

    return ValidationVerdict(
        is_valid=is_valid,
        age=age,
        is_over_min_age=is_over_min_age,
        is_expired=is_expired,
        birth_date=birth_date,
        expiry_date=expiry_date,
        errors=errors,
        warnings=warnings,
    )


def evaluate_document(
    data,
    today: Optional[date] = None,
    config: PolicyConfig = DEFAULT_POLICY,
) -> ValidationVerdict:
    """
    Evaluate an ``ExtractedDocumentData`` (anything with ``birth_date``,
    ``expiry_date``, ``id_number``, ``name`` and ``confidence``).
    """
    return evaluate_fields(
        birth_date=data.birth_date,
        expiry_date=data.expiry_date,
        id_number=data.id_number,
        name=data.name,
        confidence=data.confidence,
        today=today,
        config=config,
    )


@dataclass
class VerificationStatus:
    status: str  # "success" or "failed"
    message: str

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict:
        return {"status": self.status, "message": self.message}


def verification_status(
    verdict: ValidationVerdict,
    face_match: Optional[FaceMatchResult] = None,
) -> VerificationStatus:
    """Combine the document verdict and the face-match result into one outcome."""
    if not verdict.is_valid:
        issue = verdict.first_error
        return VerificationStatus("failed", issue.message if issue else "Document validation failed")

    if face_match is not None and not face_match.passed:
        return VerificationStatus("failed", face_match.message)

    return VerificationStatus("success", "Age verification successful")
