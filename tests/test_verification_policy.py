"""
Verification Policy Tests

Tests for the age / expiry / completeness rules.
Run with: pytest tests/test_verification_policy.py -v
"""
from datetime import date

from services.face_recognition import validate_face_match
from services.ocr_service import ExtractedDocumentData, FieldOcrResult
from services.verification_policy import (
    ID_EXPIRED,
    ID_EXPIRING_SOON,
    INVALID_BIRTH_DATE,
    LOW_CONFIDENCE,
    NO_BIRTH_DATE,
    NO_EXPIRY_DATE,
    NO_ID_NUMBER,
    NO_NAME,
    UNDER_AGE,
    PolicyConfig,
    evaluate_document,
    evaluate_fields,
    verification_status,
)

TODAY = date(2024, 6, 1)


def codes(issues):
    return [i.code for i in issues]


def complete(**overrides):
    values = dict(
        birth_date=date(1990, 5, 14),
        expiry_date=date(2029, 5, 14),
        id_number="12345-67890-54321",
        name="SMITH, JOHN",
        confidence=85.0,
        today=TODAY,
    )
    values.update(overrides)
    return evaluate_fields(**values)


class TestHardErrors:
    """Errors block validity."""

    def test_valid_document(self):
        verdict = complete()
        assert verdict.is_valid
        assert verdict.age == 34
        assert verdict.is_over_min_age
        assert verdict.errors == []
        assert verdict.warnings == []

    def test_missing_birth_date(self):
        verdict = complete(birth_date=None)
        assert not verdict.is_valid
        assert codes(verdict.errors) == [NO_BIRTH_DATE]
        assert verdict.age is None

    def test_under_age_day_before_anniversary(self):
        verdict = complete(birth_date=date(2006, 6, 1), today=date(2024, 5, 31))
        assert verdict.age == 17
        assert codes(verdict.errors) == [UNDER_AGE]
        assert not verdict.is_over_min_age
        assert not verdict.is_valid

    def test_expired_even_when_age_passes(self):
        verdict = complete(expiry_date=date(2023, 1, 1), today=date(2024, 1, 1))
        assert verdict.is_over_min_age
        assert verdict.is_expired
        assert codes(verdict.errors) == [ID_EXPIRED]
        assert not verdict.is_valid

    def test_future_birth_date_is_implausible(self):
        verdict = complete(birth_date=date(2030, 1, 1))
        assert codes(verdict.errors) == [INVALID_BIRTH_DATE]
        assert not verdict.is_valid

    def test_ancient_birth_date_is_implausible(self):
        verdict = complete(birth_date=date(1850, 1, 1))
        assert codes(verdict.errors) == [INVALID_BIRTH_DATE]

    def test_custom_minimum_age(self):
        verdict = complete(birth_date=date(2005, 1, 1), config=PolicyConfig(min_age=21))
        assert codes(verdict.errors) == [UNDER_AGE]


class TestWarnings:
    """Warnings never block validity."""

    def test_missing_optional_fields(self):
        verdict = complete(expiry_date=None, id_number=None, name="", confidence=5.0)
        assert verdict.is_valid
        assert codes(verdict.warnings) == [NO_EXPIRY_DATE, NO_ID_NUMBER, NO_NAME, LOW_CONFIDENCE]

    def test_expiring_soon(self):
        verdict = complete(expiry_date=date(2024, 7, 1))
        assert verdict.is_valid
        assert codes(verdict.warnings) == [ID_EXPIRING_SOON]

    def test_expires_today_is_not_expired(self):
        verdict = complete(expiry_date=TODAY)
        assert verdict.is_valid
        assert not verdict.is_expired
        assert codes(verdict.warnings) == [ID_EXPIRING_SOON]

    def test_validity_gate(self):
        """is_valid holds exactly when there are no errors, age passes and the ID is not expired."""
        births = [None, date(1990, 5, 14), date(2010, 1, 1), date(2100, 1, 1)]
        expiries = [None, date(2020, 1, 1), TODAY, date(2030, 1, 1)]
        for birth in births:
            for expiry in expiries:
                verdict = complete(birth_date=birth, expiry_date=expiry)
                expected = not verdict.errors and verdict.is_over_min_age and not verdict.is_expired
                assert verdict.is_valid == expected


class TestSerialization:

    def test_to_dict(self):
        data = complete(expiry_date=None).to_dict()
        assert data["isOver19"] is True
        assert data["birthDate"] == "1990-05-14"
        assert data["expiryDate"] is None
        assert data["warnings"][0]["code"] == NO_EXPIRY_DATE

    def test_evaluate_extracted_document(self):
        fields = {
            "name": FieldOcrResult("name", "SMITH, JOHN", 80.0, "SMITH, JOHN", "region"),
            "dlNumber": FieldOcrResult("dlNumber", "", 0.0),
            "dob": FieldOcrResult("dob", "1990/05/14", 80.0, "1990-05-14", "region"),
            "expiry": FieldOcrResult("expiry", "2029/05/14", 80.0, "2029-05-14", "region"),
        }
        data = ExtractedDocumentData(fields=fields, raw_text="", confidence=60.0)
        verdict = evaluate_document(data, today=TODAY)
        assert verdict.is_valid
        assert codes(verdict.warnings) == [NO_ID_NUMBER]


class TestVerificationStatus:

    def test_success(self):
        status = verification_status(complete(), validate_face_match(0.9))
        assert status.succeeded
        assert status.message == "Age verification successful"

    def test_document_error_reported_first(self):
        status = verification_status(complete(birth_date=None), validate_face_match(0.1))
        assert status.status == "failed"
        assert "date of birth" in status.message

    def test_face_mismatch(self):
        status = verification_status(complete(), validate_face_match(0.6))
        assert status.status == "failed"
        assert "inconclusive" in status.message

    def test_without_face_match(self):
        assert verification_status(complete()).succeeded
