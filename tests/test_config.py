"""
Configuration and Threshold Tests

Tests for configuration settings, logging setup and threshold validation.
Run with: pytest tests/test_config.py -v
"""
import json
import logging

from utils.config import (
    BIRTH_WINDOW_MIN_AGE,
    CHALLENGE_TTL_SECONDS,
    CLIENT_DOB_TRUST_MODE,
    EXPIRING_SOON_DAYS,
    FACE_MATCH_INCONCLUSIVE_THRESHOLD,
    FACE_MATCH_THRESHOLD,
    ID_NUMBER_DIGITS,
    ID_NUMBER_GROUPS,
    LOW_CONFIDENCE_THRESHOLD,
    MAX_PLAUSIBLE_AGE,
    MIN_AGE,
    OCR_ENGINE,
    OLDEST_FALLBACK_MIN_AGE,
)
from utils.logging_config import JSONFormatter, RequestIDFilter, request_id_var
from services.ocr_engine import ENGINES
from services.regions import LAYOUTS
from utils.config import DOCUMENT_LAYOUT


class TestPolicyThresholds:
    """Test policy threshold validity."""

    def test_age_bounds(self):
        assert MIN_AGE == 19
        assert 0 < MIN_AGE < MAX_PLAUSIBLE_AGE

    def test_confidence_threshold_in_range(self):
        assert 0 <= LOW_CONFIDENCE_THRESHOLD <= 100

    def test_expiry_window_positive(self):
        assert EXPIRING_SOON_DAYS > 0

    def test_face_thresholds_ordered(self):
        """Inconclusive band must sit below the pass threshold."""
        assert 0 <= FACE_MATCH_INCONCLUSIVE_THRESHOLD <= FACE_MATCH_THRESHOLD <= 1

    def test_id_number_grouping_matches_digit_count(self):
        assert sum(ID_NUMBER_GROUPS) == ID_NUMBER_DIGITS

    def test_fallback_windows(self):
        assert OLDEST_FALLBACK_MIN_AGE > 0
        assert BIRTH_WINDOW_MIN_AGE > 0

    def test_trust_mode_known(self):
        assert CLIENT_DOB_TRUST_MODE in ("strict", "lenient")

    def test_challenge_ttl_positive(self):
        assert CHALLENGE_TTL_SECONDS > 0


class TestComponentSelection:

    def test_configured_engine_registered(self):
        assert OCR_ENGINE in ENGINES

    def test_configured_layout_registered(self):
        assert DOCUMENT_LAYOUT in LAYOUTS


class TestLogging:
    """Test structured log output."""

    def _record(self, **extra):
        record = logging.LogRecord("services.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter(self):
        record = self._record(latency_ms=12.5, field="dob")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "services.test"
        assert entry["latency_ms"] == 12.5
        assert entry["field"] == "dob"

    def test_request_id_attached(self):
        token = request_id_var.set("req-123")
        try:
            record = self._record()
            assert RequestIDFilter().filter(record)
        finally:
            request_id_var.reset(token)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["request_id"] == "req-123"

    def test_request_id_default(self):
        record = self._record()
        RequestIDFilter().filter(record)
        assert record.request_id == "-"
