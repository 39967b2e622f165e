"""
Document OCR Service Tests

Exercises field extraction end to end with a real rectifier pool and a fake
recognition engine.
Run with: pytest tests/test_ocr_service.py -v
"""
import asyncio
import time
from datetime import date

import pytest

from services.ocr_engine import OcrText
from services.ocr_service import (
    DATES_PASS_SEPARATOR,
    SOURCE_DOCUMENT,
    SOURCE_REGION,
    DocumentOCRService,
    parse_fields,
)
from services.rectifier import ImageRectifier
from services.resource_pool import ResourcePool
from utils.exceptions import OCREngineError

TODAY = date(2024, 6, 1)


def run_with_service(factory, coro_fn, rectifier_factory=ImageRectifier, rectify_timeout=10):
    """Start fresh pools on a new loop, run ``coro_fn(service)``, shut down."""
    async def scenario():
        ocr_pool = ResourcePool(factory, size=2, name="ocr")
        rectifier_pool = ResourcePool(rectifier_factory, size=1, name="rectifier")
        await ocr_pool.start()
        await rectifier_pool.start()
        service = DocumentOCRService(ocr_pool, rectifier_pool, ocr_timeout=10, rectify_timeout=rectify_timeout)
        try:
            return await coro_fn(service), ocr_pool._resources
        finally:
            await ocr_pool.shutdown()
            await rectifier_pool.shutdown()

    return asyncio.run(scenario())


def labels_called(engines):
    return [label for engine in engines for label, _ in engine.calls]


class SlowRectifier(ImageRectifier):
    """Rectifier that always outlives a short timeout."""

    def rectify(self, image):
        time.sleep(0.3)
        return super().rectify(image)


class TestParseFields:
    """Test parsing of recognized field text."""

    def test_region_values(self, ontario_responses):
        fields = parse_fields(ontario_responses, ontario_responses["document"].text, today=TODAY)
        assert fields["name"].value == "SMITH, JOHN"
        assert fields["dlNumber"].value == "12345-67890-54321"
        assert fields["dob"].value == "1990-05-14"
        assert fields["expiry"].value == "2029-05-14"
        assert all(f.source == SOURCE_REGION for f in fields.values())

    def test_document_fallback(self, ontario_responses):
        """Empty crops fall back to the whole-document text."""
        fields = parse_fields({}, ontario_responses["document"].text, today=TODAY)
        assert fields["name"].value == "SMITH, JOHN"
        assert fields["dlNumber"].value == "12345-67890-54321"
        assert fields["dob"].value == "1990-05-14"
        assert fields["expiry"].value == "2029-05-14"
        assert all(f.source == SOURCE_DOCUMENT for f in fields.values())
        assert all(f.confidence == 0.0 for f in fields.values())

    def test_nothing_readable(self):
        fields = parse_fields({}, "", today=TODAY)
        assert all(f.value is None and f.source is None for f in fields.values())

    def test_pure(self, ontario_responses):
        first = parse_fields(ontario_responses, "", today=TODAY)
        second = parse_fields(ontario_responses, "", today=TODAY)
        assert {k: v.to_dict() for k, v in first.items()} == {k: v.to_dict() for k, v in second.items()}


class TestExtractDocument:
    """Test the full extraction flow."""

    def test_extract(self, card_image, fake_engine_factory, ontario_responses):
        data, engines = run_with_service(
            fake_engine_factory(ontario_responses),
            lambda service: service.extract_document(card_image, today=TODAY),
        )
        assert data.name == "SMITH, JOHN"
        assert data.id_number == "12345-67890-54321"
        assert data.birth_date == date(1990, 5, 14)
        assert data.expiry_date == date(2029, 5, 14)
        assert data.confidence == pytest.approx((88 + 91 + 86 + 84) / 4)
        assert data.photo is not None
        assert data.layout == "ontario_dl"

        called = labels_called(engines)
        assert sorted(called) == sorted(["name", "dlNumber", "dob", "expiry", "document"])
        # Engines are reset after every pass
        assert sum(e.resets for e in engines) == len(called)

    def test_to_dict(self, card_image, fake_engine_factory, ontario_responses):
        data, _ = run_with_service(
            fake_engine_factory(ontario_responses),
            lambda service: service.extract_document(card_image, today=TODAY, keep_crops=True),
        )
        plain = data.to_dict()
        assert plain["birthDate"] == "1990-05-14"
        assert plain["idNumber"] == "12345-67890-54321"
        assert "fields" not in plain

        debug = data.to_dict(debug=True)
        assert debug["fields"]["dob"]["crop"].startswith("data:image/png;base64,")
        assert debug["photo"].startswith("data:image/png;base64,")

    def test_single_field_failure_degrades(self, card_image, fake_engine_factory, ontario_responses):
        responses = dict(ontario_responses)
        responses["name"] = RuntimeError("engine crashed on this crop")
        data, _ = run_with_service(
            fake_engine_factory(responses),
            lambda service: service.extract_document(card_image, today=TODAY),
        )
        assert data.fields["name"].confidence == 0.0
        assert data.fields["name"].source == SOURCE_DOCUMENT
        assert data.name == "SMITH, JOHN"
        assert data.birth_date == date(1990, 5, 14)

    def test_engine_failure_propagates(self, card_image, fake_engine_factory, ontario_responses):
        responses = dict(ontario_responses)
        responses["document"] = OCREngineError("fake", reason="model missing")
        with pytest.raises(OCREngineError):
            run_with_service(
                fake_engine_factory(responses),
                lambda service: service.extract_document(card_image, today=TODAY),
            )

    def test_rectifier_timeout_falls_back_to_input(self, card_image, fake_engine_factory, ontario_responses):
        """A slow rectifier must not abort extraction."""
        data, engines = run_with_service(
            fake_engine_factory(ontario_responses),
            lambda service: service.extract_document(card_image, today=TODAY),
            rectifier_factory=SlowRectifier,
            rectify_timeout=0.05,
        )
        assert data.birth_date == date(1990, 5, 14)
        assert data.expiry_date == date(2029, 5, 14)
        assert data.photo is not None
        assert "document" in labels_called(engines)

    def test_dates_pass_runs_when_no_birth_date(self, card_image, fake_engine_factory):
        responses = {
            "document": OcrText("ONTARIO\nSMITH, JOHN", 60.0),
            "dates": OcrText("DOB 1990/05/14", 70.0),
        }
        data, engines = run_with_service(
            fake_engine_factory(responses),
            lambda service: service.extract_document(card_image, today=TODAY),
        )
        assert "dates" in labels_called(engines)
        assert DATES_PASS_SEPARATOR in data.raw_text
        assert data.birth_date == date(1990, 5, 14)
        assert data.fields["dob"].source == SOURCE_DOCUMENT

    def test_dates_pass_skipped_when_dob_visible(self, card_image, fake_engine_factory, ontario_responses):
        _, engines = run_with_service(
            fake_engine_factory(ontario_responses),
            lambda service: service.extract_document(card_image, today=TODAY),
        )
        assert "dates" not in labels_called(engines)


class TestRecognizeDocument:
    """Test whole-document OCR used by the server-side path."""

    def test_text_and_confidence(self, card_image, fake_engine_factory, ontario_responses):
        result, _ = run_with_service(
            fake_engine_factory(ontario_responses),
            lambda service: service.recognize_document(card_image, today=TODAY),
        )
        assert result["text"] == ontario_responses["document"].text
        assert result["confidence"] == 80.0
        assert "debug" not in result

    def test_debug(self, card_image, fake_engine_factory):
        responses = {
            "document": OcrText("SMITH, JOHN", 50.0),
            "dates": OcrText("1990/05/14", 75.0),
        }
        result, _ = run_with_service(
            fake_engine_factory(responses),
            lambda service: service.recognize_document(card_image, debug=True, today=TODAY),
        )
        assert result["text"] == f"SMITH, JOHN{DATES_PASS_SEPARATOR}1990/05/14"
        assert result["confidence"] == 75.0
        debug = result["debug"]
        assert debug["generalPass"]["text"] == "SMITH, JOHN"
        assert debug["datesPass"]["text"] == "1990/05/14"
        assert debug["documentDetected"] is True
        assert debug["rectifiedImage"].startswith("data:image/png;base64,")
