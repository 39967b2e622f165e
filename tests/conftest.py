"""
Pytest Configuration and Fixtures

Shared fixtures for the age verification test suite.
Run with: pytest -v
"""
import os
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Must be set before services.db is imported anywhere
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("LOG_JSON_FORMAT", "false")
os.environ.setdefault("OCR_WORKERS", "1")

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.ocr_engine import OCREngine, OcrText, RecognitionConfig  # noqa: E402


class FakeEngine(OCREngine):
    """
    Recognition engine returning canned text per pass label.

    ``responses`` maps a RecognitionConfig label ("name", "dlNumber", "dob",
    "expiry", "document", "dates") to an OcrText or an exception to raise.
    """

    name = "fake"

    def __init__(self, responses=None):
        super().__init__()
        self.responses = responses or {}
        self.calls = []
        self.resets = 0
        self.closed = False

    def _recognize(self, image: np.ndarray, config: RecognitionConfig) -> OcrText:
        self.calls.append((config.label, image.shape))
        response = self.responses.get(config.label, OcrText())
        if isinstance(response, Exception):
            raise response
        return response

    def reset(self) -> None:
        self.resets += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_engine_factory():
    """Build FakeEngine instances sharing one response table."""
    def factory(responses=None):
        return lambda: FakeEngine(responses)
    return factory


@pytest.fixture
def card_image():
    """
    Synthetic ID card: a light card with printed fields on a dark background,
    so the rectifier can find its outline.
    """
    canvas = np.full((700, 1000, 3), 40, dtype=np.uint8)
    cv2.rectangle(canvas, (100, 100), (900, 604), (235, 235, 235), thickness=-1)
    font = cv2.FONT_HERSHEY_SIMPLEX
    cv2.putText(canvas, "SMITH, JOHN", (380, 200), font, 1.0, (20, 20, 20), 2)
    cv2.putText(canvas, "12345-67890-54321", (380, 300), font, 1.0, (20, 20, 20), 2)
    cv2.putText(canvas, "1990/05/14", (380, 420), font, 0.9, (20, 20, 20), 2)
    cv2.putText(canvas, "2029/05/14", (620, 420), font, 0.9, (20, 20, 20), 2)
    cv2.rectangle(canvas, (130, 190), (340, 520), (120, 120, 120), thickness=-1)
    return canvas


@pytest.fixture
def card_png_bytes(card_image):
    ok, buffer = cv2.imencode(".png", card_image)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def ontario_responses():
    """Canned OCR output for a readable Ontario licence."""
    return {
        "name": OcrText("SMITH, JOHN", 88.0),
        "dlNumber": OcrText("A12345-67890-54321", 91.0),
        "dob": OcrText("1990/05/14", 86.0),
        "expiry": OcrText("2029/05/14", 84.0),
        "document": OcrText(
            "ONTARIO DRIVER'S LICENCE\nSMITH, JOHN\nA12345-67890-54321\n"
            "DOB: 1990/05/14 EXP 2029/05/14",
            80.0
        ),
    }
