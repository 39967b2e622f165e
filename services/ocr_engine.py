"""
Text Recognition Engines

Thin wrappers giving Tesseract and PaddleOCR one interface:

    engine.start()                          # load / check the engine, may raise OCREngineError
    engine.recognize(image, config)         # -> OcrText(text, confidence 0-100)
    engine.close()

Engines are not reentrant; each wrapper serializes its own calls with a lock.
Concurrency comes from pooling several engine instances (see ResourcePool).
"""
import logging
import os
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pytesseract
from pytesseract import Output

from utils.config import OCR_ENGINE, OCR_LANGUAGE
from utils.exceptions import OCREngineError
from utils.ocr_utils import filter_to_whitelist, parse_paddleocr_result, preprocess_for_paddle

logger = logging.getLogger(__name__)

# PaddleOCR is an optional extra; Tesseract is the default engine
try:
    os.environ.setdefault("DISABLE_MODEL_SOURCE_CHECK", "True")
    from paddleocr import PaddleOCR
    PADDLEOCR_AVAILABLE = True
except ImportError:
    PADDLEOCR_AVAILABLE = False


# Tesseract page segmentation modes used here
PSM_SINGLE_BLOCK = 6
PSM_SINGLE_LINE = 7
PSM_SPARSE_TEXT = 11


@dataclass(frozen=True)
class RecognitionConfig:
    """How one recognition pass should read its image."""
    psm: int = PSM_SINGLE_BLOCK
    whitelist: Optional[str] = None
    label: str = "document"

    def tesseract_config(self) -> str:
        parts = [f"--oem 1 --psm {self.psm}", "-c preserve_interword_spaces=1"]
        if self.whitelist:
            parts.append(f"-c tessedit_char_whitelist={self.whitelist}")
        return " ".join(parts)


@dataclass
class OcrText:
    text: str = ""
    confidence: float = 0.0

    def to_dict(self) -> Dict:
        return {"text": self.text, "confidence": round(self.confidence, 2)}


class OCREngine:
    """Interface for recognition engines."""

    name = "base"

    def __init__(self):
        self._lock = threading.Lock()

    def start(self) -> None:
        """Load models or check binaries. Raise OCREngineError if unusable."""

    def recognize(self, image: np.ndarray, config: RecognitionConfig) -> OcrText:
        with self._lock:
            return self._recognize(image, config)

    def _recognize(self, image: np.ndarray, config: RecognitionConfig) -> OcrText:
        raise NotImplementedError

    def reset(self) -> None:
        pass

    def close(self) -> None:
        pass


class TesseractEngine(OCREngine):
    """Tesseract via pytesseract; supports whitelists and segmentation modes natively."""

    name = "tesseract"

    def __init__(self, language: str = OCR_LANGUAGE):
        super().__init__()
        self.language = language
        self.version: Optional[str] = None

    def start(self) -> None:
        try:
            self.version = str(pytesseract.get_tesseract_version())
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise OCREngineError(self.name, reason=str(e))
        logger.info(f"Tesseract {self.version} ready (lang={self.language})")

    def _recognize(self, image: np.ndarray, config: RecognitionConfig) -> OcrText:
        data = pytesseract.image_to_data(
            image,
            lang=self.language,
            config=config.tesseract_config(),
            output_type=Output.DICT,
        )
        return _assemble_tesseract_data(data)


def _assemble_tesseract_data(data: Dict[str, List]) -> OcrText:
    """Rebuild line-broken text and mean word confidence from ``image_to_data`` output."""
    lines: Dict[tuple, List[str]] = {}
    confidences: List[float] = []

    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        try:
            conf = float(data["conf"][i])
        except (KeyError, IndexError, TypeError, ValueError):
            conf = -1.0
        if not word or conf < 0:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        confidences.append(conf)

    text = "\n".join(" ".join(words) for words in lines.values())
    confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return OcrText(text=text, confidence=confidence)


class PaddleOCREngine(OCREngine):
    """
    PaddleOCR engine (optional ``paddle`` extra).

    PaddleOCR has no character whitelist or segmentation modes, so the
    whitelist is enforced by filtering recognized characters afterwards.
    """

    name = "paddle"

    def __init__(self, language: str = "en"):
        super().__init__()
        self.language = language
        self._ocr = None

    def start(self) -> None:
        if not PADDLEOCR_AVAILABLE:
            raise OCREngineError(self.name, reason="paddleocr is not installed")
        try:
            self._ocr = PaddleOCR(
                lang=self.language,
                use_doc_orientation_classify=False,
                use_doc_unwarping=False,
                use_textline_orientation=False,
            )
        except Exception as e:
            raise OCREngineError(self.name, reason=str(e))
        logger.info(f"PaddleOCR ready (lang={self.language})")

    def _recognize(self, image: np.ndarray, config: RecognitionConfig) -> OcrText:
        if self._ocr is None:
            raise OCREngineError(self.name, reason="engine not started")

        result = self._ocr.predict(preprocess_for_paddle(image))
        items = parse_paddleocr_result(result)

        lines = []
        scores = []
        for item in items:
            text = filter_to_whitelist(item["text"], config.whitelist).strip()
            if text:
                lines.append(text)
                scores.append(item["confidence"])

        confidence = (sum(scores) / len(scores)) * 100 if scores else 0.0
        return OcrText(text="\n".join(lines), confidence=confidence)

    def close(self) -> None:
        self._ocr = None


ENGINES = {
    TesseractEngine.name: TesseractEngine,
    PaddleOCREngine.name: PaddleOCREngine,
}


def create_engine(name: str = OCR_ENGINE) -> OCREngine:
    """Build and start an engine by name. Raises OCREngineError on failure."""
    engine_cls = ENGINES.get(name)
    if engine_cls is None:
        raise OCREngineError(name, reason=f"unknown engine; choose one of {sorted(ENGINES)}")
    engine = engine_cls()
    engine.start()
    return engine
