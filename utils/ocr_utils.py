"""
Shared OCR Utilities

Image helpers used by the recognition engines and the OCR orchestrator.

Key Features:
- Padding: Adds white border to prevent edge character clipping, upscales tiny crops
- Dates pass preprocessing: upscale + strong contrast + sharpen for small digits
- PaddleOCR helpers: contrast preprocessing and result parsing
"""

import cv2
import numpy as np
from typing import List, Dict, Optional

from .config import DATES_PASS_MIN_SIDE


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Return a single-channel copy of a BGR, BGRA or already-gray image."""
    if image.ndim == 2:
        return image.copy()
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def add_ocr_padding(
    image: np.ndarray,
    padding_percent: float = 0.10,
    min_padding: int = 10,
    min_height: int = 32,
    target_height: int = 64
) -> np.ndarray:
    """
    Add a white border around a crop and upscale it if it is very short.

    Recognition engines often clip characters that touch the image edge, and
    do badly on text only a few pixels tall. Works for gray and BGR images.

    Args:
        image: Input crop (gray or BGR)
        padding_percent: Padding as a fraction of the crop size
        min_padding: Minimum padding in pixels
        min_height: If the crop is shorter than this, upscale it
        target_height: Height to upscale short crops to

    Returns:
        Padded (and possibly upscaled) image
    """
    h, w = image.shape[:2]

    if 0 < h < min_height:
        scale = target_height / h
        image = cv2.resize(image, (max(1, int(w * scale)), target_height), interpolation=cv2.INTER_CUBIC)
        h, w = image.shape[:2]

    if image.dtype != np.uint8:
        image = image.astype(np.uint8)

    pad_x = max(min_padding, int(w * padding_percent))
    pad_y = max(min_padding, int(h * padding_percent))
    white = 255 if image.ndim == 2 else (255,) * image.shape[2]

    return cv2.copyMakeBorder(
        image,
        pad_y, pad_y, pad_x, pad_x,  # top, bottom, left, right
        cv2.BORDER_CONSTANT,
        value=white
    )


def enhance_for_dates(image: np.ndarray, min_side: int = DATES_PASS_MIN_SIDE) -> np.ndarray:
    """
    Preprocess a whole document for the digits-only dates pass.

    Upscales so the shortest side is at least ``min_side`` (Lanczos), boosts
    contrast around mid-gray by 1.8x and sharpens digit edges.
    """
    gray = to_grayscale(image)
    h, w = gray.shape[:2]
    shortest = min(h, w)
    if 0 < shortest < min_side:
        scale = min_side / shortest
        gray = cv2.resize(gray, (round(w * scale), round(h * scale)), interpolation=cv2.INTER_LANCZOS4)

    # (input - 128) * 1.8 + 128
    contrasted = cv2.convertScaleAbs(gray, alpha=1.8, beta=-102.4)

    blurred = cv2.GaussianBlur(contrasted, (0, 0), sigmaX=1.5)
    return cv2.addWeighted(contrasted, 1.5, blurred, -0.5, 0)


def preprocess_for_paddle(image: np.ndarray) -> np.ndarray:
    """
    CLAHE contrast enhancement + sharpening, returned as BGR for PaddleOCR.
    """
    gray = to_grayscale(image)

    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    enhanced = clahe.apply(gray)

    kernel = np.array([
        [0, -1, 0],
        [-1, 5, -1],
        [0, -1, 0]
    ])
    sharpened = cv2.filter2D(enhanced, -1, kernel)

    return cv2.cvtColor(sharpened, cv2.COLOR_GRAY2BGR)


def parse_paddleocr_result(result) -> List[Dict]:
    """
    Parse PaddleOCR output into ``[{"text", "confidence"}]``.

    Handles both the PP-OCRv5 dict format (``rec_texts``/``rec_scores``) and
    the older ``[[box, (text, confidence)], ...]`` format.
    """
    extracted = []

    if not result:
        return extracted

    first_item = result[0]

    if isinstance(first_item, dict):
        texts = first_item.get("rec_texts", [])
        scores = first_item.get("rec_scores", [])
        for text, score in zip(texts, scores):
            text = text.strip() if text else ""
            if text:
                extracted.append({"text": text, "confidence": float(score)})
    else:
        for line in first_item or []:
            if line and len(line) >= 2 and line[1]:
                text = line[1][0].strip() if line[1][0] else ""
                confidence = line[1][1] if len(line[1]) > 1 else 0.9
                if text:
                    extracted.append({"text": text, "confidence": float(confidence)})

    return extracted


def filter_to_whitelist(text: str, whitelist: Optional[str]) -> str:
    """Drop characters outside ``whitelist`` (newlines and spaces are kept)."""
    if not whitelist:
        return text
    allowed = set(whitelist) | {" ", "\n"}
    return "".join(ch for ch in text if ch in allowed)
