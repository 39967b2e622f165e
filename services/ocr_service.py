"""
Document OCR Service: field-level extraction for the modeled ID template.

Flow for one document:
    rectify (rectifier pool)
    -> crop text fields from the binarized image, the photo from the rectified one
    -> recognize the four field crops and the whole document concurrently (OCR pool)
    -> optional digits-only "dates pass" when no birth date is visible in the text
    -> parse each field, falling back to the whole-document text

A single field pass that fails or times out yields empty text and confidence
0 for that field. A rectifier timeout falls back to the binarized input
image. An engine that cannot start (OCREngineError) fails the run.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional

import numpy as np

from utils.config import DOCUMENT_LAYOUT, OCR_TIMEOUT_SECONDS, RECTIFY_TIMEOUT_SECONDS
from utils.date_utils import format_date, parse_iso_date
from utils.exceptions import OCREngineError, ProcessingTimeoutError
from utils.image_manager import image_to_png_data_url
from utils.logging_config import log_execution_time
from utils.ocr_utils import add_ocr_padding, enhance_for_dates

from services.dob_extractor import (
    contains_birth_plausible_date,
    contains_labeled_dob,
    extract_dob_from_text,
)
from services.field_parsers import (
    id_number_from_document,
    name_from_document,
    parse_expiry_date,
    parse_id_number,
    parse_name,
)
from services.ocr_engine import (
    PSM_SINGLE_BLOCK,
    PSM_SINGLE_LINE,
    PSM_SPARSE_TEXT,
    OCREngine,
    OcrText,
    RecognitionConfig,
)
from services.rectifier import ImageRectifier, RectifiedDocument, unrectified_document
from services.regions import DL_NUMBER, DOB, EXPIRY, NAME, PHOTO, TEXT_FIELDS, RegionLayout, crop_region, get_layout
from services.resource_pool import ResourcePool

logger = logging.getLogger(__name__)

DIGITS_AND_DATE_SEPARATORS = "0123456789/-."

FIELD_CONFIGS: Dict[str, RecognitionConfig] = {
    DL_NUMBER: RecognitionConfig(psm=PSM_SINGLE_LINE, whitelist="0123456789-", label=DL_NUMBER),
    DOB: RecognitionConfig(psm=PSM_SINGLE_LINE, whitelist=DIGITS_AND_DATE_SEPARATORS, label=DOB),
    EXPIRY: RecognitionConfig(psm=PSM_SINGLE_LINE, whitelist=DIGITS_AND_DATE_SEPARATORS, label=EXPIRY),
    NAME: RecognitionConfig(psm=PSM_SPARSE_TEXT, label=NAME),
}

DOCUMENT_CONFIG = RecognitionConfig(psm=PSM_SINGLE_BLOCK, label="document")
DATES_PASS_CONFIG = RecognitionConfig(psm=PSM_SPARSE_TEXT, whitelist="0123456789/-.DOBdob:", label="dates")

DATES_PASS_SEPARATOR = "\n--- DATES PASS ---\n"

SOURCE_REGION = "region"
SOURCE_DOCUMENT = "document"


@dataclass
class FieldOcrResult:
    field: str
    raw_text: str = ""
    confidence: float = 0.0
    value: Optional[str] = None
    source: Optional[str] = None
    crop: Optional[np.ndarray] = field(default=None, repr=False)

    def to_dict(self, include_crop: bool = False) -> dict:
        data = {
            "field": self.field,
            "rawText": self.raw_text,
            "confidence": round(self.confidence, 2),
            "value": self.value,
            "source": self.source,
        }
        if include_crop and self.crop is not None:
            data["crop"] = image_to_png_data_url(self.crop)
        return data


@dataclass(frozen=True)
class ExtractedDocumentData:
    fields: Dict[str, FieldOcrResult]
    raw_text: str
    confidence: float
    photo: Optional[np.ndarray] = None
    layout: str = DOCUMENT_LAYOUT

    def _value(self, key: str) -> Optional[str]:
        result = self.fields.get(key)
        return result.value if result else None

    @property
    def name(self) -> Optional[str]:
        return self._value(NAME)

    @property
    def id_number(self) -> Optional[str]:
        return self._value(DL_NUMBER)

    @property
    def birth_date(self) -> Optional[date]:
        return parse_iso_date(self._value(DOB))

    @property
    def expiry_date(self) -> Optional[date]:
        return parse_iso_date(self._value(EXPIRY))

    def to_dict(self, debug: bool = False) -> dict:
        data = {
            "name": self.name,
            "idNumber": self.id_number,
            "birthDate": self._value(DOB),
            "expiryDate": self._value(EXPIRY),
            "rawText": self.raw_text,
            "confidence": round(self.confidence, 2),
            "layout": self.layout,
        }
        if debug:
            data["fields"] = {k: v.to_dict(include_crop=True) for k, v in self.fields.items()}
            if self.photo is not None:
                data["photo"] = image_to_png_data_url(self.photo)
        return data


def _run_recognition(engine: OCREngine, image: np.ndarray, config: RecognitionConfig) -> OcrText:
    return engine.recognize(image, config)


def _run_rectification(rectifier: ImageRectifier, image: np.ndarray) -> RectifiedDocument:
    return rectifier.rectify(image)


def parse_fields(
    field_texts: Dict[str, OcrText],
    raw_text: str,
    today: Optional[date] = None,
) -> Dict[str, FieldOcrResult]:
    """
    Parse each field's crop text, falling back to the whole-document text.

    Pure: depends only on the recognized text and ``today``.
    """
    results = {}
    for key in TEXT_FIELDS:
        ocr = field_texts.get(key) or OcrText()
        results[key] = FieldOcrResult(field=key, raw_text=ocr.text, confidence=ocr.confidence)

    def settle(key: str, region_value: Optional[str], document_value: Optional[str]):
        result = results[key]
        if region_value:
            result.value, result.source = region_value, SOURCE_REGION
        elif document_value:
            result.value, result.source = document_value, SOURCE_DOCUMENT

    name = parse_name(results[NAME].raw_text)
    settle(NAME, name, None if name else name_from_document(raw_text))

    id_number = parse_id_number(results[DL_NUMBER].raw_text)
    settle(DL_NUMBER, id_number, None if id_number else id_number_from_document(raw_text))

    dob = extract_dob_from_text(results[DOB].raw_text, today=today).iso
    settle(DOB, dob, None if dob else extract_dob_from_text(raw_text, today=today).iso)

    expiry = parse_expiry_date(results[EXPIRY].raw_text, today=today)
    if expiry is None:
        document_expiry = parse_expiry_date(raw_text, today=today)
        settle(EXPIRY, None, format_date(document_expiry) if document_expiry else None)
    else:
        settle(EXPIRY, format_date(expiry), None)

    return results


class DocumentOCRService:
    """
    Owns nothing but references: the engine pool and rectifier pool are built
    and shut down by the application lifespan and injected here.
    """

    def __init__(
        self,
        ocr_pool: ResourcePool,
        rectifier_pool: ResourcePool,
        layout: Optional[RegionLayout] = None,
        ocr_timeout: float = OCR_TIMEOUT_SECONDS,
        rectify_timeout: float = RECTIFY_TIMEOUT_SECONDS,
    ):
        self.ocr_pool = ocr_pool
        self.rectifier_pool = rectifier_pool
        self.layout = layout or get_layout(DOCUMENT_LAYOUT)
        self.ocr_timeout = ocr_timeout
        self.rectify_timeout = rectify_timeout

    async def rectify(self, image: np.ndarray) -> RectifiedDocument:
        """Rectified document, or the plain binarized input if the rectifier times out."""
        try:
            return await self.rectifier_pool.run(_run_rectification, image, timeout=self.rectify_timeout)
        except ProcessingTimeoutError as e:
            logger.warning(f"{e.message}; continuing with the unrectified image")
            return unrectified_document(image)

    async def recognize(self, image: np.ndarray, config: RecognitionConfig) -> OcrText:
        return await self.ocr_pool.run(_run_recognition, image, config, timeout=self.ocr_timeout)

    async def _safe_pass(self, image: np.ndarray, config: RecognitionConfig) -> OcrText:
        """One recognition pass; anything but an engine failure degrades to empty text."""
        try:
            return await self.recognize(image, config)
        except OCREngineError:
            raise
        except Exception as e:
            logger.warning(
                f"Recognition pass '{config.label}' failed: {e}",
                extra={"field": config.label}
            )
            return OcrText()

    async def _dates_pass(self, document: np.ndarray, text: str, today: Optional[date]) -> Optional[OcrText]:
        """Digits-only pass over an enhanced document, skipped when a birth date is already visible."""
        if contains_labeled_dob(text) or contains_birth_plausible_date(text, today):
            return None
        logger.info("No birth date in document text; running dates pass")
        return await self._safe_pass(enhance_for_dates(document), DATES_PASS_CONFIG)

    @log_execution_time
    async def extract_document(
        self,
        image: np.ndarray,
        layout: Optional[RegionLayout] = None,
        today: Optional[date] = None,
        keep_crops: bool = False,
    ) -> ExtractedDocumentData:
        layout = layout or self.layout
        rectified = await self.rectify(image)

        crops = {key: crop_region(rectified.binarized, layout[key]) for key in TEXT_FIELDS}
        photo = crop_region(rectified.rectified, layout[PHOTO]) if PHOTO in layout else None

        passes = [self._safe_pass(add_ocr_padding(crops[key]), FIELD_CONFIGS[key]) for key in TEXT_FIELDS]
        passes.append(self._safe_pass(rectified.binarized, DOCUMENT_CONFIG))
        *field_ocr, document_ocr = await asyncio.gather(*passes)

        raw_text = document_ocr.text
        dates_ocr = await self._dates_pass(rectified.rectified, raw_text, today)
        if dates_ocr is not None and dates_ocr.text:
            raw_text = f"{raw_text}{DATES_PASS_SEPARATOR}{dates_ocr.text}"

        field_texts = dict(zip(TEXT_FIELDS, field_ocr))
        fields = parse_fields(field_texts, raw_text, today=today)
        if keep_crops:
            for key, result in fields.items():
                result.crop = crops[key]

        confidence = sum(r.confidence for r in fields.values()) / len(fields)
        logger.debug(f"Document raw text: {raw_text!r}")

        return ExtractedDocumentData(
            fields=fields,
            raw_text=raw_text,
            confidence=confidence,
            photo=photo,
            layout=layout.name,
        )

    @log_execution_time
    async def recognize_document(
        self,
        image: np.ndarray,
        debug: bool = False,
        today: Optional[date] = None,
    ) -> dict:
        """
        Whole-document OCR used by the server-side slow path.

        Returns ``{"text", "confidence"}``; with ``debug`` also each pass's
        text and PNG previews of the rectified and binarized images.
        """
        rectified = await self.rectify(image)
        general = await self._safe_pass(rectified.binarized, DOCUMENT_CONFIG)
        dates = await self._dates_pass(rectified.rectified, general.text, today)

        text = general.text
        confidence = general.confidence
        if dates is not None and dates.text:
            text = f"{text}{DATES_PASS_SEPARATOR}{dates.text}"
            confidence = max(confidence, dates.confidence)

        result = {"text": text, "confidence": round(confidence, 2)}
        if debug:
            result["debug"] = {
                "generalPass": general.to_dict(),
                "datesPass": dates.to_dict() if dates is not None else None,
                "deskewAngle": rectified.deskew_angle,
                "documentDetected": rectified.was_warped,
                "rectifiedImage": image_to_png_data_url(rectified.rectified),
                "binarizedImage": image_to_png_data_url(rectified.binarized),
            }
        return result
