"""Shared FastAPI dependencies."""
from typing import Optional

from fastapi import Depends, Request

from services.db import get_db
from services.ocr_service import DocumentOCRService
from services.revalidation_service import ClientTrustMode, configured_trust_mode
from utils.config import OCR_ENGINE
from utils.exceptions import OCREngineError

__all__ = ["get_db", "get_ocr_service", "get_optional_ocr_service", "require_ocr_service", "get_trust_mode"]


def get_optional_ocr_service(request: Request) -> Optional[DocumentOCRService]:
    """The document OCR service built by the application lifespan, or None if the engine failed to start."""
    return getattr(request.app.state, "ocr_service", None)


def require_ocr_service(service: Optional[DocumentOCRService]) -> DocumentOCRService:
    if service is None:
        raise OCREngineError(OCR_ENGINE, reason="OCR engine is not running")
    return service


def get_ocr_service(
    service: Optional[DocumentOCRService] = Depends(get_optional_ocr_service),
) -> DocumentOCRService:
    """Raises OCREngineError (503) when the engine pool could not start."""
    return require_ocr_service(service)


def get_trust_mode() -> ClientTrustMode:
    return configured_trust_mode()
