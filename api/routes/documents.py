"""Document field extraction and policy validation endpoints."""
import logging
from fastapi import APIRouter, Depends, File, Query, UploadFile

from api.dependencies import get_ocr_service
from api.routes.metrics import record_extraction
from models.schemas import DocumentExtractResponse, DocumentValidateRequest, ValidationVerdictResponse
from services.ocr_service import DocumentOCRService
from services.verification_policy import evaluate_document, evaluate_fields
from utils.date_utils import parse_iso_date
from utils.image_manager import load_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.post("/extract", response_model=DocumentExtractResponse, response_model_exclude_none=True)
async def extract_document_endpoint(
    image: UploadFile = File(..., description="Photo of the ID document"),
    debug: bool = Query(False, description="Include per-field OCR text and crop previews"),
    service: DocumentOCRService = Depends(get_ocr_service),
):
    """
    Rectify, crop, OCR and parse an ID photo, then apply the age / expiry policy.

    Policy failures (under age, expired, no birth date) come back as errors in
    the verdict, not as HTTP errors.
    """
    document_image = load_image(await image.read())

    data = await service.extract_document(document_image, keep_crops=debug)
    record_extraction(data)
    verdict = evaluate_document(data)

    return DocumentExtractResponse(**data.to_dict(debug=debug), verdict=verdict.to_dict())


@router.post("/validate", response_model=ValidationVerdictResponse)
async def validate_fields_endpoint(request: DocumentValidateRequest):
    """Apply the age / expiry policy to already-extracted field values."""
    verdict = evaluate_fields(
        birth_date=parse_iso_date(request.birth_date),
        expiry_date=parse_iso_date(request.expiry_date),
        id_number=request.id_number,
        name=request.name,
        confidence=request.confidence,
    )
    return verdict.to_dict()
