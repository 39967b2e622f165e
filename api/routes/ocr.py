"""Internal whole-document OCR endpoint (server-side slow path)."""
from fastapi import APIRouter, Depends, Query

from api.dependencies import get_ocr_service
from models.schemas import OCRRecognizeRequest, OCRRecognizeResponse
from services.ocr_service import DocumentOCRService
from utils.image_manager import load_image

router = APIRouter(prefix="/ocr", tags=["OCR"])


@router.post("/recognize", response_model=OCRRecognizeResponse, response_model_exclude_none=True)
async def recognize_endpoint(
    request: OCRRecognizeRequest,
    debug: bool = Query(False, description="Include per-pass text and image previews"),
    service: DocumentOCRService = Depends(get_ocr_service),
):
    """
    Rectify the image and return its whole-document text and confidence.

    A digits-only dates pass is appended when no birth date is visible in the
    general pass.
    """
    image = load_image(request.image_data)
    return await service.recognize_document(image, debug=debug)
