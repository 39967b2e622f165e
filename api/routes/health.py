"""Health check endpoint."""
from fastapi import APIRouter, Request

from models.schemas import HealthResponse
from services.db import ping_db

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Report whether the OCR engines, rectifier contexts and credential store are ready.
    """
    service = getattr(request.app.state, "ocr_service", None)
    ocr_ready = service is not None and service.ocr_pool.started
    rectifier_ready = service is not None and service.rectifier_pool.started
    database_ready = await ping_db()

    return HealthResponse(
        status="ok" if (ocr_ready and rectifier_ready and database_ready) else "degraded",
        ocr_ready=ocr_ready,
        rectifier_ready=rectifier_ready,
        database_ready=database_ready,
        ocr_engine=getattr(request.app.state, "ocr_engine_name", None),
    )
