"""
Age Verification API

Reads an ID document photo, extracts name, licence number, birth date and
expiry date, checks them against the age / expiry policy, re-validates the
birth date server-side and issues a device-bound credential.

Usage:
    uvicorn main:app --reload

Then access the API documentation at http://localhost:8000/docs
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from utils.exceptions import AppError
from utils.logging_config import configure_logging
from utils.config import (
    CORS_ORIGINS,
    LOG_JSON_FORMAT,
    LOG_LEVEL,
    OCR_ENGINE,
    OCR_TIMEOUT_SECONDS,
    OCR_WORKERS,
    RECTIFIER_POOL_SIZE,
    RECTIFY_TIMEOUT_SECONDS,
)
from middleware.request_id import RequestIDMiddleware
from api.routes.metrics import MetricsMiddleware

# Configure structured JSON logging
configure_logging(level=LOG_LEVEL, json_format=LOG_JSON_FORMAT)
logger = logging.getLogger(__name__)


def _build_engine():
    from services.ocr_engine import create_engine
    return create_engine(OCR_ENGINE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the shared rectifier and OCR engine pools, and the credential tables.

    An OCR engine that cannot start leaves the API up: OCR routes answer 503
    while field validation and credential completion keep working.
    """
    from services.db import init_db
    from services.ocr_service import DocumentOCRService
    from services.rectifier import ImageRectifier
    from services.resource_pool import ResourcePool
    from utils.exceptions import OCREngineError

    logger.info("Starting age verification API...")

    await init_db()

    rectifier_pool = ResourcePool(
        ImageRectifier, RECTIFIER_POOL_SIZE,
        name="rectifier", default_timeout=RECTIFY_TIMEOUT_SECONDS
    )
    await rectifier_pool.start()

    ocr_pool = ResourcePool(
        _build_engine, OCR_WORKERS,
        name="ocr", default_timeout=OCR_TIMEOUT_SECONDS
    )
    app.state.ocr_engine_name = OCR_ENGINE
    try:
        logger.info(f"Starting {OCR_WORKERS} '{OCR_ENGINE}' OCR worker(s)...")
        await ocr_pool.start()
        app.state.ocr_service = DocumentOCRService(ocr_pool, rectifier_pool)
        logger.info("OCR engine loaded successfully")
    except OCREngineError as e:
        logger.warning(f"OCR engine unavailable, OCR routes disabled: {e.details}")
        app.state.ocr_service = None

    logger.info("Age verification API ready!")

    yield  # Application runs here

    logger.info("Shutting down age verification API...")
    await ocr_pool.shutdown()
    await rectifier_pool.shutdown()


app = FastAPI(
    title="Age Verification API",
    description="""
    ID document age verification with device-bound credentials.

    ## Workflow

    1. `POST /api/v1/documents/extract` reads name, licence number, birth and expiry dates from an ID photo
    2. `POST /api/v1/faces/compare` compares ID photo and selfie embeddings
    3. `POST /api/v1/verify/start` re-validates the birth date server-side and returns a registration challenge
    4. `POST /api/v1/verify/complete` stores the device credential
    """,
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Order matters: last added = outermost
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLER
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Global handler for all AppError exceptions.

    Converts custom exceptions to consistent JSON responses.
    """
    logger.warning(f"[{exc.code}] {exc.message} | Details: {exc.details}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )

# Include API routes
from api.routes import router as api_router
from api.routes.metrics import router as metrics_router
app.include_router(api_router, prefix="/api/v1")
app.include_router(metrics_router)  # /metrics at root level


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Age Verification API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/v1/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=False
    )
