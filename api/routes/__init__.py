"""
API Routes Module.

Combines the route modules into a single router for the age verification API.
"""
from fastapi import APIRouter

from .health import router as health_router
from .documents import router as documents_router
from .ocr import router as ocr_router
from .verification import router as verification_router
from .faces import router as faces_router

router = APIRouter()

router.include_router(health_router)
router.include_router(documents_router)
router.include_router(ocr_router)
router.include_router(verification_router)
router.include_router(faces_router)

__all__ = ["router"]
