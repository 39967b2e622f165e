"""
Verification endpoints: server-side re-validation gate + credential issuance.

/verify/start     re-derives the birth date (fast path: client raw OCR text,
                  slow path: ID photo OCR'd here), enforces the minimum age,
                  then issues a registration challenge
/verify/complete  checks the registration response and stores the credential
"""
import base64
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_optional_ocr_service, get_trust_mode, require_ocr_service
from api.routes.metrics import record_revalidation
from models.schemas import (
    VerifyCompleteRequest,
    VerifyCompleteResponse,
    VerifyStartRequest,
    VerifyStartResponse,
)
from services.credential_service import b64url_decode, begin_registration, complete_registration
from services.ocr_service import DocumentOCRService
from services.revalidation_service import (
    GENERIC_FAILURE_MESSAGE,
    ClientTrustMode,
    revalidate_birth_date,
)
from utils.config import MIN_AGE
from utils.date_utils import format_date
from utils.exceptions import ServiceError
from utils.image_manager import load_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verify", tags=["Verification"])

# Slow path: less recognized text than this means OCR found nothing usable
MIN_OCR_TEXT_LENGTH = 20


@router.post("/start", response_model=VerifyStartResponse, response_model_exclude_none=True)
async def verify_start(
    body: VerifyStartRequest,
    db: AsyncSession = Depends(get_db),
    trust_mode: ClientTrustMode = Depends(get_trust_mode),
    ocr_service: Optional[DocumentOCRService] = Depends(get_optional_ocr_service),
):
    """
    Re-validate the birth date server-side and, if the holder is old enough,
    start credential registration.

    Age and trust outcomes are returned with HTTP 200 and flags. A failed
    corroboration returns a generic error on purpose.
    """
    if body.raw_ocr_text:
        path = "fast"
        if body.face_match_confidence is not None:
            logger.debug(f"Client-reported face match confidence: {body.face_match_confidence}")
        result = revalidate_birth_date(
            body.raw_ocr_text,
            claimed_birth_date=body.birth_date,
            claimed_age=body.age,
            mode=trust_mode,
        )
    elif body.id_photo:
        path = "slow"
        service = require_ocr_service(ocr_service)
        ocr = await service.recognize_document(load_image(body.id_photo))
        if len(ocr["text"].strip()) <= MIN_OCR_TEXT_LENGTH:
            logger.info("Slow path OCR returned too little text")
            record_revalidation(path, "rejected")
            return VerifyStartResponse(ocr_passed=False, age_passed=False, error=GENERIC_FAILURE_MESSAGE)
        # Nothing was claimed by the client on this path
        result = revalidate_birth_date(ocr["text"], mode=ClientTrustMode.STRICT)
    else:
        raise ServiceError(
            "Missing required data: provide rawOcrText (with birthDate and age) or idPhoto",
            code="MISSING_VERIFICATION_INPUT"
        )

    if not result.passed:
        record_revalidation(path, "rejected")
        return VerifyStartResponse(ocr_passed=False, age_passed=False, error=GENERIC_FAILURE_MESSAGE)

    record_revalidation(path, result.source)

    if result.age < MIN_AGE:
        return VerifyStartResponse(
            ocr_passed=True,
            age_passed=False,
            age=result.age,
            error=f"Age requirement not met. Must be {MIN_AGE}+, detected age: {result.age}",
        )

    registration = await begin_registration(db)

    return VerifyStartResponse(
        ocr_passed=True,
        age_passed=True,
        age=result.age,
        birth_date=format_date(result.birth_date),
        user_id=registration.user_id,
        challenge=registration.challenge,
        registration_options=registration.options,
    )


@router.post("/complete", response_model=VerifyCompleteResponse)
async def verify_complete(
    body: VerifyCompleteRequest,
    db: AsyncSession = Depends(get_db),
):
    """Finish registration: verify the response against the stored challenge and save the credential."""
    credential = await complete_registration(db, body.user_id, body.attestation_response)

    try:
        raw_id = b64url_decode(credential.credential_id)
        credential_id_base64 = base64.b64encode(raw_id).decode("ascii")
    except ValueError:
        credential_id_base64 = credential.credential_id

    return VerifyCompleteResponse(
        success=True,
        credential_id=credential.credential_id,
        credential_id_base64=credential_id_base64,
    )
