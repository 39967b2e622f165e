"""
Pydantic models for API request/response schemas.

Wire names are camelCase (browser client); Python attributes stay snake_case.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from utils.date_utils import is_iso_date


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _iso_or_none(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if not is_iso_date(value):
        raise ValueError("must be a real date in YYYY-MM-DD format")
    return value


# =============================================================================
# HEALTH
# =============================================================================

class HealthResponse(CamelModel):
    status: str = Field(..., description="'ok' when every component is ready, else 'degraded'")
    ocr_ready: bool = False
    rectifier_ready: bool = False
    database_ready: bool = False
    ocr_engine: Optional[str] = None


# =============================================================================
# DOCUMENT EXTRACTION / VALIDATION
# =============================================================================

class IssueModel(BaseModel):
    code: str
    message: str


class ValidationVerdictResponse(CamelModel):
    is_valid: bool
    age: Optional[int] = None
    is_over_min_age: bool = Field(False, alias="isOver19")
    is_expired: bool = False
    birth_date: Optional[str] = None
    expiry_date: Optional[str] = None
    errors: List[IssueModel] = Field(default_factory=list)
    warnings: List[IssueModel] = Field(default_factory=list)


class FieldResult(CamelModel):
    field: str
    raw_text: str = ""
    confidence: float = 0.0
    value: Optional[str] = None
    source: Optional[str] = None
    crop: Optional[str] = Field(None, description="PNG data URL of the crop (debug only)")


class DocumentExtractResponse(CamelModel):
    name: Optional[str] = None
    id_number: Optional[str] = None
    birth_date: Optional[str] = None
    expiry_date: Optional[str] = None
    raw_text: str = ""
    confidence: float = 0.0
    layout: str
    verdict: ValidationVerdictResponse
    fields: Optional[Dict[str, FieldResult]] = None
    photo: Optional[str] = None


class DocumentValidateRequest(CamelModel):
    """Claimed field values to run through the age / expiry policy."""
    birth_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    expiry_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    id_number: Optional[str] = None
    name: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=100)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "birthDate": "1990-05-14",
                "expiryDate": "2029-05-14",
                "idNumber": "12345-67890-54321",
                "name": "SMITH, JOHN",
                "confidence": 78.5
            }
        }
    )

    @field_validator("birth_date", "expiry_date")
    @classmethod
    def check_dates(cls, value: Optional[str]) -> Optional[str]:
        return _iso_or_none(value)


# =============================================================================
# OCR (internal whole-document recognition)
# =============================================================================

class OCRRecognizeRequest(CamelModel):
    image_data: str = Field(..., min_length=1, description="Base64 image or data URL")


class OCRRecognizeResponse(CamelModel):
    text: str
    confidence: float
    debug: Optional[Dict[str, Any]] = None


# =============================================================================
# VERIFICATION (re-validation gate + credential issuance)
# =============================================================================

class VerifyStartRequest(CamelModel):
    """
    Fast path: ``rawOcrText`` plus the client's claimed ``birthDate``/``age``.
    Slow path: ``idPhoto`` only; the server runs OCR itself.
    """
    raw_ocr_text: Optional[str] = None
    birth_date: Optional[str] = None
    age: Optional[int] = None
    face_match_confidence: Optional[float] = None
    id_photo: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "rawOcrText": "ONTARIO DRIVER'S LICENCE\nSMITH, JOHN\nDOB: 1990/05/14",
                "birthDate": "1990-05-14",
                "age": 34,
                "faceMatchConfidence": 0.91
            }
        }
    )


class VerifyStartResponse(CamelModel):
    ocr_passed: bool
    age_passed: bool
    age: Optional[int] = None
    birth_date: Optional[str] = None
    error: Optional[str] = None
    user_id: Optional[str] = None
    challenge: Optional[str] = None
    registration_options: Optional[Dict[str, Any]] = None


class VerifyCompleteRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    attestation_response: Dict[str, Any]


class VerifyCompleteResponse(CamelModel):
    success: bool
    credential_id: str
    credential_id_base64: str


# =============================================================================
# FACE MATCH
# =============================================================================

class FaceCompareRequest(CamelModel):
    embedding1: List[float] = Field(..., min_length=1)
    embedding2: List[float] = Field(..., min_length=1)


class FaceCompareResponse(CamelModel):
    similarity_score: float
    passed: bool
    inconclusive: bool
    message: str
