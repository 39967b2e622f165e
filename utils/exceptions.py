"""
Custom Application Exceptions.

Only orchestration (engine lifecycle, image decoding, timeouts, credential
ceremony) raises these. Parsers and the policy evaluator never raise: they
return None or structured errors as data.

Usage:
    from utils.exceptions import ImageProcessingError, OCREngineError

    raise ImageProcessingError("Could not decode image")
    raise OCREngineError("tesseract", reason="binary not found")
"""
from typing import Optional, Dict, Any


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "IMAGE_PROCESSING_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """
    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "status": "error",
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# =============================================================================
# SERVICE LAYER EXCEPTIONS (400-level errors)
# =============================================================================

class ServiceError(AppError):
    """General service-layer error (bad input, processing failure)."""
    def __init__(
        self,
        message: str,
        code: str = "SERVICE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code, status_code=400, details=details)


class ImageProcessingError(ServiceError):
    """
    Image is invalid, corrupt, or cannot be decoded.

    This is the only hard failure of the rectification stage.
    """
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code="IMAGE_PROCESSING_ERROR", details=details)


class ChallengeError(ServiceError):
    """No valid (unexpired, unused) challenge for this registration attempt."""
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code="CHALLENGE_ERROR", details=details)


class CredentialError(ServiceError):
    """The credential response did not satisfy the registration contract."""
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code="CREDENTIAL_ERROR", details=details)


class ValidationError(AppError):
    """
    Input validation failed.

    Use for: malformed request payloads that pydantic cannot catch.
    """
    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        if field:
            _details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", status_code=422, details=_details)


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS (500-level errors)
# =============================================================================

class OCREngineError(AppError):
    """
    Recognition engine could not start.

    Fatal for the whole OCR run; the caller should retry the attempt.
    """
    def __init__(
        self,
        engine_name: str,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        _details["engine"] = engine_name
        if reason:
            _details["reason"] = reason
        super().__init__(
            f"OCR engine unavailable: {engine_name}",
            "OCR_ENGINE_ERROR",
            status_code=503,
            details=_details
        )


class ProcessingTimeoutError(AppError):
    """A pooled rectification or recognition call did not finish in time."""
    def __init__(
        self,
        operation: str,
        timeout_seconds: float,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        _details["operation"] = operation
        _details["timeout_seconds"] = timeout_seconds
        super().__init__(
            f"{operation} timed out after {timeout_seconds:g}s",
            "PROCESSING_TIMEOUT",
            status_code=504,
            details=_details
        )


class DatabaseError(AppError):
    """Credential store connection or query failed."""
    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        if operation:
            _details["operation"] = operation
        super().__init__(
            f"Database error: {message}",
            "DATABASE_ERROR",
            status_code=500,
            details=_details
        )
