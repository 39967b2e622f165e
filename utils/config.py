"""Configuration settings for the age verification service."""
import os
from pathlib import Path

# Base directories
BASE_DIR = Path(__file__).parent.parent


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() in ("true", "1", "yes")


# Logging configuration
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_JSON_FORMAT = _env_bool("LOG_JSON_FORMAT", True)

# CORS - comma-separated list of allowed origins
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# Persistence (credentials and challenges only; no document data is ever stored)
DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite+aiosqlite:///{BASE_DIR / 'credentials.db'}")


# =============================================================================
# AGE / DOCUMENT POLICY
# =============================================================================
MIN_AGE = _env_int("MIN_AGE", 19)
MAX_PLAUSIBLE_AGE = _env_int("MAX_PLAUSIBLE_AGE", 150)

# OCR confidence (0-100) below which a LOW_CONFIDENCE warning is raised
LOW_CONFIDENCE_THRESHOLD = _env_float("LOW_CONFIDENCE_THRESHOLD", 20.0)

# Warn when a document expires within this many days
EXPIRING_SOON_DAYS = _env_int("EXPIRING_SOON_DAYS", 90)

# Client-claimed birth date fallback when server extraction fails: "lenient" or "strict"
CLIENT_DOB_TRUST_MODE = os.environ.get("CLIENT_DOB_TRUST_MODE", "lenient").lower()


# =============================================================================
# DATE HEURISTICS
# =============================================================================
# Birth-plausible window: BIRTH_WINDOW_MIN_YEAR .. (current year - BIRTH_WINDOW_MIN_AGE)
BIRTH_WINDOW_MIN_YEAR = _env_int("BIRTH_WINDOW_MIN_YEAR", 1940)
BIRTH_WINDOW_MIN_AGE = _env_int("BIRTH_WINDOW_MIN_AGE", 14)

# Oldest-date fallback range: OLDEST_FALLBACK_MIN_YEAR .. (current year - OLDEST_FALLBACK_MIN_AGE)
OLDEST_FALLBACK_MIN_YEAR = _env_int("OLDEST_FALLBACK_MIN_YEAR", 1920)
OLDEST_FALLBACK_MIN_AGE = _env_int("OLDEST_FALLBACK_MIN_AGE", 16)

# How many characters before a date are searched for a field label
LABEL_CONTEXT_WINDOW = _env_int("LABEL_CONTEXT_WINDOW", 30)

# Plausible expiry years: EXPIRY_MIN_YEAR .. (current year + EXPIRY_MAX_YEARS_AHEAD)
EXPIRY_MIN_YEAR = _env_int("EXPIRY_MIN_YEAR", 2000)
EXPIRY_MAX_YEARS_AHEAD = _env_int("EXPIRY_MAX_YEARS_AHEAD", 30)


# =============================================================================
# DOCUMENT TEMPLATE
# =============================================================================
DOCUMENT_LAYOUT = os.environ.get("DOCUMENT_LAYOUT", "ontario_dl")

# ID number format: total digits and hyphen grouping
ID_NUMBER_DIGITS = 15
ID_NUMBER_GROUPS = (5, 5, 5)


# =============================================================================
# OCR / IMAGE PROCESSING
# =============================================================================
OCR_ENGINE = os.environ.get("OCR_ENGINE", "tesseract").lower()  # "tesseract" or "paddle"
OCR_LANGUAGE = os.environ.get("OCR_LANGUAGE", "eng")
OCR_WORKERS = _env_int("OCR_WORKERS", 2)
OCR_TIMEOUT_SECONDS = _env_float("OCR_TIMEOUT_SECONDS", 90.0)

RECTIFIER_POOL_SIZE = _env_int("RECTIFIER_POOL_SIZE", 3)
RECTIFY_TIMEOUT_SECONDS = _env_float("RECTIFY_TIMEOUT_SECONDS", 60.0)

# Longest side of the decoded document before rectification
MAX_IMAGE_DIMENSION = _env_int("MAX_IMAGE_DIMENSION", 2000)

# Shortest side the dates pass upscales to
DATES_PASS_MIN_SIDE = 1500


# =============================================================================
# FACE MATCHING (similarity model is external; only thresholds live here)
# =============================================================================
FACE_MATCH_THRESHOLD = _env_float("FACE_MATCH_THRESHOLD", 0.75)
FACE_MATCH_INCONCLUSIVE_THRESHOLD = _env_float("FACE_MATCH_INCONCLUSIVE_THRESHOLD", 0.5)


# =============================================================================
# CREDENTIAL ISSUANCE
# =============================================================================
WEBAUTHN_RP_ID = os.environ.get("WEBAUTHN_RP_ID", "localhost")
WEBAUTHN_RP_NAME = os.environ.get("WEBAUTHN_RP_NAME", "Age Verification")
WEBAUTHN_ORIGIN = os.environ.get("WEBAUTHN_ORIGIN", "http://localhost:3000")
WEBAUTHN_TIMEOUT_MS = 60000
CHALLENGE_TTL_SECONDS = _env_int("CHALLENGE_TTL_SECONDS", 5 * 60)
