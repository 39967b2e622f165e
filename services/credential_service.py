"""
Credential Issuance Bridge.

Issues a device-bound public-key credential once the age check has passed.
The ceremony itself is treated as an opaque request/response contract:

    begin_registration    -> registration options + single-use challenge (TTL)
    complete_registration -> check clientDataJSON (type, challenge, origin),
                             store the credential, burn the challenge

Attestation statements are stored as opaque bytes and not verified here.
"""
import base64
import binascii
import json
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.sql_models import Challenge, Credential, User
from utils.config import (
    CHALLENGE_TTL_SECONDS,
    WEBAUTHN_ORIGIN,
    WEBAUTHN_RP_ID,
    WEBAUTHN_RP_NAME,
    WEBAUTHN_TIMEOUT_MS,
)
from utils.exceptions import ChallengeError, CredentialError, DatabaseError

logger = logging.getLogger(__name__)

REGISTRATION = "registration"

# COSE algorithm identifiers
ES256 = -7
RS256 = -257


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the credential store columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def generate_challenge() -> str:
    return b64url_encode(secrets.token_bytes(32))


@dataclass
class RegistrationStart:
    user_id: str
    challenge: str
    options: Dict[str, Any]


def build_registration_options(user_id: str, challenge: str) -> Dict[str, Any]:
    return {
        "challenge": challenge,
        "rp": {"id": WEBAUTHN_RP_ID, "name": WEBAUTHN_RP_NAME},
        "user": {
            "id": b64url_encode(user_id.encode("utf-8")),
            "name": f"user_{user_id[:8]}",
            "displayName": "Age Verified User",
        },
        "pubKeyCredParams": [
            {"type": "public-key", "alg": ES256},
            {"type": "public-key", "alg": RS256},
        ],
        "timeout": WEBAUTHN_TIMEOUT_MS,
        "attestation": "none",
        "excludeCredentials": [],
        "authenticatorSelection": {
            "authenticatorAttachment": "platform",
            "residentKey": "preferred",
            "userVerification": "preferred",
        },
    }


async def begin_registration(db: AsyncSession, now: Optional[datetime] = None) -> RegistrationStart:
    """
    Create an anonymous age-verified user and a registration challenge.

    Expired challenges are purged first.
    """
    now = now or utcnow()
    user_id = str(uuid.uuid4())
    challenge = generate_challenge()

    try:
        await db.execute(delete(Challenge).where(Challenge.expires_at <= now))
        db.add(User(id=user_id, age_verified_at=now))
        db.add(Challenge(
            user_id=user_id,
            challenge=challenge,
            type=REGISTRATION,
            expires_at=now + timedelta(seconds=CHALLENGE_TTL_SECONDS),
        ))
        await db.flush()
    except SQLAlchemyError as e:
        raise DatabaseError(str(e), operation="begin_registration")

    logger.info("Registration challenge issued")
    return RegistrationStart(
        user_id=user_id,
        challenge=challenge,
        options=build_registration_options(user_id, challenge),
    )


def _decode_client_data(response: Dict[str, Any]) -> Dict[str, Any]:
    encoded = response.get("clientDataJSON")
    if not encoded:
        raise CredentialError("Missing clientDataJSON")
    try:
        return json.loads(b64url_decode(encoded))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise CredentialError("clientDataJSON is not valid base64url JSON", details={"reason": str(e)})


def _decode_attestation(response: Dict[str, Any]) -> bytes:
    encoded = response.get("attestationObject")
    if not encoded:
        raise CredentialError("Missing attestationObject")
    try:
        return b64url_decode(encoded)
    except (binascii.Error, ValueError) as e:
        raise CredentialError("attestationObject is not valid base64url", details={"reason": str(e)})


async def complete_registration(
    db: AsyncSession,
    user_id: str,
    attestation_response: Dict[str, Any],
    now: Optional[datetime] = None,
    expected_origin: str = WEBAUTHN_ORIGIN,
) -> Credential:
    """
    Verify a registration response against the stored challenge and store the credential.

    Raises:
        ChallengeError: no unexpired registration challenge for this user
        CredentialError: malformed response, mismatched challenge/origin, duplicate credential
    """
    now = now or utcnow()

    result = await db.execute(
        select(Challenge)
        .where(
            Challenge.user_id == user_id,
            Challenge.type == REGISTRATION,
            Challenge.expires_at > now,
        )
        .order_by(Challenge.created_at.desc(), Challenge.id.desc())
        .limit(1)
    )
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise ChallengeError("Challenge not found or expired")

    credential_id = attestation_response.get("id") or attestation_response.get("rawId")
    response = attestation_response.get("response") or {}
    if not credential_id:
        raise CredentialError("Missing credential id")

    client_data = _decode_client_data(response)
    if client_data.get("type") != "webauthn.create":
        raise CredentialError("Unexpected ceremony type", details={"type": client_data.get("type")})
    if client_data.get("challenge") != challenge.challenge:
        raise CredentialError("Challenge mismatch")
    if client_data.get("origin") != expected_origin:
        raise CredentialError("Origin mismatch", details={"origin": client_data.get("origin")})

    public_key = _decode_attestation(response)

    existing = await db.execute(select(Credential.id).where(Credential.credential_id == credential_id))
    if existing.scalar_one_or_none() is not None:
        raise CredentialError("Credential already registered")

    credential = Credential(
        user_id=user_id,
        credential_id=credential_id,
        public_key=public_key,
        counter=0,
        transports=list(response.get("transports") or []),
    )
    try:
        db.add(credential)
        await db.delete(challenge)
        await db.flush()
    except SQLAlchemyError as e:
        raise DatabaseError(str(e), operation="complete_registration")

    logger.info("Credential registered")
    return credential
