"""
API Endpoint Tests

Tests for all FastAPI endpoints using pytest and httpx.
The OCR service is replaced by one backed by a fake recognition engine.
Run with: pytest tests/test_endpoints.py -v
"""
import base64
import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEngine
from api.dependencies import get_optional_ocr_service
from main import app
from services.credential_service import b64url_decode, b64url_encode
from services.ocr_engine import OcrText
from services.ocr_service import DocumentOCRService
from services.rectifier import ImageRectifier
from services.resource_pool import ResourcePool

DOCUMENT_TEXT = (
    "ONTARIO DRIVER'S LICENCE\nSMITH, JOHN\nA12345-67890-54321\n"
    "DOB: 1990/05/14 EXP 2029/05/14"
)

# Shared with every fake engine; tests swap entries in place
RESPONSES = {
    "name": OcrText("SMITH, JOHN", 88.0),
    "dlNumber": OcrText("A12345-67890-54321", 91.0),
    "dob": OcrText("1990/05/14", 86.0),
    "expiry": OcrText("2029/05/14", 84.0),
    "document": OcrText(DOCUMENT_TEXT, 80.0),
}
DEFAULT_RESPONSES = dict(RESPONSES)

_services = {}


async def fake_ocr_service():
    """Build the fake-engine service lazily, inside the app's event loop."""
    if "service" not in _services:
        ocr_pool = ResourcePool(lambda: FakeEngine(RESPONSES), size=1, name="ocr")
        rectifier_pool = ResourcePool(ImageRectifier, size=1, name="rectifier")
        await ocr_pool.start()
        await rectifier_pool.start()
        _services["service"] = DocumentOCRService(ocr_pool, rectifier_pool)
    return _services["service"]


@pytest.fixture(scope="module")
def client():
    app.dependency_overrides[get_optional_ocr_service] = fake_ocr_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    _services.clear()


@pytest.fixture(autouse=True)
def reset_responses():
    yield
    RESPONSES.clear()
    RESPONSES.update(DEFAULT_RESPONSES)


@pytest.fixture
def card_b64(card_png_bytes):
    return base64.b64encode(card_png_bytes).decode("ascii")


def registration_response(challenge, credential_id="cred-abc", origin="http://localhost:3000"):
    client_data = {"type": "webauthn.create", "challenge": challenge, "origin": origin}
    return {
        "id": credential_id,
        "rawId": credential_id,
        "type": "public-key",
        "response": {
            "clientDataJSON": b64url_encode(json.dumps(client_data).encode("utf-8")),
            "attestationObject": b64url_encode(b"attestation"),
        },
    }


class TestHealthEndpoint:
    """Test /api/v1/health endpoint."""

    def test_health_check(self, client):
        """Health endpoint should return 200 with per-component readiness."""
        response = client.get("/api/v1/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] in ("ok", "degraded")
        assert data["databaseReady"] is True
        assert "ocrReady" in data
        assert "rectifierReady" in data

    def test_request_id_echoed(self, client):
        response = client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_request_id_generated(self, client):
        response = client.get("/api/v1/health")
        assert response.headers["X-Request-ID"]


class TestAPIInfo:
    """Test /api endpoint."""

    def test_api_info(self, client):
        response = client.get("/api")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Age Verification API"
        assert "version" in data


class TestExtractEndpoint:
    """Test /api/v1/documents/extract."""

    def test_no_image(self, client):
        response = client.post("/api/v1/documents/extract")
        assert response.status_code == 422

    def test_invalid_image(self, client):
        response = client.post(
            "/api/v1/documents/extract",
            files={"image": ("test.jpg", b"not an image", "image/jpeg")}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "IMAGE_PROCESSING_ERROR"

    def test_extract(self, client, card_png_bytes):
        response = client.post(
            "/api/v1/documents/extract",
            files={"image": ("card.png", card_png_bytes, "image/png")}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "SMITH, JOHN"
        assert data["idNumber"] == "12345-67890-54321"
        assert data["birthDate"] == "1990-05-14"
        assert data["expiryDate"] == "2029-05-14"
        assert data["verdict"]["isOver19"] is True
        assert data["verdict"]["errors"] == []
        assert "fields" not in data
        assert "photo" not in data

    def test_extract_debug(self, client, card_png_bytes):
        response = client.post(
            "/api/v1/documents/extract?debug=true",
            files={"image": ("card.png", card_png_bytes, "image/png")}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["fields"]["dob"]["source"] == "region"
        assert data["fields"]["dob"]["crop"].startswith("data:image/png;base64,")
        assert data["photo"].startswith("data:image/png;base64,")

    def test_unreadable_birth_date_is_a_verdict_not_an_http_error(self, client, card_png_bytes):
        RESPONSES.clear()
        RESPONSES.update({"document": OcrText("EXP 2020-01-01", 40.0)})
        response = client.post(
            "/api/v1/documents/extract",
            files={"image": ("card.png", card_png_bytes, "image/png")}
        )
        assert response.status_code == 200
        verdict = response.json()["verdict"]
        assert verdict["isValid"] is False
        assert verdict["errors"][0]["code"] == "NO_BIRTH_DATE"

    def test_engine_not_running(self, client, card_png_bytes):
        app.dependency_overrides[get_optional_ocr_service] = lambda: None
        try:
            response = client.post(
                "/api/v1/documents/extract",
                files={"image": ("card.png", card_png_bytes, "image/png")}
            )
        finally:
            app.dependency_overrides[get_optional_ocr_service] = fake_ocr_service
        assert response.status_code == 503
        assert response.json()["code"] == "OCR_ENGINE_ERROR"


class TestValidateEndpoint:
    """Test /api/v1/documents/validate."""

    def test_valid(self, client):
        response = client.post("/api/v1/documents/validate", json={
            "birthDate": "1990-05-14",
            "expiryDate": "2099-05-14",
            "idNumber": "12345-67890-54321",
            "name": "SMITH, JOHN",
            "confidence": 80,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["isValid"] is True
        assert data["isOver19"] is True

    def test_expired(self, client):
        response = client.post("/api/v1/documents/validate", json={
            "birthDate": "1990-05-14",
            "expiryDate": "2023-01-01",
        })
        data = response.json()
        assert data["isValid"] is False
        assert data["isExpired"] is True
        assert [e["code"] for e in data["errors"]] == ["ID_EXPIRED"]

    def test_missing_birth_date(self, client):
        data = client.post("/api/v1/documents/validate", json={}).json()
        assert data["isValid"] is False
        assert data["errors"][0]["code"] == "NO_BIRTH_DATE"

    def test_impossible_date_rejected(self, client):
        response = client.post("/api/v1/documents/validate", json={"birthDate": "2024-02-30"})
        assert response.status_code == 422


class TestOCREndpoint:
    """Test /api/v1/ocr/recognize."""

    def test_recognize(self, client, card_b64):
        response = client.post("/api/v1/ocr/recognize", json={"imageData": card_b64})
        assert response.status_code == 200
        data = response.json()
        assert data["text"] == DOCUMENT_TEXT
        assert "debug" not in data

    def test_recognize_data_url_debug(self, client, card_b64):
        response = client.post(
            "/api/v1/ocr/recognize?debug=true",
            json={"imageData": f"data:image/png;base64,{card_b64}"}
        )
        assert response.status_code == 200
        assert "generalPass" in response.json()["debug"]

    def test_recognize_bad_image(self, client):
        response = client.post("/api/v1/ocr/recognize", json={"imageData": "bm90IGFuIGltYWdl"})
        assert response.status_code == 400


class TestVerifyEndpoints:
    """Test the re-validation gate and credential issuance."""

    def test_fast_path_round_trip(self, client):
        start = client.post("/api/v1/verify/start", json={
            "rawOcrText": "SMITH, JOHN\nDOB: 1990/05/14",
            "birthDate": "1990-05-14",
            "age": 34,
            "faceMatchConfidence": 0.92,
        })
        assert start.status_code == 200
        data = start.json()
        assert data["ocrPassed"] is True
        assert data["agePassed"] is True
        assert data["birthDate"] == "1990-05-14"
        assert data["registrationOptions"]["challenge"] == data["challenge"]

        complete = client.post("/api/v1/verify/complete", json={
            "userId": data["userId"],
            "attestationResponse": registration_response(data["challenge"]),
        })
        assert complete.status_code == 200
        result = complete.json()
        assert result["success"] is True
        assert result["credentialId"] == "cred-abc"
        assert result["credentialIdBase64"] == base64.b64encode(b64url_decode("cred-abc")).decode("ascii")

        # Challenge is single-use
        replay = client.post("/api/v1/verify/complete", json={
            "userId": data["userId"],
            "attestationResponse": registration_response(data["challenge"], "cred-def"),
        })
        assert replay.status_code == 400
        assert replay.json()["code"] == "CHALLENGE_ERROR"

    def test_wrong_origin(self, client):
        data = client.post("/api/v1/verify/start", json={"rawOcrText": "DOB: 1990/05/14"}).json()
        response = client.post("/api/v1/verify/complete", json={
            "userId": data["userId"],
            "attestationResponse": registration_response(data["challenge"], origin="https://evil.example"),
        })
        assert response.status_code == 400
        assert response.json()["code"] == "CREDENTIAL_ERROR"

    def test_under_age(self, client):
        data = client.post("/api/v1/verify/start", json={"rawOcrText": "DOB: 2015/01/01"}).json()
        assert data["ocrPassed"] is True
        assert data["agePassed"] is False
        assert "Must be 19+" in data["error"]
        assert "userId" not in data

    def test_uncorroborated_claim_gets_generic_error(self, client):
        data = client.post("/api/v1/verify/start", json={
            "rawOcrText": "nothing useful here",
            "birthDate": "not-a-date",
            "age": 40,
        }).json()
        assert data["ocrPassed"] is False
        assert data["error"] == "Verification could not be completed"

    def test_lenient_client_claim(self, client):
        data = client.post("/api/v1/verify/start", json={
            "rawOcrText": "nothing useful here",
            "birthDate": "1985-01-01",
            "age": 39,
        }).json()
        assert data["ocrPassed"] is True
        assert data["agePassed"] is True
        assert data["birthDate"] == "1985-01-01"

    def test_missing_input(self, client):
        response = client.post("/api/v1/verify/start", json={"birthDate": "1990-05-14", "age": 34})
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_VERIFICATION_INPUT"

    def test_slow_path(self, client, card_b64):
        data = client.post("/api/v1/verify/start", json={"idPhoto": card_b64}).json()
        assert data["ocrPassed"] is True
        assert data["agePassed"] is True
        assert data["birthDate"] == "1990-05-14"

    def test_slow_path_too_little_text(self, client, card_b64):
        RESPONSES["document"] = OcrText("SMITH", 30.0)
        RESPONSES["dates"] = OcrText("", 0.0)
        data = client.post("/api/v1/verify/start", json={"idPhoto": card_b64}).json()
        assert data["ocrPassed"] is False
        assert data["error"] == "Verification could not be completed"

    def test_complete_unknown_user(self, client):
        response = client.post("/api/v1/verify/complete", json={
            "userId": "nobody",
            "attestationResponse": registration_response("x"),
        })
        assert response.status_code == 400


class TestFacesEndpoint:
    """Test /api/v1/faces/compare."""

    def test_match(self, client):
        response = client.post("/api/v1/faces/compare", json={
            "embedding1": [0.1, 0.2, 0.3],
            "embedding2": [0.1, 0.2, 0.3],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["passed"] is True
        assert data["similarityScore"] == pytest.approx(1.0)

    def test_length_mismatch(self, client):
        response = client.post("/api/v1/faces/compare", json={
            "embedding1": [0.1, 0.2, 0.3],
            "embedding2": [0.1, 0.2],
        })
        assert response.status_code == 422


class TestMetricsEndpoint:

    def test_metrics(self, client):
        client.get("/api/v1/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "agecheck_requests_total" in response.text
