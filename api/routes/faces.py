"""Face match endpoint (embeddings come from an external face model)."""
from fastapi import APIRouter

from models.schemas import FaceCompareRequest, FaceCompareResponse
from services.face_recognition import compare_embeddings

router = APIRouter(prefix="/faces", tags=["Face"])


@router.post("/compare", response_model=FaceCompareResponse)
async def compare_faces_endpoint(request: FaceCompareRequest):
    """
    Compare the ID photo embedding with the selfie embedding.

    Passes at 0.75 similarity; 0.5 and above is reported as inconclusive.
    """
    result = compare_embeddings(request.embedding1, request.embedding2)
    return result.to_dict()
