"""
Face Match Service.

The face model itself is an external black box that produces embeddings; this
module only compares two embeddings and applies the match thresholds.
"""
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from utils.config import FACE_MATCH_INCONCLUSIVE_THRESHOLD, FACE_MATCH_THRESHOLD
from utils.exceptions import ValidationError

Embedding = Union[np.ndarray, Sequence[float]]


def cosine_similarity(embedding1: Embedding, embedding2: Embedding) -> float:
    """
    Cosine similarity of two embeddings mapped from [-1, 1] to [0, 1].

    A zero-length embedding has no direction and scores 0.0.
    """
    e1 = np.asarray(embedding1, dtype=np.float64).ravel()
    e2 = np.asarray(embedding2, dtype=np.float64).ravel()
    if e1.shape != e2.shape:
        raise ValidationError(
            "Embeddings must have the same length",
            field="embedding2",
            details={"lengths": [int(e1.size), int(e2.size)]}
        )

    norm1 = np.linalg.norm(e1)
    norm2 = np.linalg.norm(e2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    similarity = np.dot(e1, e2) / (norm1 * norm2)
    return float(max(0.0, min(1.0, (similarity + 1) / 2)))


@dataclass
class FaceMatchResult:
    similarity_score: float
    passed: bool
    inconclusive: bool
    message: str

    def to_dict(self) -> dict:
        return {
            "similarityScore": round(self.similarity_score, 4),
            "passed": self.passed,
            "inconclusive": self.inconclusive,
            "message": self.message,
        }


def validate_face_match(
    score: float,
    threshold: float = FACE_MATCH_THRESHOLD,
    inconclusive_threshold: float = FACE_MATCH_INCONCLUSIVE_THRESHOLD,
) -> FaceMatchResult:
    """Classify a similarity score as match, inconclusive or mismatch."""
    if score >= threshold:
        return FaceMatchResult(score, True, False, "Face matches the ID photo")
    if score >= inconclusive_threshold:
        return FaceMatchResult(
            score, False, True,
            "Face match inconclusive. Please retake your selfie in better lighting."
        )
    return FaceMatchResult(score, False, False, "Face does not match the ID photo")


def compare_embeddings(embedding1: Embedding, embedding2: Embedding) -> FaceMatchResult:
    return validate_face_match(cosine_similarity(embedding1, embedding2))
