import numpy as np

from .config import SIMILARITY_THRESHOLD
from .exceptions import DimensionMismatch


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    left = np.asarray(a, dtype=np.float64).reshape(-1)
    right = np.asarray(b, dtype=np.float64).reshape(-1)
    if left.size != right.size:
        raise DimensionMismatch(f"Descriptor lengths differ: {left.size} != {right.size}.")

    left = left / max(float(np.linalg.norm(left)), 1e-9)
    right = right / max(float(np.linalg.norm(right)), 1e-9)
    # Elementwise product then sum keeps score(a, b) == score(b, a) bit for bit.
    return float(np.clip(np.sum(left * right), -1.0, 1.0))


class SimilarityEngine:
    """Cosine similarity over L2-normalized descriptors, one threshold everywhere."""

    def __init__(self, threshold: float = SIMILARITY_THRESHOLD):
        if not -1.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [-1, 1].")
        self.threshold = threshold

    def score(self, a: np.ndarray, b: np.ndarray) -> float:
        return cosine_similarity(a, b)

    def is_match(self, a: np.ndarray, b: np.ndarray) -> bool:
        return self.score(a, b) >= self.threshold
