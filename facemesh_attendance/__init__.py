from .descriptor import encode_landmarks, from_transport, to_transport
from .similarity import SimilarityEngine, cosine_similarity
from .verification import IterationOutcome, MonitoringLoop, VerificationSession, VerificationState

__all__ = [
    "IterationOutcome",
    "MonitoringLoop",
    "SimilarityEngine",
    "VerificationSession",
    "VerificationState",
    "cosine_similarity",
    "encode_landmarks",
    "from_transport",
    "to_transport",
]
