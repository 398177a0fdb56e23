from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Iterable, List, Protocol

import cv2
import numpy as np

from .config import MAX_FACES, MIN_DETECTION_CONFIDENCE, REFINE_LANDMARKS
from .exceptions import FaceEngineError, ModelUnavailable
from .landmark_types import DetectedFace, Keypoint
from .logger import setup_logger

try:
    import mediapipe as mp
except Exception:  # pragma: no cover - runtime dependency guard
    mp = None


class LandmarkModel(Protocol):
    def estimate_faces(self, frame: np.ndarray) -> List[DetectedFace]: ...


def _to_keypoint(raw: Any) -> Keypoint:
    if isinstance(raw, Keypoint):
        return raw
    if isinstance(raw, Mapping):
        z = raw.get("z")
        return Keypoint(float(raw["x"]), float(raw["y"]), float(z) if z is not None else 0.0)
    if hasattr(raw, "x") and hasattr(raw, "y"):
        z = getattr(raw, "z", None)
        return Keypoint(float(raw.x), float(raw.y), float(z) if z is not None else 0.0)

    values = list(raw)
    if len(values) not in (2, 3):
        raise FaceEngineError(f"Unsupported keypoint shape with {len(values)} values.")
    return Keypoint(*(float(v) for v in values))


def to_detected_faces(raw_faces: Iterable[Any]) -> List[DetectedFace]:
    """Adapt landmark output of any supported shape into ``DetectedFace`` records.

    Accepts ``DetectedFace`` instances, mappings with a ``keypoints`` key, objects
    with a ``keypoints`` attribute, or bare keypoint sequences. Keypoints may be
    ``Keypoint``, ``{"x", "y", "z"?}`` mappings, objects with x/y(/z) attributes,
    or 2/3-tuples.
    """
    faces: List[DetectedFace] = []
    for raw in raw_faces:
        if isinstance(raw, DetectedFace):
            faces.append(raw)
            continue
        if isinstance(raw, Mapping):
            points = raw.get("keypoints", [])
        else:
            points = getattr(raw, "keypoints", raw)
        faces.append(DetectedFace(keypoints=[_to_keypoint(p) for p in points]))
    return faces


class FaceMeshModel:
    """MediaPipe Face Mesh with keypoints in pixel units, like the browser runtime."""

    def __init__(
        self,
        max_faces: int = MAX_FACES,
        refine_landmarks: bool = REFINE_LANDMARKS,
        min_detection_confidence: float = MIN_DETECTION_CONFIDENCE,
    ):
        if mp is None:
            raise ModelUnavailable("mediapipe is required. Install the project dependencies.")

        self.max_faces = max_faces
        self.logger = setup_logger(self.__class__.__name__)
        try:
            self.mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=max_faces,
                refine_landmarks=refine_landmarks,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=0.5,
            )
        except Exception as exc:
            raise ModelUnavailable(f"Failed to initialize face mesh model: {exc}") from exc

    def estimate_faces(self, frame: np.ndarray) -> List[DetectedFace]:
        try:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            result = self.mesh.process(rgb)
        except Exception as exc:
            raise FaceEngineError(f"Face landmark estimation failed: {exc}") from exc

        if not result.multi_face_landmarks:
            return []

        h, w = frame.shape[:2]
        faces: List[DetectedFace] = []
        for landmarks in result.multi_face_landmarks:
            # Depth is scaled by width, matching the normalized x axis.
            keypoints = [Keypoint(lm.x * w, lm.y * h, lm.z * w) for lm in landmarks.landmark]
            faces.append(DetectedFace(keypoints=keypoints))
        return faces

    def close(self) -> None:
        self.mesh.close()


async def load_landmark_model(
    max_faces: int = MAX_FACES,
    refine_landmarks: bool = REFINE_LANDMARKS,
    min_detection_confidence: float = MIN_DETECTION_CONFIDENCE,
) -> FaceMeshModel:
    model = await asyncio.to_thread(
        FaceMeshModel,
        max_faces=max_faces,
        refine_landmarks=refine_landmarks,
        min_detection_confidence=min_detection_confidence,
    )
    model.logger.info("Face mesh model initialized (max_faces=%d)", max_faces)
    return model
