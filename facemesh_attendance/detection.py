from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol

import numpy as np

from .config import DETECTION_ATTEMPTS, DETECTION_RETRY_DELAY_SECONDS, FRAME_READY_TIMEOUT_SECONDS
from .descriptor import encode_landmarks
from .exceptions import (
    AttendanceError,
    FaceEngineError,
    ModelUnavailable,
    MultipleFacesDetected,
    NoFaceDetected,
)
from .landmark_model import LandmarkModel, to_detected_faces
from .landmark_types import DetectedFace
from .logger import setup_logger


class FrameSource(Protocol):
    @property
    def is_ready(self) -> bool: ...

    async def wait_ready(self, timeout: float) -> bool: ...

    async def read_frame(self) -> np.ndarray: ...


class DetectionInvoker:
    """Turns one frame source into exactly one face descriptor or a classified failure."""

    def __init__(
        self,
        model: Optional[LandmarkModel],
        attempts: int = DETECTION_ATTEMPTS,
        retry_delay: float = DETECTION_RETRY_DELAY_SECONDS,
        ready_timeout: float = FRAME_READY_TIMEOUT_SECONDS,
    ):
        if attempts < 1:
            raise ValueError("attempts must be at least 1.")
        self.model = model
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.ready_timeout = ready_timeout
        self.logger = setup_logger(self.__class__.__name__)

    async def detect_one(self, source: FrameSource) -> np.ndarray:
        if self.model is None:
            raise ModelUnavailable("Face landmark model is not loaded.")

        if not source.is_ready:
            self.logger.info("Waiting for video to be ready...")
            if not await source.wait_ready(self.ready_timeout):
                self.logger.warning(
                    "Video not ready after %.1fs; attempting detection anyway",
                    self.ready_timeout,
                )

        for attempt in range(1, self.attempts + 1):
            faces = await self._estimate(await source.read_frame())

            if len(faces) > 1:
                raise MultipleFacesDetected(
                    f"Multiple faces detected ({len(faces)}). Please ensure only one face is visible."
                )
            if len(faces) == 1:
                descriptor = encode_landmarks(faces[0].keypoints)
                self.logger.debug("Face descriptor generated with %d values", descriptor.size)
                return descriptor

            self.logger.info("No face detected, attempt %d of %d", attempt, self.attempts)
            if attempt < self.attempts:
                await asyncio.sleep(self.retry_delay)

        raise NoFaceDetected("Please position your face clearly in front of the camera.")

    async def _estimate(self, frame: np.ndarray) -> List[DetectedFace]:
        try:
            raw = await asyncio.to_thread(self.model.estimate_faces, frame)
        except AttendanceError:
            raise
        except Exception as exc:
            self.logger.exception("Landmark model raised during inference.")
            raise FaceEngineError(f"Face landmark estimation failed: {exc}") from exc

        try:
            return to_detected_faces(raw if raw is not None else [])
        except AttendanceError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise FaceEngineError(f"Malformed landmark output: {exc!r}") from exc
