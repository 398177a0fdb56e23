from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import cv2
import numpy as np

from .camera_capture import CameraConstraints, open_camera_capture
from .config import CAMERA_READY_POLL_SECONDS, CAMERA_READY_TIMEOUT_SECONDS
from .exceptions import CameraError, DeviceUnavailable, DisplaySurfaceMissing
from .logger import setup_logger

CaptureOpener = Callable[[CameraConstraints], Tuple[Any, str]]


class VideoSurface:
    """Holds the bound capture and the most recent decoded frame.

    The surface is ready once it has decoded its first frame; readiness is
    cleared whenever the surface is rebound or unbound.
    """

    def __init__(self, mirror: bool = False, poll_interval: float = CAMERA_READY_POLL_SECONDS):
        self.mirror = mirror
        self.poll_interval = poll_interval
        self.capture: Any = None
        self.last_frame: Optional[np.ndarray] = None
        self._ready = asyncio.Event()

    @property
    def is_bound(self) -> bool:
        return self.capture is not None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def bind(self, capture: Any) -> None:
        self.capture = capture
        self.last_frame = None
        self._ready.clear()

    def unbind(self) -> None:
        self.capture = None
        self.last_frame = None
        self._ready.clear()

    async def _grab(self) -> Optional[np.ndarray]:
        capture = self.capture
        if capture is None:
            return None

        # Only the blocking read runs off the loop; surface state changes stay on it.
        success, frame = await asyncio.to_thread(capture.read)
        if not success or frame is None or self.capture is not capture:
            return None
        if self.mirror:
            frame = cv2.flip(frame, 1)
        self.last_frame = frame
        self._ready.set()
        return frame

    async def read_frame(self) -> np.ndarray:
        if self.capture is None:
            raise CameraError("Webcam stream is not bound to a display surface.")

        frame = await self._grab()
        if frame is None:
            raise CameraError("Failed to read frame from webcam.")
        return frame

    async def wait_ready(self, timeout: float) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(0.0, timeout)
        while not self._ready.is_set():
            if self.capture is None:
                return False
            if await self._grab() is not None:
                break
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)
        return True


@dataclass
class CameraSession:
    camera_index: int
    constraints: CameraConstraints
    backend_name: str
    surface: VideoSurface
    ready: bool = False
    active: bool = True


class CameraSessionManager:
    """Sole owner of the active capture; at most one session at a time."""

    def __init__(
        self,
        surface: Optional[VideoSurface] = None,
        opener: CaptureOpener = open_camera_capture,
        ready_timeout: float = CAMERA_READY_TIMEOUT_SECONDS,
    ):
        self.surface = surface
        self.opener = opener
        self.ready_timeout = ready_timeout
        self.logger = setup_logger(self.__class__.__name__)

        self._session: Optional[CameraSession] = None
        self._capture: Any = None

    @property
    def session(self) -> Optional[CameraSession]:
        return self._session

    def attach_surface(self, surface: VideoSurface) -> None:
        if self._session is not None:
            self.release()
        self.surface = surface

    async def acquire(self, constraints: Optional[CameraConstraints] = None) -> CameraSession:
        if self.surface is None:
            raise DisplaySurfaceMissing("No display surface available to bind the camera stream.")
        if self._session is not None:
            self.logger.info("Releasing previous camera session before acquiring a new one")
            self.release()

        constraints = constraints or CameraConstraints()
        try:
            capture, backend_name = await asyncio.to_thread(self.opener, constraints)
        except DeviceUnavailable:
            raise
        except Exception as exc:
            raise DeviceUnavailable(f"Camera request rejected: {exc}") from exc

        self._capture = capture
        self.surface.bind(capture)
        session = CameraSession(
            camera_index=constraints.camera_index,
            constraints=constraints,
            backend_name=backend_name,
            surface=self.surface,
        )
        self._session = session

        session.ready = await self.surface.wait_ready(self.ready_timeout)
        if not session.ready:
            self.logger.warning(
                "Camera %d (%s) delivered no frame within %.1fs; continuing without readiness",
                constraints.camera_index,
                backend_name,
                self.ready_timeout,
            )
        else:
            self.logger.info("Camera %d opened with %s backend", constraints.camera_index, backend_name)
        return session

    def release(self, session: Optional[CameraSession] = None) -> None:
        if session is not None and session is not self._session:
            session.active = False
            return

        current = self._session
        if current is None:
            return

        try:
            if self._capture is not None:
                self._capture.release()
        finally:
            self._capture = None
            if self.surface is not None:
                self.surface.unbind()
            current.active = False
            current.ready = False
            self._session = None
            self.logger.info("Camera %d released", current.camera_index)
