"""Registration and monitoring flow for one user session.

``VerificationSession`` owns no resources of its own: the camera manager, the
detection invoker (and through it the landmark model), the record store and the
notification sink are handed in and shared for the lifetime of the session.
Everything runs on one event loop; a capture, its comparison and its record
write always settle before the next monitoring iteration starts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

import numpy as np

from .camera import CameraSession, CameraSessionManager
from .camera_capture import CameraConstraints
from .config import ATTENDANCE_COOLDOWN_SECONDS, MONITOR_TICK_SECONDS
from .database import ProfileRecord
from .descriptor import from_transport, to_transport
from .detection import DetectionInvoker
from .exceptions import AttendanceError, CameraError, DescriptorError, StoreError
from .identity import IdentityProvider
from .logger import setup_logger
from .notifications import Notification, NotificationKind, NotificationSink
from .similarity import SimilarityEngine
from .store import RecordStore


class VerificationState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    MONITORING = "monitoring"


class IterationOutcome(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    COOLDOWN = "cooldown"
    FAILED = "failed"
    STOPPED = "stopped"


class MonitoringLoop:
    """Repeating task that can be told to stop.

    The stop flag and the continuation predicate are checked at the top of every
    iteration, so once ``stop()`` is requested no further iteration body runs. An
    iteration already in progress is allowed to settle.
    """

    def __init__(
        self,
        body: Callable[[], Awaitable[IterationOutcome]],
        should_continue: Callable[[], bool],
        tick_seconds: float,
        logger: logging.Logger,
    ):
        self._body = body
        self._should_continue = should_continue
        self.tick_seconds = tick_seconds
        self.logger = logger
        self.iterations = 0
        self.last_outcome: Optional[IterationOutcome] = None

        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def start(self) -> "MonitoringLoop":
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="attendance-monitor")
        return self

    async def _run(self) -> None:
        self.logger.info("Monitoring loop started (tick %.2fs)", self.tick_seconds)
        while not self._stop.is_set() and self._should_continue():
            try:
                self.last_outcome = await self._body()
            except Exception:
                # A failed iteration is logged and the loop keeps its tick.
                self.logger.exception("Monitoring iteration failed")
                self.last_outcome = IterationOutcome.FAILED
            self.iterations += 1

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                pass
        self.logger.info("Monitoring loop stopped after %d iterations", self.iterations)

    def request_stop(self) -> None:
        self._stop.set()

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task

    async def wait(self) -> None:
        if self._task is not None:
            await self._task


class VerificationSession:
    def __init__(
        self,
        identity: IdentityProvider,
        store: RecordStore,
        camera: CameraSessionManager,
        invoker: DetectionInvoker,
        notifier: NotificationSink,
        similarity: Optional[SimilarityEngine] = None,
        cooldown_seconds: float = ATTENDANCE_COOLDOWN_SECONDS,
        tick_seconds: float = MONITOR_TICK_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.identity = identity
        self.store = store
        self.camera = camera
        self.invoker = invoker
        self.notifier = notifier
        self.similarity = similarity or SimilarityEngine()
        self.cooldown_seconds = cooldown_seconds
        self.tick_seconds = tick_seconds
        self.clock = clock
        self.now = now
        self.logger = setup_logger(self.__class__.__name__)

        self.state = VerificationState.UNREGISTERED
        self.user_id: Optional[str] = None
        self.display_name: Optional[str] = None
        self.stored_descriptor: Optional[np.ndarray] = None

        self._last_accepted_at: Optional[float] = None
        self._capturing = False
        self._loop: Optional[MonitoringLoop] = None

    @property
    def monitoring_loop(self) -> Optional[MonitoringLoop]:
        return self._loop

    async def start(self) -> VerificationState:
        self.user_id = self.identity.get_current_user_id()
        try:
            profile = await self.store.read_profile(self.user_id)
            self._resolve_state(profile)
            if self.state is VerificationState.MONITORING:
                await self._restore_cooldown()
        except StoreError as exc:
            self._surface("Could not load profile", exc)
            raise

        self.logger.info("Session for %s starts in %s state", self.user_id, self.state.value)
        return self.state

    def _resolve_state(self, profile: Optional[ProfileRecord]) -> None:
        self.display_name = profile.display_name if profile else None

        if profile is not None and profile.is_registered:
            try:
                self.stored_descriptor = from_transport(profile.encoded_descriptor)
                self.state = VerificationState.MONITORING
                return
            except DescriptorError as exc:
                self.logger.warning("Stored descriptor for %s is unreadable: %s", self.user_id, exc)
                self._notify(
                    NotificationKind.WARNING,
                    "Registration required",
                    "Your stored face data could not be read. Please register again.",
                )

        self.stored_descriptor = None
        self.logger.info("No registered face for %s; registration required", self.user_id)
        self.state = VerificationState.REGISTERING

    async def _restore_cooldown(self) -> None:
        """Carry the cooldown over from the newest stored attendance record."""
        latest = await self.store.list_attendance(self.user_id, limit=1)
        if not latest:
            return

        try:
            recorded_at = datetime.fromisoformat(latest[0].recorded_at)
        except ValueError:
            self.logger.warning("Ignoring unreadable attendance timestamp %r", latest[0].recorded_at)
            return

        elapsed = max(0.0, (self.now() - recorded_at).total_seconds())
        if elapsed < self.cooldown_seconds:
            self._last_accepted_at = self.clock() - elapsed
            self.logger.info(
                "Last attendance for %s was %.0fs ago; cooldown continues", self.user_id, elapsed
            )

    async def open_camera(self, constraints: Optional[CameraConstraints] = None) -> CameraSession:
        try:
            return await self.camera.acquire(constraints)
        except CameraError as exc:
            self._surface("Camera error", exc)
            raise

    def _active_session(self) -> CameraSession:
        session = self.camera.session
        if session is None or not session.active:
            raise CameraError("Camera is not active. Start the camera first.")
        return session

    async def register(self, display_name: Optional[str] = None) -> np.ndarray:
        if self.state is not VerificationState.REGISTERING:
            raise AttendanceError(f"Registration is not available in {self.state.value} state.")
        if self._capturing:
            raise AttendanceError("A face capture is already in progress.")

        name = (display_name or "").strip() or self.display_name or self.user_id
        self._capturing = True
        try:
            session = self._active_session()
            descriptor = await self.invoker.detect_one(session.surface)
            encoded = to_transport(descriptor)
            await self.store.upsert_profile(self.user_id, encoded, name)
        except AttendanceError as exc:
            self._surface("Registration failed", exc)
            raise
        finally:
            self._capturing = False

        self.stored_descriptor = from_transport(encoded)
        self.display_name = name
        self.state = VerificationState.MONITORING
        self.logger.info("Face registered for %s (%s)", self.user_id, name)
        self._notify(NotificationKind.SUCCESS, "Face registered", "Attendance monitoring is now active.")
        return self.stored_descriptor

    def start_monitoring(self) -> MonitoringLoop:
        if self.state is not VerificationState.MONITORING:
            raise AttendanceError(f"Monitoring is not available in {self.state.value} state.")
        if self._loop is not None and self._loop.running:
            return self._loop

        session = self._active_session()
        self._loop = MonitoringLoop(
            body=self.run_iteration,
            should_continue=lambda: session.active,
            tick_seconds=self.tick_seconds,
            logger=self.logger,
        )
        return self._loop.start()

    def in_cooldown(self) -> bool:
        if self._last_accepted_at is None:
            return False
        return (self.clock() - self._last_accepted_at) < self.cooldown_seconds

    async def run_iteration(self) -> IterationOutcome:
        session = self.camera.session
        if session is None or not session.active:
            return IterationOutcome.STOPPED
        if self.state is not VerificationState.MONITORING or self.stored_descriptor is None:
            return IterationOutcome.STOPPED
        if self._capturing:
            return IterationOutcome.STOPPED
        if self.in_cooldown():
            return IterationOutcome.COOLDOWN

        self._capturing = True
        try:
            return await self._verify_once(session)
        finally:
            self._capturing = False

    async def _verify_once(self, session: CameraSession) -> IterationOutcome:
        try:
            descriptor = await self.invoker.detect_one(session.surface)
            score = self.similarity.score(descriptor, self.stored_descriptor)
        except AttendanceError as exc:
            # One bad frame never stops monitoring.
            self.logger.warning("Monitoring capture failed: %s: %s", exc.__class__.__name__, exc)
            return IterationOutcome.FAILED

        if score < self.similarity.threshold:
            self.logger.info("Face did not match for %s (score %.3f)", self.user_id, score)
            return IterationOutcome.NO_MATCH

        try:
            record = await self.store.insert_attendance(self.user_id, self.display_name or self.user_id, self.now())
        except StoreError as exc:
            self._surface("Attendance not saved", exc)
            return IterationOutcome.FAILED

        self._last_accepted_at = self.clock()
        self.logger.info("Attendance recorded for %s (score %.3f)", self.user_id, score)
        self._notify(NotificationKind.SUCCESS, "Attendance recorded", f"{record.display_name} at {record.recorded_at}")
        return IterationOutcome.MATCHED

    async def stop_monitoring(self) -> None:
        if self._loop is not None:
            await self._loop.stop()

    async def close(self) -> None:
        try:
            await self.stop_monitoring()
        finally:
            self.camera.release()

    def _notify(self, kind: NotificationKind, title: str, description: str = "") -> None:
        self.notifier.notify(Notification(kind=kind, title=title, description=description))

    def _surface(self, title: str, exc: AttendanceError) -> None:
        self.logger.error("%s: %s", title, exc)
        self._notify(NotificationKind.ERROR, title, str(exc))
