from __future__ import annotations

import os
import tempfile
from datetime import datetime
from typing import Dict, List, Optional

os.environ.setdefault("FACE_LOG_DIR", tempfile.mkdtemp(prefix="facemesh-logs-"))

import numpy as np
import pytest

from facemesh_attendance.camera import CameraSessionManager, VideoSurface
from facemesh_attendance.camera_capture import CameraConstraints
from facemesh_attendance.database import AttendanceRecord, ProfileRecord
from facemesh_attendance.exceptions import StoreError
from facemesh_attendance.landmark_types import DetectedFace, Keypoint

KEYPOINT_COUNT = 478


def face_from_vector(vector: np.ndarray) -> DetectedFace:
    points = np.asarray(vector, dtype=np.float64).reshape(-1, 3)
    return DetectedFace(keypoints=[Keypoint(float(x), float(y), float(z)) for x, y, z in points])


def random_face(seed: int) -> DetectedFace:
    rng = np.random.default_rng(seed)
    return face_from_vector(rng.normal(size=KEYPOINT_COUNT * 3))


def face_with_similarity(reference: DetectedFace, similarity: float, seed: int = 99) -> DetectedFace:
    """Build a face whose descriptor has the given cosine similarity to ``reference``."""
    base = np.array([[kp.x, kp.y, kp.z] for kp in reference.keypoints], dtype=np.float64).reshape(-1)
    base /= np.linalg.norm(base)

    rng = np.random.default_rng(seed)
    noise = rng.normal(size=base.size)
    noise -= (noise @ base) * base
    noise /= np.linalg.norm(noise)

    mixed = similarity * base + np.sqrt(1.0 - similarity**2) * noise
    return face_from_vector(mixed)


class FakeCapture:
    def __init__(self, blank_reads: int = 0, never_ready: bool = False):
        self.blank_reads = blank_reads
        self.never_ready = never_ready
        self.reads = 0
        self.released = False

    def isOpened(self) -> bool:
        return True

    def set(self, prop, value) -> bool:
        return True

    def read(self):
        self.reads += 1
        if self.released or self.never_ready or self.reads <= self.blank_reads:
            return False, None
        return True, np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self) -> None:
        self.released = True


class FakeOpener:
    def __init__(self, capture_factory=FakeCapture, error: Optional[Exception] = None):
        self.capture_factory = capture_factory
        self.error = error
        self.captures: List[FakeCapture] = []
        self.calls: List[CameraConstraints] = []

    def __call__(self, constraints: CameraConstraints):
        self.calls.append(constraints)
        if self.error is not None:
            raise self.error
        capture = self.capture_factory()
        self.captures.append(capture)
        return capture, "Fake"


class ScriptedModel:
    """Returns scripted detections per call, then repeats the last script entry."""

    def __init__(self, *responses: List[DetectedFace]):
        self.responses = list(responses) or [[]]
        self.calls = 0

    def estimate_faces(self, frame: np.ndarray) -> List[DetectedFace]:
        index = min(self.calls, len(self.responses) - 1)
        self.calls += 1
        return list(self.responses[index])


class ReadySource:
    """Frame source that is always ready."""

    def __init__(self):
        self.waits = 0

    @property
    def is_ready(self) -> bool:
        return True

    async def wait_ready(self, timeout: float) -> bool:
        self.waits += 1
        return True

    async def read_frame(self) -> np.ndarray:
        return np.zeros((48, 64, 3), dtype=np.uint8)


class MemoryStore:
    def __init__(self):
        self.profiles: Dict[str, ProfileRecord] = {}
        self.records: List[AttendanceRecord] = []
        self.fail_reads = False
        self.fail_upserts = False
        self.fail_inserts = False

    async def read_profile(self, user_id: str) -> Optional[ProfileRecord]:
        if self.fail_reads:
            raise StoreError("store offline")
        return self.profiles.get(user_id)

    async def upsert_profile(self, user_id: str, encoded_descriptor: str, display_name: str) -> None:
        if self.fail_upserts:
            raise StoreError("store offline")
        now = datetime.now().isoformat(timespec="seconds")
        existing = self.profiles.get(user_id)
        self.profiles[user_id] = ProfileRecord(
            user_id=user_id,
            display_name=display_name,
            encoded_descriptor=encoded_descriptor,
            descriptor_dim=0,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

    async def insert_attendance(self, user_id: str, display_name: str, timestamp: datetime) -> AttendanceRecord:
        if self.fail_inserts:
            raise StoreError("store offline")
        record = AttendanceRecord(
            id=len(self.records) + 1,
            user_id=user_id,
            display_name=display_name,
            recorded_at=timestamp.isoformat(timespec="seconds"),
        )
        self.records.append(record)
        return record

    async def list_attendance(self, user_id: str, limit: int = 200) -> List[AttendanceRecord]:
        rows = [r for r in self.records if r.user_id == user_id]
        return list(reversed(rows))[:limit]


class RecordingNotifier:
    def __init__(self):
        self.notifications = []

    def notify(self, notification) -> None:
        self.notifications.append(notification)

    def titles(self) -> List[str]:
        return [n.title for n in self.notifications]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def camera(opener: FakeOpener) -> CameraSessionManager:
    return CameraSessionManager(surface=VideoSurface(poll_interval=0.001), opener=opener, ready_timeout=0.05)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
