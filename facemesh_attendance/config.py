import os
from pathlib import Path


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _csv_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    values = tuple(token.strip() for token in raw.split(",") if token.strip())
    return values or default


BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
LOG_DIR = Path(os.getenv("FACE_LOG_DIR", str(BASE_DIR / "logs")))
DB_PATH = Path(os.getenv("FACE_DB_PATH", str(DATA_DIR / "attendance.db")))
LOG_LEVEL = os.getenv("FACE_LOG_LEVEL", "INFO").strip().upper()

# Identity used when no --user flag is given.
DEFAULT_USER_ID = os.getenv("FACE_USER_ID", "").strip()

# Webcam settings
CAMERA_INDEX = _int_env("FACE_CAMERA_INDEX", 0)
FRAME_WIDTH = _int_env("FACE_FRAME_WIDTH", 640)
FRAME_HEIGHT = _int_env("FACE_FRAME_HEIGHT", 480)
FACING_MODE = os.getenv("FACE_FACING_MODE", "user")
CAMERA_READY_TIMEOUT_SECONDS = _float_env("FACE_CAMERA_READY_TIMEOUT", 5.0)
CAMERA_READY_POLL_SECONDS = 0.03
CAMERA_BACKEND_ORDER = _csv_env("FACE_CAMERA_BACKEND_ORDER", ())

# Landmark model settings
MAX_FACES = max(2, _int_env("FACE_MAX_FACES", 2))
REFINE_LANDMARKS = _bool_env("FACE_REFINE_LANDMARKS", True)
MIN_DETECTION_CONFIDENCE = _float_env("FACE_MIN_DETECTION_CONFIDENCE", 0.5)

# Detection settings
DETECTION_ATTEMPTS = max(1, _int_env("FACE_DETECTION_ATTEMPTS", 3))
DETECTION_RETRY_DELAY_SECONDS = _float_env("FACE_DETECTION_RETRY_DELAY", 0.5)
FRAME_READY_TIMEOUT_SECONDS = _float_env("FACE_FRAME_READY_TIMEOUT", 5.0)

# Verification settings
SIMILARITY_THRESHOLD = _float_env("FACE_SIMILARITY_THRESHOLD", 0.85)
ATTENDANCE_COOLDOWN_SECONDS = _float_env("FACE_ATTENDANCE_COOLDOWN_SECONDS", 300.0)
MONITOR_TICK_SECONDS = _float_env("FACE_MONITOR_TICK_SECONDS", 1.0)
