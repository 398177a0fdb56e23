from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Tuple

import cv2

from .config import CAMERA_BACKEND_ORDER, CAMERA_INDEX, FACING_MODE, FRAME_HEIGHT, FRAME_WIDTH
from .exceptions import DeviceUnavailable


@dataclass(frozen=True)
class CameraConstraints:
    """Video-only capture hints. Facing mode is advisory for desktop webcams."""

    camera_index: int = CAMERA_INDEX
    facing_mode: str = FACING_MODE
    ideal_width: int = FRAME_WIDTH
    ideal_height: int = FRAME_HEIGHT


_BACKEND_ALIASES = {
    "auto": "Auto",
    "any": "Auto",
    "v4l2": "V4L2",
    "dshow": "DirectShow",
    "directshow": "DirectShow",
    "msmf": "Media Foundation",
    "mediafoundation": "Media Foundation",
    "media foundation": "Media Foundation",
    "avfoundation": "AVFoundation",
}


def _preferred_backend_order() -> list[str]:
    if not CAMERA_BACKEND_ORDER:
        # DirectShow opens laptop webcams faster than Media Foundation on Windows.
        if os.name == "nt":
            return ["DirectShow", "Media Foundation", "Auto"]
        return ["Auto", "V4L2", "AVFoundation"]

    result: list[str] = []
    for item in CAMERA_BACKEND_ORDER:
        name = _BACKEND_ALIASES.get(item.lower())
        if name and name not in result:
            result.append(name)
    return result or ["Auto"]


def capture_backends() -> List[Tuple[str, int | None]]:
    backend_map: dict[str, int | None] = {
        "Auto": getattr(cv2, "CAP_ANY", None),
        "V4L2": getattr(cv2, "CAP_V4L2", None),
        "DirectShow": getattr(cv2, "CAP_DSHOW", None),
        "Media Foundation": getattr(cv2, "CAP_MSMF", None),
        "AVFoundation": getattr(cv2, "CAP_AVFOUNDATION", None),
    }
    preferred = _preferred_backend_order()
    if "Auto" not in preferred:
        preferred.append("Auto")

    candidates: List[Tuple[str, int | None]] = []
    seen: set[int | None] = set()
    for name in preferred:
        backend = backend_map.get(name)
        if backend in seen:
            continue
        seen.add(backend)
        candidates.append((name, backend))
    return candidates


def open_camera_capture(constraints: CameraConstraints) -> tuple[cv2.VideoCapture, str]:
    attempted: List[str] = []

    for backend_name, backend in capture_backends():
        attempted.append(backend_name)
        try:
            if backend is None:
                cap = cv2.VideoCapture(constraints.camera_index)
            else:
                cap = cv2.VideoCapture(constraints.camera_index, backend)
        except cv2.error:
            continue

        if cap.isOpened():
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)
            return cap, backend_name
        cap.release()

    tried = ", ".join(attempted) if attempted else "default backend"
    raise DeviceUnavailable(
        f"Unable to open webcam index {constraints.camera_index}. Tried backends: {tried}."
    )
