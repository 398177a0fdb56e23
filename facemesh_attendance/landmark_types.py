from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class Keypoint:
    x: float
    y: float
    z: float = 0.0


@dataclass
class DetectedFace:
    keypoints: List[Keypoint] = field(default_factory=list)
