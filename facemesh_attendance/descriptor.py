"""Face descriptor codec.

A descriptor is the flattened ``x, y, z`` coordinates of every keypoint of one
face, divided by the Euclidean norm of that vector so that distance to the
camera does not dominate comparisons. Descriptors travel to the record store as
base64 text of their little-endian float32 buffer.
"""

import base64
import binascii
from typing import Sequence

import numpy as np

from .exceptions import DegenerateVector, DescriptorError, EmptyLandmarkSet
from .landmark_types import Keypoint

DESCRIPTOR_DTYPE = np.dtype("<f4")


def encode_landmarks(keypoints: Sequence[Keypoint]) -> np.ndarray:
    if not keypoints:
        raise EmptyLandmarkSet("Cannot build a descriptor from an empty landmark set.")

    coords = np.array(
        [(kp.x, kp.y, kp.z if kp.z is not None else 0.0) for kp in keypoints],
        dtype=np.float64,
    ).reshape(-1)

    norm = float(np.linalg.norm(coords))
    if norm == 0.0 or not np.isfinite(norm):
        raise DegenerateVector("Landmark vector has zero or non-finite norm.")

    return (coords / norm).astype(DESCRIPTOR_DTYPE)


def to_transport(descriptor: np.ndarray) -> str:
    vector = np.ascontiguousarray(descriptor, dtype=DESCRIPTOR_DTYPE)
    if vector.ndim != 1 or vector.size == 0:
        raise DescriptorError("Descriptor must be a non-empty 1D vector.")
    return base64.b64encode(vector.tobytes()).decode("ascii")


def from_transport(encoded: str) -> np.ndarray:
    try:
        raw = base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as exc:
        raise DescriptorError(f"Encoded descriptor is not valid base64: {exc}") from exc

    if not raw or len(raw) % DESCRIPTOR_DTYPE.itemsize:
        raise DescriptorError(f"Encoded descriptor has invalid byte length {len(raw)}.")

    # frombuffer views are read-only; copy so callers own the array.
    return np.frombuffer(raw, dtype=DESCRIPTOR_DTYPE).copy()
