"""Tests for the face descriptor codec."""

import numpy as np
import pytest

from conftest import random_face
from facemesh_attendance.descriptor import encode_landmarks, from_transport, to_transport
from facemesh_attendance.exceptions import DegenerateVector, DescriptorError, EmptyLandmarkSet
from facemesh_attendance.landmark_types import Keypoint


def test_encode_flattens_xyz_in_keypoint_order_and_normalizes() -> None:
    descriptor = encode_landmarks([Keypoint(3.0, 0.0, 0.0), Keypoint(0.0, 4.0)])

    assert descriptor.dtype == np.float32
    assert descriptor.shape == (6,)
    np.testing.assert_allclose(descriptor, [0.6, 0.0, 0.0, 0.0, 0.8, 0.0], rtol=1e-6)
    assert np.linalg.norm(descriptor) == pytest.approx(1.0, abs=1e-6)


def test_encode_is_bit_identical_for_identical_input() -> None:
    face = random_face(seed=7)

    first = encode_landmarks(face.keypoints)
    second = encode_landmarks(list(face.keypoints))

    assert first.tobytes() == second.tobytes()


def test_encode_is_scale_invariant() -> None:
    near = [Keypoint(10.0, 20.0, -5.0), Keypoint(30.0, 40.0, 2.0)]
    far = [Keypoint(kp.x * 0.5, kp.y * 0.5, kp.z * 0.5) for kp in near]

    np.testing.assert_allclose(encode_landmarks(near), encode_landmarks(far), rtol=1e-6)


def test_encode_rejects_empty_landmarks() -> None:
    with pytest.raises(EmptyLandmarkSet):
        encode_landmarks([])


def test_encode_rejects_zero_vector() -> None:
    with pytest.raises(DegenerateVector):
        encode_landmarks([Keypoint(0.0, 0.0, 0.0), Keypoint(0.0, 0.0)])


def test_transport_round_trip_is_bit_exact() -> None:
    descriptor = encode_landmarks(random_face(seed=11).keypoints)

    encoded = to_transport(descriptor)
    decoded = from_transport(encoded)

    assert isinstance(encoded, str)
    assert decoded.dtype == descriptor.dtype
    assert decoded.tobytes() == descriptor.tobytes()
    decoded[0] = 0.0  # decoded arrays are writable copies


def test_transport_preserves_negative_zero_and_tiny_values() -> None:
    descriptor = np.array([-0.0, 1e-38, -1.5, 3.25], dtype=np.float32)

    decoded = from_transport(to_transport(descriptor))

    assert decoded.view(np.uint32).tolist() == descriptor.view(np.uint32).tolist()


@pytest.mark.parametrize("encoded", ["not base64!!", "", "AAA="])
def test_from_transport_rejects_malformed_input(encoded: str) -> None:
    with pytest.raises(DescriptorError):
        from_transport(encoded)


def test_to_transport_rejects_empty_descriptor() -> None:
    with pytest.raises(DescriptorError):
        to_transport(np.array([], dtype=np.float32))
