"""Tests for the landmark model adapter."""

from types import SimpleNamespace

import numpy as np
import pytest

from facemesh_attendance import landmark_model
from facemesh_attendance.exceptions import FaceEngineError, ModelUnavailable
from facemesh_attendance.landmark_types import DetectedFace, Keypoint


class FakeFaceMesh:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.closed = False
        self.result = SimpleNamespace(multi_face_landmarks=None)

    def process(self, rgb):
        return self.result

    def close(self):
        self.closed = True


@pytest.fixture
def fake_mediapipe(monkeypatch: pytest.MonkeyPatch):
    created = []

    def factory(**kwargs):
        mesh = FakeFaceMesh(**kwargs)
        created.append(mesh)
        return mesh

    fake = SimpleNamespace(solutions=SimpleNamespace(face_mesh=SimpleNamespace(FaceMesh=factory)))
    monkeypatch.setattr(landmark_model, "mp", fake)
    return created


def test_face_mesh_keypoints_are_scaled_to_pixels(fake_mediapipe) -> None:
    model = landmark_model.FaceMeshModel(max_faces=2, refine_landmarks=True)
    mesh = fake_mediapipe[0]
    mesh.result = SimpleNamespace(
        multi_face_landmarks=[
            SimpleNamespace(landmark=[SimpleNamespace(x=0.5, y=0.25, z=-0.1)]),
        ]
    )

    faces = model.estimate_faces(np.zeros((100, 200, 3), dtype=np.uint8))

    assert mesh.kwargs["max_num_faces"] == 2
    assert mesh.kwargs["refine_landmarks"] is True
    assert faces == [DetectedFace(keypoints=[Keypoint(100.0, 25.0, pytest.approx(-20.0))])]
    model.close()
    assert mesh.closed


def test_face_mesh_without_detections_returns_empty(fake_mediapipe) -> None:
    model = landmark_model.FaceMeshModel()

    assert model.estimate_faces(np.zeros((10, 10, 3), dtype=np.uint8)) == []


def test_invalid_frame_is_a_face_engine_error(fake_mediapipe) -> None:
    model = landmark_model.FaceMeshModel()

    with pytest.raises(FaceEngineError):
        model.estimate_faces(np.zeros((10,), dtype=np.uint8))


def test_missing_mediapipe_means_no_model(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(landmark_model, "mp", None)

    with pytest.raises(ModelUnavailable):
        landmark_model.FaceMeshModel()


@pytest.mark.asyncio
async def test_load_landmark_model(fake_mediapipe) -> None:
    model = await landmark_model.load_landmark_model(max_faces=3)

    assert isinstance(model, landmark_model.FaceMeshModel)
    assert fake_mediapipe[0].kwargs["max_num_faces"] == 3


def test_adapter_accepts_several_output_shapes() -> None:
    raw = [
        DetectedFace(keypoints=[Keypoint(1.0, 2.0)]),
        {"keypoints": [{"x": 1, "y": 2}, (3, 4, 5)]},
        SimpleNamespace(keypoints=[SimpleNamespace(x=6.0, y=7.0)]),
        [(8.0, 9.0)],
    ]

    faces = landmark_model.to_detected_faces(raw)

    assert faces[0] is raw[0]
    assert faces[1].keypoints == [Keypoint(1.0, 2.0, 0.0), Keypoint(3.0, 4.0, 5.0)]
    assert faces[2].keypoints == [Keypoint(6.0, 7.0, 0.0)]
    assert faces[3].keypoints == [Keypoint(8.0, 9.0, 0.0)]


def test_adapter_rejects_unknown_keypoint_shape() -> None:
    with pytest.raises(FaceEngineError):
        landmark_model.to_detected_faces([{"keypoints": [(1.0, 2.0, 3.0, 4.0)]}])
