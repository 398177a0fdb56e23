class AttendanceError(Exception):
    """Base exception for the attendance system."""


class CameraError(AttendanceError):
    """Raised when webcam access fails."""


class DeviceUnavailable(CameraError):
    """Raised when the platform rejects the camera request."""


class DisplaySurfaceMissing(CameraError):
    """Raised when there is no display surface to bind a stream to."""


class FaceEngineError(AttendanceError):
    """Raised when face detection fails."""


class ModelUnavailable(FaceEngineError):
    """Raised when the landmark model is not loaded."""


class NoFaceDetected(FaceEngineError):
    """Raised when no face is found after all detection attempts."""


class MultipleFacesDetected(FaceEngineError):
    """Raised when more than one face is visible."""


class DescriptorError(AttendanceError):
    """Raised when a face descriptor cannot be built, decoded or compared."""


class EmptyLandmarkSet(DescriptorError):
    pass


class DegenerateVector(DescriptorError):
    pass


class DimensionMismatch(DescriptorError):
    pass


class StoreError(AttendanceError):
    """Raised when record store operations fail."""
