from .camera_manager import CameraConfig, CameraError, CameraManager
from .capture import FaceCaptureError, capture_single_descriptor
from .detector import Detector, DetectorUnavailable, FaceRecognitionDetector

__all__ = [
    "CameraConfig",
    "CameraError",
    "CameraManager",
    "Detector",
    "DetectorUnavailable",
    "FaceCaptureError",
    "FaceRecognitionDetector",
    "capture_single_descriptor",
]
