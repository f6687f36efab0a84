from .base import (
    Prediction,
    FrameResult,
    Verdict,
    Detection,
    FaceDetector,
    CaptureTrigger,
    FrameClassifier,
    SessionReporter,
)
from .errors import (
    LivenessError,
    ConfigError,
    CaptureError,
    ClassificationError,
    SessionCancelledError,
    SessionBusyError,
    InvalidFrameError,
)
from .opencv_fallback import HaarFaceDetector, LightLivenessClassifier
from .antispoof_onnx import OnnxAntiSpoofClassifier

__all__ = [
    "Prediction",
    "FrameResult",
    "Verdict",
    "Detection",
    "FaceDetector",
    "CaptureTrigger",
    "FrameClassifier",
    "SessionReporter",
    "LivenessError",
    "ConfigError",
    "CaptureError",
    "ClassificationError",
    "SessionCancelledError",
    "SessionBusyError",
    "InvalidFrameError",
    "HaarFaceDetector",
    "LightLivenessClassifier",
    "OnnxAntiSpoofClassifier",
]
