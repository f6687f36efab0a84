import os
from typing import Optional

import numpy as np

try:
    import onnxruntime as ort  # type: ignore
except Exception:  # pragma: no cover
    ort = None  # type: ignore

from .base import FaceDetector, FrameClassifier, FrameResult, Prediction
from .errors import ClassificationError
from .opencv_fallback import HaarFaceDetector, crop_face, image_quality


def live_probability(logits: np.ndarray) -> float:
    # Expect shape [1, 2] for [spoof, live]
    if logits.ndim == 2 and logits.shape[1] >= 2:
        v = logits[0]
        e = np.exp(v - np.max(v))
        probs = e / (np.sum(e) + 1e-8)
        return float(probs[1])
    # If single logit, apply sigmoid
    v = float(logits.ravel()[0])
    return float(1.0 / (1.0 + np.exp(-v)))


class OnnxAntiSpoofClassifier(FrameClassifier):
    def __init__(
        self,
        model_path: str,
        input_size: int = 80,
        live_threshold: float = 0.6,
        threads: Optional[int] = None,
        detector: Optional[FaceDetector] = None,
    ):
        if ort is None:
            raise RuntimeError("onnxruntime is required for OnnxAntiSpoofClassifier")
        if not os.path.exists(model_path):
            raise FileNotFoundError(model_path)
        so = ort.SessionOptions()
        so.intra_op_num_threads = threads or max(1, os.cpu_count() - 1 if os.cpu_count() else 1)
        self.session = ort.InferenceSession(model_path, so, providers=["CPUExecutionProvider"])
        self.input_name = self.session.get_inputs()[0].name
        self.input_size = int(input_size)
        self.live_threshold = float(live_threshold)
        self.detector = detector if detector is not None else HaarFaceDetector()

    def _preprocess(self, crop: np.ndarray) -> np.ndarray:
        import cv2

        rgb = cv2.cvtColor(crop, cv2.COLOR_BGR2RGB)
        rgb = cv2.resize(rgb, (self.input_size, self.input_size), interpolation=cv2.INTER_AREA)
        img = rgb.astype(np.float32) / 255.0
        return np.transpose(img, (2, 0, 1))[None, :, :, :]

    def classify_frame(self, frame_bgr: np.ndarray) -> FrameResult:
        dets = self.detector.detect(frame_bgr)
        if not dets:
            raise ClassificationError("no face detected")
        crop = crop_face(frame_bgr, dets[0])
        if crop.size == 0:
            raise ClassificationError("invalid face crop")
        try:
            out = self.session.run(None, {self.input_name: self._preprocess(crop)})
        except Exception as e:
            raise ClassificationError(f"anti-spoof inference failed: {e}") from e
        p_live = live_probability(np.asarray(out[0]))
        if p_live >= self.live_threshold:
            return FrameResult(Prediction.LIVE, p_live, image_quality(crop))
        return FrameResult(Prediction.SPOOF, 1.0 - p_live, image_quality(crop))
