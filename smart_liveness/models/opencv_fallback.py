import logging
import os
from typing import List, Optional

import numpy as np

from .base import Detection, FaceDetector, FrameClassifier, FrameResult, Prediction
from .errors import ClassificationError


logger = logging.getLogger(__name__)


class HaarFaceDetector(FaceDetector):
    def __init__(self):
        try:
            import cv2  # type: ignore

            self._cv2 = cv2
            base = cv2.data.haarcascades
            names = [
                "haarcascade_frontalface_default.xml",
                "haarcascade_frontalface_alt2.xml",
            ]
            self.cascades = []
            for n in names:
                path = base + n
                if os.path.exists(path):
                    self.cascades.append(cv2.CascadeClassifier(path))
            if not self.cascades:
                raise RuntimeError("No Haar cascades found")
        except Exception as e:
            raise RuntimeError("OpenCV is required for HaarFaceDetector") from e

    def detect(self, frame_bgr: np.ndarray) -> List[Detection]:
        cv2 = self._cv2
        gray = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2GRAY)
        gray = cv2.equalizeHist(gray)
        params = dict(scaleFactor=1.05, minNeighbors=3, minSize=(40, 40))
        dets: List[Detection] = []
        H, W = gray.shape[:2]
        for cas in self.cascades:
            faces = cas.detectMultiScale(gray, **params)
            for (x, y, w, h) in faces:
                score = float(min(1.0, (w * h) / (H * W) * 10.0))
                dets.append(Detection((int(x), int(y), int(w), int(h)), score))
        dets.sort(key=lambda d: d.bbox[2] * d.bbox[3], reverse=True)
        return dets


def crop_face(frame_bgr: np.ndarray, det: Detection) -> np.ndarray:
    x, y, w, h = det.bbox
    return frame_bgr[max(0, y): y + h, max(0, x): x + w]


def image_quality(face_bgr: np.ndarray, sharp_ref: float = 200.0) -> float:
    """Blend of normalized sharpness and mid-range brightness, in [0, 1]."""
    if face_bgr.size == 0:
        return 0.0
    gray = _bgr_to_gray(face_bgr)
    sharp_norm = min(_laplacian_var(gray) / sharp_ref, 1.0)
    bright_score = max(0.0, 1.0 - abs((float(gray.mean()) - 128.0) / 128.0))
    return float(np.clip(0.6 * sharp_norm + 0.4 * bright_score, 0.0, 1.0))


class LightLivenessClassifier(FrameClassifier):
    """Texture/sharpness heuristic; needs no model files."""

    def __init__(self, detector: Optional[FaceDetector] = None, live_threshold: float = 0.6, min_face_px: int = 120):
        self.detector = detector if detector is not None else HaarFaceDetector()
        self.live_threshold = float(live_threshold)
        self.min_face_px = int(min_face_px)

    def live_score(self, face: np.ndarray, det: Detection) -> float:
        gray = _bgr_to_gray(face)
        # Sharpness via Laplacian variance
        sharp = float(_laplacian_var(gray))
        # Frequency content ratio to detect printed/photo flatness
        f = np.fft.fft2(gray)
        mag = np.abs(np.fft.fftshift(f))
        h, w = gray.shape
        cy, cx = h // 2, w // 2
        center_energy = mag[max(0, cy - 5):cy + 5, max(0, cx - 5):cx + 5].sum() + 1e-6
        total_energy = mag.sum() + 1e-6
        hf_ratio = 1.0 - float(center_energy / total_energy)

        size_ok = (det.bbox[2] >= self.min_face_px) and (det.bbox[3] >= self.min_face_px)

        score = 0.0
        if sharp > 80:
            score += 0.35
        if hf_ratio > 0.88:
            score += 0.35
        if size_ok:
            score += 0.3
        return min(score, 1.0)

    def classify_frame(self, frame_bgr: np.ndarray) -> FrameResult:
        dets = self.detector.detect(frame_bgr)
        if not dets:
            raise ClassificationError("no face detected")
        det = dets[0]
        face = crop_face(frame_bgr, det)
        if face.size == 0:
            raise ClassificationError("invalid face crop")
        score = self.live_score(face, det)
        if score >= self.live_threshold:
            prediction, confidence = Prediction.LIVE, score
        else:
            prediction, confidence = Prediction.SPOOF, 1.0 - score
        logger.debug("light classifier: score=%.2f prediction=%s", score, prediction.value)
        return FrameResult(prediction, confidence, image_quality(face))


def _bgr_to_gray(img_bgr: np.ndarray) -> np.ndarray:
    return (0.114 * img_bgr[..., 0] + 0.587 * img_bgr[..., 1] + 0.299 * img_bgr[..., 2]).astype(np.float32)


def _laplacian_var(gray: np.ndarray) -> float:
    # Simple 3x3 Laplacian via naive convolution (cv2-free)
    pad = np.pad(gray, 1, mode="edge")
    out = pad[1:-1, 2:] + pad[1:-1, :-2] + pad[2:, 1:-1] + pad[:-2, 1:-1] - 4 * pad[1:-1, 1:-1]
    return float(out.var())
