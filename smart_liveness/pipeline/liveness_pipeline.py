import logging
from typing import Optional, Sequence

import numpy as np

from smart_liveness.app.config import AppConfig
from smart_liveness.capture.camera import OpenCVCameraTrigger
from smart_liveness.capture.sequence import ImageSequenceTrigger
from smart_liveness.models import (
    CaptureTrigger,
    FrameClassifier,
    LightLivenessClassifier,
    OnnxAntiSpoofClassifier,
    SessionReporter,
    Verdict,
)
from smart_liveness.pipeline.aggregator import DecisionEngine, DecisionThresholds
from smart_liveness.pipeline.controller import CaptureSequenceController


logger = logging.getLogger(__name__)


class LivenessPipeline:
    """Builds controllers wired to the configured classifier backend."""

    def __init__(self, cfg: AppConfig, classifier: Optional[FrameClassifier] = None):
        self.cfg = cfg
        self.engine = DecisionEngine(DecisionThresholds.from_config(cfg.decision))
        self.classifier = classifier if classifier is not None else self._build_classifier()

    def _build_classifier(self) -> FrameClassifier:
        backend = getattr(self.cfg.backend, "classifier_backend", "light").lower()
        if backend in ("onnx", "antispoof", "onnx_antispoof"):
            try:
                return OnnxAntiSpoofClassifier(
                    self.cfg.backend.antispoof_model_path,
                    input_size=self.cfg.backend.antispoof_input_size,
                    live_threshold=self.cfg.backend.live_threshold,
                    threads=self.cfg.backend.threads,
                )
            except (RuntimeError, FileNotFoundError) as e:
                logger.warning("onnx anti-spoof backend unavailable (%s); using light classifier", e)
        return LightLivenessClassifier(live_threshold=self.cfg.backend.live_threshold)

    def controller(self, trigger: CaptureTrigger, reporter: Optional[SessionReporter] = None,
                   **kwargs) -> CaptureSequenceController:
        return CaptureSequenceController(
            trigger,
            self.classifier,
            reporter=reporter,
            engine=self.engine,
            capture=self.cfg.capture,
            **kwargs,
        )

    def camera_controller(self, reporter: Optional[SessionReporter] = None) -> CaptureSequenceController:
        return self.controller(OpenCVCameraTrigger(self.cfg.camera), reporter)

    async def verify_images(self, images: Sequence[np.ndarray],
                            reporter: Optional[SessionReporter] = None) -> Verdict:
        """One session over pre-captured frames; no waits between rounds."""
        ctl = self.controller(ImageSequenceTrigger(images), reporter)
        return await ctl.run(len(images), 0, 0)
