import asyncio
import logging
import threading
from typing import Optional

import cv2
import numpy as np

from smart_liveness.app.config import CameraConfig
from smart_liveness.models.base import CaptureTrigger
from smart_liveness.models.errors import CaptureError


logger = logging.getLogger(__name__)


class OpenCVCameraTrigger(CaptureTrigger):
    """Webcam capture; the device is held only between open() and close()."""

    def __init__(self, cfg: Optional[CameraConfig] = None):
        self.cfg = cfg or CameraConfig()
        self._cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()

    def _open(self):
        with self._lock:
            if self._cap is not None:
                return
            cap = cv2.VideoCapture(self.cfg.device_index)
            if not cap.isOpened():
                cap.release()
                raise CaptureError(f"cannot open camera {self.cfg.device_index}")
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.cfg.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.cfg.height)
            # Let exposure settle before the first real frame
            for _ in range(max(0, self.cfg.warmup_frames)):
                cap.read()
            self._cap = cap
            logger.info("camera %d opened", self.cfg.device_index)

    def _read(self) -> np.ndarray:
        with self._lock:
            if self._cap is None:
                raise CaptureError("camera is not open")
            ok, frame = self._cap.read()
        if not ok or frame is None:
            raise CaptureError("camera returned no frame")
        return frame

    def _release(self):
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info("camera %d released", self.cfg.device_index)

    async def open(self) -> None:
        await asyncio.to_thread(self._open)

    async def capture(self) -> np.ndarray:
        return await asyncio.to_thread(self._read)

    async def close(self) -> None:
        await asyncio.to_thread(self._release)
