from typing import Iterable, List, Sequence

import cv2
import numpy as np

from smart_liveness.models.base import CaptureTrigger
from smart_liveness.models.errors import CaptureError


def decode_image(raw: bytes) -> np.ndarray:
    arr = np.frombuffer(raw, np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size else None
    if img is None:
        raise CaptureError("could not decode image")
    return img


def load_images(paths: Iterable[str]) -> List[np.ndarray]:
    images = []
    for p in paths:
        img = cv2.imread(str(p), cv2.IMREAD_COLOR)
        if img is None:
            raise CaptureError(f"could not read image {p}")
        images.append(img)
    return images


class ImageSequenceTrigger(CaptureTrigger):
    """Replays already-captured frames, one per request, in order."""

    def __init__(self, images: Sequence[np.ndarray]):
        self._images = list(images)
        self._pos = 0

    async def open(self) -> None:
        self._pos = 0

    async def capture(self) -> np.ndarray:
        if self._pos >= len(self._images):
            raise CaptureError("no more frames in sequence")
        img = self._images[self._pos]
        self._pos += 1
        return img
