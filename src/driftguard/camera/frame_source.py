# src/driftguard/camera/frame_source.py
import logging
from typing import List, Optional, Tuple

import cv2  # capture + JPEG encode
import numpy as np

logger = logging.getLogger(__name__)


def enumerate_cameras(max_index: int = 10) -> List[Tuple[int, str]]:
    # Probe camera indices and keep the ones that deliver a frame
    found: List[Tuple[int, str]] = []
    for idx in range(max_index + 1):
        cap = cv2.VideoCapture(idx)
        try:
            if cap.isOpened():
                ok, _ = cap.read()
                if ok:
                    found.append((idx, f"Camera {idx}"))
        finally:
            cap.release()
    return found


def encode_jpeg(frame_bgr: np.ndarray, quality: int = 85) -> Optional[bytes]:
    ok, buf = cv2.imencode(".jpg", frame_bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    return buf.tobytes() if ok else None


class FrameSource:
    """Live camera device; ``get_frame`` returns a JPEG still or None when not ready."""

    def __init__(self, cam_index: int = 0, frame_size: Tuple[int, int] = (1280, 720), jpeg_quality: int = 85):
        self.cam_index = cam_index
        self.frame_size = frame_size
        self.jpeg_quality = jpeg_quality
        self._cap: Optional[cv2.VideoCapture] = None
        self._last: Optional[np.ndarray] = None  # most recent raw frame (unmirrored)

    def open(self) -> bool:
        self.close()
        cap = cv2.VideoCapture(self.cam_index)
        if not cap.isOpened():
            logger.warning("Camera %s could not be opened", self.cam_index)
            cap.release()
            return False
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.frame_size[0])
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.frame_size[1])
        self._cap = cap
        return True

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def read(self) -> Optional[np.ndarray]:
        # Grab the next raw BGR frame (the model always sees the unmirrored image)
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        self._last = frame
        return frame

    def last_frame(self) -> Optional[np.ndarray]:
        return None if self._last is None else self._last.copy()

    def get_frame(self) -> Optional[bytes]:
        frame = self._last if self._last is not None else self.read()
        if frame is None:
            return None
        return encode_jpeg(frame, self.jpeg_quality)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
        self._cap = None
        self._last = None
