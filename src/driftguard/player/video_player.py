# src/driftguard/player/video_player.py
import logging
import time
from typing import Callable, Optional

import cv2
import numpy as np

from .base import VideoPlayer

logger = logging.getLogger(__name__)


class OpenCVVideoPlayer(VideoPlayer):
    """Plays a local reference video on the wall clock; frames are fetched on demand."""

    def __init__(self, path: str, clock: Callable[[], float] = time.monotonic):
        self.path = path
        self._clock = clock
        self._cap = cv2.VideoCapture(path)
        if not self._cap.isOpened():
            raise FileNotFoundError(f"cannot open reference video: {path}")
        fps = float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0)
        frames = float(self._cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0)
        self.fps = fps if fps > 0 else 30.0
        self.duration = frames / self.fps if frames > 0 else float("inf")
        self._base_pos = 0.0  # position when playback last (re)started
        self._started_at: Optional[float] = None  # clock value at play(); None while paused
        self._last_frame: Optional[np.ndarray] = None

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None

    def get_current_time(self) -> float:
        pos = self._base_pos
        if self._started_at is not None:
            pos += self._clock() - self._started_at
        return min(pos, self.duration)

    def seek(self, seconds: float) -> None:
        self._base_pos = max(0.0, min(float(seconds), self.duration))
        if self._started_at is not None:
            self._started_at = self._clock()

    def play(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    def pause(self) -> None:
        if self._started_at is not None:
            self._base_pos = self.get_current_time()
            self._started_at = None

    def read_frame(self) -> Optional[np.ndarray]:
        # Frame at the current position; repeats the last frame while paused
        target = int(self.get_current_time() * self.fps)
        current = int(self._cap.get(cv2.CAP_PROP_POS_FRAMES))
        if self._last_frame is not None and current - 1 == target:
            return self._last_frame
        if current != target:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, target)
        ok, frame = self._cap.read()
        if ok:
            self._last_frame = frame
        return self._last_frame

    def close(self) -> None:
        self._cap.release()
