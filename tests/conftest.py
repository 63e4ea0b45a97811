"""
Shared fakes for headless tests: no camera, no Qt, no network.
"""

from typing import Any, Callable, List, Optional, Tuple

import pytest

from driftguard.analysis.ticker import ManualTicker
from driftguard.player.base import VideoPlayer
from driftguard.reasoning.base import (
    AnalysisRequest, InventoryResult, ReasoningBackend, Reference, Severity, Status, Verdict,
)
from driftguard.geometry.boxes import NormBox


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakePlayer(VideoPlayer):
    def __init__(self):
        self.position = 0.0
        self.playing = False
        self.calls: List[Tuple[str, Any]] = []

    def seek(self, seconds: float) -> None:
        self.position = float(seconds)
        self.calls.append(("seek", seconds))

    def play(self) -> None:
        self.playing = True
        self.calls.append(("play", None))

    def pause(self) -> None:
        self.playing = False
        self.calls.append(("pause", None))

    def get_current_time(self) -> float:
        return self.position

    @property
    def is_playing(self) -> bool:
        return self.playing

    def advance(self, seconds: float) -> None:
        if self.playing:
            self.position += seconds


class ManualRunner:
    """Holds jobs until the test resolves them, like a call still on the wire."""

    def __init__(self):
        self.pending: List[Tuple[Callable[[], Any], Callable]] = []

    def run(self, job, done) -> None:
        self.pending.append((job, done))

    def complete(self, index: int = 0) -> None:
        job, done = self.pending.pop(index)
        try:
            result = job()
        except Exception as exc:
            done(None, exc)
            return
        done(result, None)


class FakeBackend(ReasoningBackend):
    def __init__(self, verdicts: Optional[List[Any]] = None):
        self.verdicts = list(verdicts or [])  # Verdict instances or exceptions, consumed in order
        self.requests: List[AnalysisRequest] = []
        self.digitized: List[dict] = []
        self.inventory = InventoryResult(True, [], "ok")

    def name(self) -> str:
        return "Fake"

    def analyze(self, request: AnalysisRequest) -> Verdict:
        self.requests.append(request)
        item = self.verdicts.pop(0) if self.verdicts else match()
        if isinstance(item, BaseException):
            raise item
        return item

    def digitize_procedure(self, reference: Reference):
        return list(self.digitized)

    def check_inventory(self, frame, required_items, language="auto"):
        return self.inventory


class FakeFrameSource:
    def __init__(self, frame: Optional[bytes] = b"\xff\xd8jpeg"):
        self.frame = frame

    def get_frame(self) -> Optional[bytes]:
        return self.frame


class TickerRecorder:
    # ticker factory that keeps every ManualTicker it builds, in creation order
    def __init__(self):
        self.tickers: List[ManualTicker] = []

    def __call__(self, callback) -> ManualTicker:
        t = ManualTicker(callback)
        self.tickers.append(t)
        return t


def drift(severity: Severity = Severity.MEDIUM, message: str = "wrong tool", box=None) -> Verdict:
    return Verdict(Status.DRIFT, severity, box if box is not None else NormBox(100, 100, 200, 200), message)


def match(message: str = "ok") -> Verdict:
    return Verdict(Status.MATCH, Severity.LOW, None, message)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def player():
    return FakePlayer()


@pytest.fixture
def runner():
    return ManualRunner()


@pytest.fixture
def tickers():
    return TickerRecorder()


VIDEO_STEPS = [
    {"text": "Open panel", "timestamp": 10.0},
    {"text": "Swap fuse", "timestamp": 20.0},
    {"text": "Close panel", "timestamp": 30.0},
]
