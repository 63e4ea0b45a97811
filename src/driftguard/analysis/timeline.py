# src/driftguard/analysis/timeline.py
from __future__ import annotations
import logging
import math
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..player.base import VideoPlayer
from .commands import Command, CommandKind
from .ticker import Ticker, TickerFactory

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    IDLE = "IDLE"
    READY = "READY"
    PLAYING = "PLAYING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    COMPLETE = "COMPLETE"


ACTIVE_MODES = (Mode.PLAYING, Mode.AWAITING_CONFIRMATION)


@dataclass
class ProcedureStep:
    id: int
    text: str
    completed: bool = False
    target_timestamp: Optional[float] = None
    tools: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], step_id: int = 0) -> "ProcedureStep":
        ts = d.get("target_timestamp", d.get("timestamp"))
        try:
            ts = float(ts) if ts is not None else None
        except (TypeError, ValueError):
            ts = None
        if ts is not None and (not math.isfinite(ts) or ts < 0):
            ts = None  # unusable timestamps make the step manual-only
        tools = d.get("tools") or []
        return cls(
            id=step_id,  # positions are assigned by normalize_steps
            text=str(d.get("text") or d.get("instruction") or "").strip(),
            completed=bool(d.get("completed", False)),
            target_timestamp=ts,
            tools=[str(t) for t in tools] if isinstance(tools, (list, tuple)) else [str(tools)],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "completed": self.completed,
                "target_timestamp": self.target_timestamp, "tools": list(self.tools)}


def _parse_step(item: Any) -> Optional[ProcedureStep]:
    if isinstance(item, ProcedureStep):
        return replace(item, tools=list(item.tools))
    if isinstance(item, str):
        return ProcedureStep(0, item.strip()) if item.strip() else None  # bare instruction text
    if isinstance(item, Mapping):
        return ProcedureStep.from_dict(item)
    return None


def normalize_steps(steps: Iterable[Any]) -> List[ProcedureStep]:
    parsed = []
    for item in steps:
        step = _parse_step(item)
        if step is None:
            logger.warning("Skipping unusable step entry: %r", item)
            continue
        parsed.append(step)
    # stable sort by timestamp; a missing timestamp sorts as 0
    parsed.sort(key=lambda s: s.target_timestamp if s.target_timestamp is not None else 0.0)
    for i, s in enumerate(parsed, start=1):
        s.id = i
    return parsed


@dataclass(frozen=True)
class SessionState:
    mode: Mode
    current_step_index: int
    start_time: Optional[float]
    video_backed: bool
    frozen: bool


@dataclass(frozen=True)
class TimelineEvent:
    kind: str  # state_changed | step_reached | verify_requested | step_completed | completed | notice | reset
    step_index: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class ProcedureTimeline:
    """
    Walks an ordered procedure against a reference video.

    Logic sequence:
      IDLE → load → READY → arm → PLAYING ⇄ AWAITING_CONFIRMATION → COMPLETE → reset → IDLE

    Notes:
    - While PLAYING a video-backed procedure, ``poll`` (driven by a recurring
      ticker) pauses playback once the position is within ``lead_s`` of the
      current step's timestamp. Steps without a timestamp never auto-pause.
    - While AWAITING_CONFIRMATION, every poll re-emits ``verify_requested``
      (with ``retry=True``) so a verification dropped by rate limiting or a
      failed call is attempted again.
    - Confirmation marks the step completed and advances; confirming the last
      step completes the procedure. Completion is monotonic: going back never
      clears ``completed``.
    - ``frozen`` (monitoring paused) blocks verdict-driven advancement only;
      manual confirmation, including the final one, is always accepted.
    - Every index access is guarded; invalid requests return False and emit a
      ``notice`` event instead of raising.
    """

    def __init__(
        self,
        player: Optional[VideoPlayer] = None,
        ticker_factory: Optional[TickerFactory] = None,
        poll_interval_ms: int = 500,
        lead_s: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        auto_verify: bool = True,
        listener: Optional[Callable[[TimelineEvent], None]] = None,
    ) -> None:
        self.player = player
        self.poll_interval_ms = int(poll_interval_ms)
        self.lead_s = float(lead_s)
        self.clock = clock
        self.auto_verify = auto_verify
        self.listener = listener
        self._ticker: Optional[Ticker] = ticker_factory(self.poll) if ticker_factory else None
        self.steps: List[ProcedureStep] = []
        self.mode = Mode.IDLE
        self.current_step_index = 0
        self.start_time: Optional[float] = None
        self.video_backed = False
        self.frozen = False

    # ---------- read side ----------
    @property
    def state(self) -> SessionState:
        return SessionState(self.mode, self.current_step_index, self.start_time, self.video_backed, self.frozen)

    @property
    def current_step(self) -> Optional[ProcedureStep]:
        if 0 <= self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    def elapsed(self) -> float:
        return 0.0 if self.start_time is None else max(0.0, self.clock() - self.start_time)

    def steps_snapshot(self) -> List[ProcedureStep]:
        return [replace(s, tools=list(s.tools)) for s in self.steps]

    # ---------- plumbing ----------
    def _emit(self, kind: str, step_index: Optional[int] = None, **payload: Any) -> None:
        if self.listener:
            self.listener(TimelineEvent(kind, step_index, payload))

    def _notice(self, message: str) -> bool:
        logger.info("Timeline: %s", message)
        self._emit("notice", self.current_step_index if self.steps else None, message=message)
        return False

    def _set_mode(self, mode: Mode) -> None:
        if mode is self.mode:
            return
        before, self.mode = self.mode, mode
        if mode in ACTIVE_MODES and self.video_backed:
            if self._ticker is not None and not self._ticker.active:
                self._ticker.start(self.poll_interval_ms)
        elif self._ticker is not None:
            self._ticker.stop()  # no polling outside PLAYING/AWAITING_CONFIRMATION
        logger.debug("Timeline %s -> %s", before.value, mode.value)
        self._emit("state_changed", self.current_step_index, before=before.value, after=mode.value)

    def _player_call(self, name: str, *args: Any) -> None:
        if self.video_backed and self.player is not None:
            getattr(self.player, name)(*args)

    # ---------- single mutation entry point ----------
    def dispatch(self, command: Command) -> bool:
        kind = command.kind
        if kind is CommandKind.CONFIRM_STEP:
            return self.confirm(source=command.trigger.value)
        if kind is CommandKind.VERDICT_MATCH:
            return self.confirm(source="verdict")
        if kind is CommandKind.PREVIOUS_STEP:
            return self.previous_step()
        if kind is CommandKind.SELECT_STEP:
            return self.select_step(command.value)
        if kind is CommandKind.ARM:
            return self.arm()
        if kind is CommandKind.PAUSE_MONITORING:
            return self.set_frozen(True)
        if kind is CommandKind.RESUME_MONITORING:
            return self.set_frozen(False)
        if kind is CommandKind.RESET:
            self.reset()
            return True
        return False  # not a timeline command

    # ---------- transitions ----------
    def load(self, steps: Iterable[Any], video_backed: bool = False) -> bool:
        if self.mode in ACTIVE_MODES or self.mode is Mode.COMPLETE:
            self.reset()
        self.steps = normalize_steps(steps)
        self.video_backed = bool(video_backed)
        self.current_step_index = 0
        self.start_time = None
        self._set_mode(Mode.READY)
        return True

    def arm(self) -> bool:
        if self.mode is not Mode.READY:
            return self._notice("Load a reference before arming" if self.mode is Mode.IDLE
                                else f"Cannot arm while {self.mode.value}")
        if self.video_backed and not self.steps:
            return self._notice("Reference video has no steps to follow")
        self.start_time = self.clock()
        self._set_mode(Mode.PLAYING)
        self._player_call("play")
        return True

    def poll(self) -> None:
        if not self.video_backed or self.player is None:
            return
        if self.mode is Mode.AWAITING_CONFIRMATION:
            # keep asking while paused; the listener drops repeats once a verdict is in
            step = self.current_step
            if step is not None and self.auto_verify and not self.frozen:
                self._emit("verify_requested", self.current_step_index, text=step.text, retry=True)
            return
        if self.mode is not Mode.PLAYING:
            return
        step = self.current_step
        if step is None or step.target_timestamp is None:
            return
        position = self.player.get_current_time()
        if position + self.lead_s >= step.target_timestamp:
            self.player.pause()
            self._set_mode(Mode.AWAITING_CONFIRMATION)
            self._emit("step_reached", self.current_step_index, position=position, text=step.text)
            if self.auto_verify and not self.frozen:
                self._emit("verify_requested", self.current_step_index, text=step.text)

    def confirm(self, source: str = "manual") -> bool:
        if self.mode not in ACTIVE_MODES:
            return self._notice("No step is waiting for confirmation")
        if source == "verdict":
            if self.frozen or self.mode is not Mode.AWAITING_CONFIRMATION:
                return False  # a match only confirms a step the video is paused on
        step = self.current_step
        if step is None:
            return self._notice("Procedure has no steps to confirm")
        step.completed = True
        self._emit("step_completed", self.current_step_index, source=source, text=step.text)
        if self.current_step_index >= len(self.steps) - 1:
            self._complete()
            return True
        self.current_step_index += 1
        self._set_mode(Mode.PLAYING)
        self._player_call("play")
        return True

    def previous_step(self) -> bool:
        if self.mode not in ACTIVE_MODES:
            return self._notice("Previous step is only available during a procedure")
        if not self.steps:
            return False
        self.current_step_index = max(0, self.current_step_index - 1)
        self._rewind_to_current()
        return True

    def select_step(self, index: Any) -> bool:
        if self.mode not in (Mode.READY,) + ACTIVE_MODES:
            return self._notice("Load a procedure before selecting steps")
        try:
            idx = int(index)
        except (TypeError, ValueError):
            return self._notice(f"Invalid step: {index!r}")
        if not 0 <= idx < len(self.steps):
            return self._notice(f"Step {idx + 1} does not exist")
        self.current_step_index = idx
        if self.mode in ACTIVE_MODES:
            self._rewind_to_current()
        else:
            self._emit("state_changed", idx, before=self.mode.value, after=self.mode.value)
        return True

    def _rewind_to_current(self) -> None:
        step = self.current_step
        if step is not None and step.target_timestamp is not None:
            self._player_call("seek", step.target_timestamp)
        if self.mode is Mode.AWAITING_CONFIRMATION:
            self._set_mode(Mode.PLAYING)
            self._player_call("play")
        else:
            self._emit("state_changed", self.current_step_index, before=self.mode.value, after=self.mode.value)

    def set_frozen(self, frozen: bool) -> bool:
        self.frozen = bool(frozen)
        self._emit("state_changed", self.current_step_index, before=self.mode.value,
                   after=self.mode.value, frozen=self.frozen)
        return True

    def _complete(self) -> None:
        self._player_call("pause")
        self._set_mode(Mode.COMPLETE)
        done = sum(1 for s in self.steps if s.completed)
        self._emit("completed", self.current_step_index, duration_s=self.elapsed(),
                   steps_total=len(self.steps), steps_completed=done)

    def reset(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
        if self.mode in ACTIVE_MODES:
            self._player_call("pause")
        self.steps = []
        self.current_step_index = 0
        self.start_time = None
        self.frozen = False
        self.video_backed = False
        before, self.mode = self.mode, Mode.IDLE
        self._emit("reset", None, before=before.value)
