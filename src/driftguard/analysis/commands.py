# src/driftguard/analysis/commands.py
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from .scheduler import Trigger


class CommandKind(str, Enum):
    REQUEST_ANALYSIS = "request_analysis"
    CONFIRM_STEP = "confirm_step"
    VERDICT_MATCH = "verdict_match"  # issued by the supervisor, never by an input device
    PREVIOUS_STEP = "previous_step"
    SELECT_STEP = "select_step"
    ARM = "arm"
    PAUSE_MONITORING = "pause_monitoring"
    RESUME_MONITORING = "resume_monitoring"
    RESET = "reset"
    ADJUST_CALIBRATION = "adjust_calibration"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    trigger: Trigger = Trigger.MANUAL  # input modality that produced it
    value: Any = None  # step index for SELECT_STEP, adjustment name for ADJUST_CALIBRATION


# Ordered: the first matching phrase wins
_VOICE_RULES: List[Tuple[str, Callable[[re.Match], Command]]] = [
    (r"\bmove (left|right|up|down)\b", lambda m: Command(CommandKind.ADJUST_CALIBRATION, Trigger.VOICE, f"MOVE_{m.group(1).upper()}")),
    (r"\brotate (counter ?clockwise|anti ?clockwise|left)\b", lambda m: Command(CommandKind.ADJUST_CALIBRATION, Trigger.VOICE, "ROTATE_CCW")),
    (r"\brotate( clockwise| right)?\b", lambda m: Command(CommandKind.ADJUST_CALIBRATION, Trigger.VOICE, "ROTATE_CW")),
    (r"\b(bigger|scale up|zoom in|larger)\b", lambda m: Command(CommandKind.ADJUST_CALIBRATION, Trigger.VOICE, "SCALE_UP")),
    (r"\b(smaller|scale down|zoom out)\b", lambda m: Command(CommandKind.ADJUST_CALIBRATION, Trigger.VOICE, "SCALE_DOWN")),
    (r"\breset (overlay|calibration|ghost)\b", lambda m: Command(CommandKind.ADJUST_CALIBRATION, Trigger.VOICE, "RESET")),
    (r"\b(?:go to |jump to )?step (\d+)\b", lambda m: Command(CommandKind.SELECT_STEP, Trigger.VOICE, int(m.group(1)) - 1)),
    (r"\b(stop|pause) monitoring\b|\bfreeze\b", lambda m: Command(CommandKind.PAUSE_MONITORING, Trigger.VOICE)),
    (r"\b(resume|start|continue) monitoring\b|\bunfreeze\b", lambda m: Command(CommandKind.RESUME_MONITORING, Trigger.VOICE)),
    (r"\b(previous|go back|back|repeat)\b", lambda m: Command(CommandKind.PREVIOUS_STEP, Trigger.VOICE)),
    (r"\b(next|done|confirm(ed)?|finished|complete)\b", lambda m: Command(CommandKind.CONFIRM_STEP, Trigger.VOICE)),
    (r"\b(check|verify|scan|analy[sz]e|look)\b", lambda m: Command(CommandKind.REQUEST_ANALYSIS, Trigger.VOICE)),
]


def parse_voice_text(text: str) -> Optional[Command]:
    """Map a voice transcript onto a command by keyword; None when nothing matches."""
    t = " ".join(str(text or "").lower().split())
    if not t:
        return None
    for pattern, build in _VOICE_RULES:
        m = re.search(pattern, t)
        if m:
            return build(m)
    return None


# UI keyboard shortcuts (calibration keys are handled by geometry.calibration)
KEY_COMMANDS = {
    "Space": Command(CommandKind.CONFIRM_STEP),
    "B": Command(CommandKind.PREVIOUS_STEP),
    "V": Command(CommandKind.REQUEST_ANALYSIS),
    "A": Command(CommandKind.ARM),
    "Ctrl+R": Command(CommandKind.RESET),
}

GESTURE_COMMANDS = {
    "Thumbs Up": Command(CommandKind.CONFIRM_STEP, Trigger.GESTURE),
    "Open Palm": Command(CommandKind.REQUEST_ANALYSIS, Trigger.GESTURE),
}
