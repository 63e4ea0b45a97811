# src/driftguard/geometry/calibration.py
from dataclasses import dataclass, replace  # immutable calibration values
from typing import Dict, Tuple

MOVE_STEP_PX = 5.0
ROTATE_STEP_DEG = 1.0
SCALE_STEP = 0.01
MIN_SCALE = 0.1
SHIFT_MULTIPLIER = 10  # held shift multiplies every key step

# Voice nudges are coarser than key presses
VOICE_ADJUSTMENTS: Dict[str, Tuple[str, float]] = {
    "MOVE_LEFT": ("dx", -50.0), "MOVE_RIGHT": ("dx", 50.0),
    "MOVE_UP": ("dy", -50.0), "MOVE_DOWN": ("dy", 50.0),
    "ROTATE_CW": ("rotate", 15.0), "ROTATE_CCW": ("rotate", -15.0),
    "SCALE_UP": ("scale", 0.1), "SCALE_DOWN": ("scale", -0.1),
}

KEY_ADJUSTMENTS: Dict[str, Tuple[str, float]] = {
    "Left": ("dx", -MOVE_STEP_PX), "Right": ("dx", MOVE_STEP_PX),
    "Up": ("dy", -MOVE_STEP_PX), "Down": ("dy", MOVE_STEP_PX),
    "[": ("rotate", -ROTATE_STEP_DEG), "]": ("rotate", ROTATE_STEP_DEG),
    "-": ("scale", -SCALE_STEP), "=": ("scale", SCALE_STEP),
}


@dataclass(frozen=True)
class Calibration:
    """Placement of the reference ("ghost") overlay over the live feed."""
    offset_x: float = 0.0
    offset_y: float = 0.0
    rotation_deg: float = 0.0
    scale: float = 1.0

    def adjusted(self, axis: str, amount: float) -> "Calibration":
        if axis == "dx":
            return replace(self, offset_x=self.offset_x + amount)
        if axis == "dy":
            return replace(self, offset_y=self.offset_y + amount)
        if axis == "rotate":
            return replace(self, rotation_deg=self.rotation_deg + amount)
        if axis == "scale":
            return replace(self, scale=max(MIN_SCALE, self.scale + amount))
        if axis == "reset":
            return Calibration()
        raise ValueError(f"unknown calibration axis: {axis}")


def adjust_for_key(cal: Calibration, key: str, shift: bool = False) -> Calibration:
    if key == "0":
        return Calibration()
    if key not in KEY_ADJUSTMENTS:
        return cal
    axis, step = KEY_ADJUSTMENTS[key]
    return cal.adjusted(axis, step * (SHIFT_MULTIPLIER if shift else 1))


def adjust_for_voice(cal: Calibration, command: str) -> Calibration:
    if command == "RESET":
        return Calibration()
    if command not in VOICE_ADJUSTMENTS:
        return cal
    axis, step = VOICE_ADJUSTMENTS[command]
    return cal.adjusted(axis, step)
