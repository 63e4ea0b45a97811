# src/driftguard/ui/overlays.py
from typing import Iterable, Optional, Tuple  # type hints
import cv2  # drawing
import numpy as np

from ..geometry.boxes import PixelRect, map_box
from ..geometry.calibration import Calibration
from ..config import SCORE_GREEN_ABOVE
from ..reasoning.base import HazardZone

# BGR colors per severity
SEVERITY_COLORS = {
    "LOW": (80, 200, 80),
    "MEDIUM": (0, 200, 255),
    "CRITICAL": (40, 40, 255),
}
HAZARD_COLOR = (0, 140, 255)
FONT = cv2.FONT_HERSHEY_SIMPLEX


def draw_drift_box(frame, rect: Optional[PixelRect], severity: str = "MEDIUM", label: str = "DRIFT"):
    if rect is None:
        return
    x0, y0, x1, y1 = rect.as_int()
    color = SEVERITY_COLORS.get(severity, SEVERITY_COLORS["MEDIUM"])
    cv2.rectangle(frame, (x0, y0), (x1, y1), color, 3, cv2.LINE_AA)
    # corner tag above the box (inside the frame when the box touches the top)
    ty = y0 - 8 if y0 > 24 else y0 + 22
    cv2.putText(frame, f"{label} [{severity}]", (x0 + 4, ty), FONT, 0.6, color, 2, cv2.LINE_AA)


def draw_hazard_zones(frame, zones: Iterable[HazardZone], mirrored: bool = False):
    h, w = frame.shape[:2]
    overlay = frame.copy()
    drawn = False
    for z in zones:
        r = map_box(z.box, w, h, mirrored=mirrored)
        if r is None:
            continue
        x0, y0, x1, y1 = r.as_int()
        cv2.rectangle(overlay, (x0, y0), (x1, y1), HAZARD_COLOR, -1)
        cv2.putText(frame, z.label, (x0 + 4, y0 + 18), FONT, 0.5, HAZARD_COLOR, 1, cv2.LINE_AA)
        drawn = True
    if drawn:
        cv2.addWeighted(overlay, 0.2, frame, 0.8, 0, frame)


def draw_caption_bar(frame, text: str, severity: Optional[str] = None, pad: int = 8):
    """Semi-transparent bar along the bottom edge carrying the latest correction."""
    if not text:
        return
    h, w = frame.shape[:2]
    overlay = frame.copy()
    scale, thickness = 0.6, 2
    text = text if len(text) <= 110 else text[:107] + "..."
    (tw, th), _ = cv2.getTextSize(text, FONT, scale, thickness)
    bar_h = th + pad * 2
    y0 = h - bar_h
    bg = (0, 0, 0) if severity != "CRITICAL" else (0, 0, 120)
    cv2.rectangle(overlay, (0, y0), (w, h), bg, -1)
    cv2.addWeighted(overlay, 0.45, frame, 0.55, 0, frame)
    x = max(10, (w - tw) // 2)
    cv2.putText(frame, text, (x, y0 + pad + th), FONT, scale, (255, 255, 255), thickness, cv2.LINE_AA)


def draw_step_banner(frame, step_text: str, index: int, total: int, mode: str, frozen: bool = False):
    if total <= 0 and not step_text:
        return
    status = "PAUSED" if frozen else mode.replace("_", " ")
    line = f"Step {index + 1}/{total}: {step_text}" if total else step_text
    cv2.putText(frame, line, (12, 28), FONT, 0.7, (255, 255, 255), 2, cv2.LINE_AA)
    cv2.putText(frame, status, (12, 54), FONT, 0.55, (200, 220, 255), 1, cv2.LINE_AA)


def blend_reference(frame, reference_bgr: Optional[np.ndarray], cal: Calibration, alpha: float = 0.3):
    # Ghost the reference image over the live frame, placed by the calibration
    if reference_bgr is None or alpha <= 0:
        return
    h, w = frame.shape[:2]
    ref = cv2.resize(reference_bgr, (w, h))
    m = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), -cal.rotation_deg, cal.scale)
    m[0, 2] += cal.offset_x
    m[1, 2] += cal.offset_y
    warped = cv2.warpAffine(ref, m, (w, h), borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0))
    cv2.addWeighted(warped, alpha, frame, 1 - alpha, 0, frame)


def score_color(score: int) -> Tuple[int, int, int]:
    return (80, 200, 80) if score > SCORE_GREEN_ABOVE else (40, 40, 255)


def cvimg_to_qt(QtGui, frame_bgr):
    rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
    h, w = rgb.shape[:2]
    return QtGui.QImage(rgb.data, w, h, rgb.strides[0], QtGui.QImage.Format.Format_RGB888).copy()
