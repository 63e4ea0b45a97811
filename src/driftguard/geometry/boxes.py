# src/driftguard/geometry/boxes.py
from typing import Any, List, NamedTuple, Optional, Sequence  # type hints
import math  # finite checks on plain floats
import numpy as np  # vector finite checks

NORM_SCALE = 1000.0  # reasoning service box space, both axes, independent of frame size


class NormBox(NamedTuple):
    """Canonical anomaly box: top-left corner plus size, all on the 0..1000 scale."""
    x: float
    y: float
    width: float
    height: float


class PixelRect(NamedTuple):
    x: float
    y: float
    width: float
    height: float

    def as_int(self):
        # (x0, y0, x1, y1) corners for cv2 drawing calls
        return (int(round(self.x)), int(round(self.y)),
                int(round(self.x + self.width)), int(round(self.y + self.height)))


def _four_finite(values: Any) -> Optional[np.ndarray]:
    # Accept any 4-length sequence of real numbers; anything else → None
    if values is None or isinstance(values, (str, bytes)):
        return None
    try:
        arr = np.asarray(list(values), dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if arr.shape != (4,) or not np.isfinite(arr).all():
        return None
    return arr


def box_from_xywh(values: Sequence[float]) -> Optional[NormBox]:
    arr = _four_finite(values)
    if arr is None or arr[2] < 0 or arr[3] < 0:  # negative size is malformed
        return None
    return NormBox(*(float(v) for v in arr))


def box_from_yxyx(values: Sequence[float]) -> Optional[NormBox]:
    # Gemini-style [ymin, xmin, ymax, xmax]
    arr = _four_finite(values)
    if arr is None:
        return None
    ymin, xmin, ymax, xmax = (float(v) for v in arr)
    if xmax < xmin or ymax < ymin:
        return None
    return NormBox(xmin, ymin, xmax - xmin, ymax - ymin)


def box_to_yxyx(box: NormBox) -> List[int]:
    return [int(round(box.y)), int(round(box.x)),
            int(round(box.y + box.height)), int(round(box.x + box.width))]


def coerce_box(box: Any) -> Optional[NormBox]:
    if isinstance(box, NormBox):
        return box if _four_finite(box) is not None else None
    return box_from_xywh(box)  # raw sequences are taken as [x, y, w, h]


def map_box(box: Any, canvas_w: float, canvas_h: float, mirrored: bool = False) -> Optional[PixelRect]:
    """Map a normalized box onto a canvas of ``canvas_w`` x ``canvas_h`` pixels.

    When ``mirrored`` is set the horizontal position is reflected so the
    rectangle stays on the object in a horizontally flipped preview:
    ``x' = canvas_w - (x + w)``. Malformed input yields None, never an error.
    """
    nb = coerce_box(box)
    if nb is None:
        return None
    try:
        cw, ch = float(canvas_w), float(canvas_h)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(cw) and math.isfinite(ch)) or cw <= 0 or ch <= 0:
        return None

    px = nb.x / NORM_SCALE * cw
    py = nb.y / NORM_SCALE * ch
    pw = nb.width / NORM_SCALE * cw
    ph = nb.height / NORM_SCALE * ch
    if mirrored:
        px = cw - (px + pw)
    return PixelRect(px, py, pw, ph)


def boxes_intersect(a: Any, b: Any) -> bool:
    # Axis-aligned overlap test in whatever shared space both boxes live in
    ba, bb = coerce_box(a), coerce_box(b)
    if ba is None or bb is None:
        return False
    return (ba.x < bb.x + bb.width and ba.x + ba.width > bb.x and
            ba.y < bb.y + bb.height and ba.y + ba.height > bb.y)
