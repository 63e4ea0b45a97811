# src/driftguard/io/session_report.py
import json
import logging
import os
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..config import SAVE_ROOT_FINAL, SAVE_ROOT_TEMP
from ..scoring.scorer import format_duration, score_band
from .audit_log import AuditEntry, AuditLog

logger = logging.getLogger(__name__)


def build_report(audit: AuditLog, duration_s: float, steps: Iterable[Any] = (),
                 session_id: Optional[str] = None) -> Dict[str, Any]:
    steps = list(steps)
    score = audit.compute_score()
    band, _ = score_band(score)
    header = {
        "session_id": session_id or uuid.uuid4().hex[:9].upper(),
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        "duration_s": round(float(duration_s), 3),
        "duration": format_duration(duration_s),
        "entry_count": audit.total,  # includes entries rotated out of the log
        "score": score,
        "band": band,
        "steps_total": len(steps),
        "steps_completed": sum(1 for s in steps if getattr(s, "completed", False)),
    }
    return {"header": header, "entries": audit.to_records()}


def report_to_json(report: Dict[str, Any]) -> str:
    return json.dumps(report, indent=2, ensure_ascii=False)


def report_from_json(text: str) -> Tuple[Dict[str, Any], List[AuditEntry]]:
    data = json.loads(text)
    return data.get("header", {}), [AuditEntry.from_dict(e) for e in data.get("entries", [])]


class SessionWriter:
    """Writes one session's report files into a temporary folder until exported."""

    def __init__(self, root: str = SAVE_ROOT_TEMP):
        stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        self.dir = os.path.join(root, stamp)
        os.makedirs(self.dir, exist_ok=True)
        self._incidents = 0

    def write_report(self, audit: AuditLog, duration_s: float, steps: Iterable[Any] = ()) -> Dict[str, Any]:
        report = build_report(audit, duration_s, steps)
        with open(os.path.join(self.dir, "report.json"), "w", encoding="utf-8") as f:
            f.write(report_to_json(report))
        with open(os.path.join(self.dir, "audit.csv"), "w", encoding="utf-8", newline="") as f:
            f.write(audit.to_csv())
        logger.info("Session report written to %s (score %s)", self.dir, report["header"]["score"])
        return report

    def write_incident(self, entry: AuditEntry, frame_jpeg: Optional[bytes]) -> str:
        # CRITICAL drift snapshot: the frame plus the entry that flagged it
        self._incidents += 1
        inc_dir = os.path.join(self.dir, "incidents")
        os.makedirs(inc_dir, exist_ok=True)
        base = os.path.join(inc_dir, f"incident_{self._incidents:03d}")
        with open(base + ".json", "w", encoding="utf-8") as f:
            json.dump(asdict(entry), f, indent=2, ensure_ascii=False)
        if frame_jpeg:
            with open(base + ".jpg", "wb") as f:
                f.write(frame_jpeg)
        return base + ".json"


def list_temp_sessions(root: str = SAVE_ROOT_TEMP) -> List[str]:
    if not os.path.isdir(root):
        return []
    return [os.path.join(root, d) for d in sorted(os.listdir(root))
            if os.path.isfile(os.path.join(root, d, "report.json"))]


def export_session_dir(tmp_dir: str, final_root: str = SAVE_ROOT_FINAL) -> str:
    os.makedirs(final_root, exist_ok=True)
    basename = os.path.basename(tmp_dir.rstrip("/\\"))
    dest = os.path.join(final_root, basename); base_try = dest; i = 2
    while os.path.exists(dest):
        dest = f"{base_try}_{i}"; i += 1  # avoid collisions by suffixing _2, _3, ...
    os.replace(tmp_dir, dest)
    return dest
