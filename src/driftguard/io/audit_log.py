# src/driftguard/io/audit_log.py
from __future__ import annotations
import csv
import io
import json
import time
import uuid
from collections import Counter, deque
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..reasoning.base import Verdict
from ..scoring.scorer import compliance_score


@dataclass(frozen=True)
class AuditEntry:
    id: str
    timestamp: str  # wall-clock capture time, display formatted
    severity: str
    message: str

    @classmethod
    def from_verdict(cls, verdict: Verdict, when: Optional[datetime] = None) -> "AuditEntry":
        return cls(id=new_entry_id(), timestamp=(when or datetime.now()).strftime("%H:%M:%S"),
                   severity=verdict.severity.value, message=verdict.message)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "AuditEntry":
        return cls(**{f.name: str(d[f.name]) for f in fields(cls)})


ENTRY_FIELDS = [f.name for f in fields(AuditEntry)]  # id, timestamp, severity, message


def new_entry_id() -> str:
    # time-based prefix keeps ids sortable; random suffix keeps them unique
    return f"{int(time.time() * 1000):x}-{uuid.uuid4().hex[:8]}"


class AuditLog:
    """Append-only drift log, bounded to the newest ``capacity`` entries.

    Only display and export are bounded; the score and the counts cover every
    entry appended since the last ``clear``.
    """

    def __init__(self, capacity: int = 500, penalties: Optional[Mapping[str, int]] = None):
        self.capacity = int(capacity)
        self.penalties = penalties
        self._entries: deque = deque(maxlen=self.capacity)  # left = newest
        self._counts: Counter = Counter()  # session-long, per severity

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: AuditEntry) -> AuditEntry:
        self._entries.appendleft(entry)
        self._counts[entry.severity] += 1
        return entry

    def append_verdict(self, verdict: Verdict) -> Optional[AuditEntry]:
        if not verdict.is_drift:
            return None  # matches are not audit events
        return self.append(AuditEntry.from_verdict(verdict))

    def entries(self) -> List[AuditEntry]:
        return list(self._entries)  # newest first, for display

    def chronological(self) -> List[AuditEntry]:
        return list(reversed(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        self._counts.clear()

    def count(self, severity: str) -> int:
        return self._counts[severity]

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def compute_score(self) -> int:
        return compliance_score(self._counts.elements(), self.penalties)

    # ---------- export ----------
    def to_records(self) -> List[Dict[str, str]]:
        return [asdict(e) for e in self.chronological()]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_records(), indent=indent, ensure_ascii=False)

    def to_csv(self) -> str:
        buf = io.StringIO()
        w = csv.DictWriter(buf, fieldnames=ENTRY_FIELDS, lineterminator="\n")
        w.writeheader()
        for rec in self.to_records():
            w.writerow(rec)
        return buf.getvalue()

    @classmethod
    def from_records(cls, records: List[Mapping[str, Any]], capacity: int = 500,
                     penalties: Optional[Mapping[str, int]] = None) -> "AuditLog":
        log = cls(capacity=capacity, penalties=penalties)
        for rec in records:  # records are chronological
            log.append(AuditEntry.from_dict(rec))
        return log

    @classmethod
    def from_json(cls, text: str, **kw: Any) -> "AuditLog":
        data = json.loads(text)
        if isinstance(data, dict):
            data = data.get("entries", [])
        return cls.from_records(data, **kw)

    @classmethod
    def from_csv(cls, text: str, **kw: Any) -> "AuditLog":
        return cls.from_records(list(csv.DictReader(io.StringIO(text))), **kw)
