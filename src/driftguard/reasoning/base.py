# src/driftguard/reasoning/base.py
from __future__ import annotations
import json  # response decoding
import re  # fence stripping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..geometry.boxes import NormBox, box_from_xywh, box_from_yxyx


class ReasoningError(RuntimeError):
    """Transport, timeout or parse failure talking to the reasoning service."""


class Status(str, Enum):
    MATCH = "MATCH"
    DRIFT = "DRIFT"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class Verdict:
    status: Status
    severity: Severity
    box: Optional[NormBox]
    message: str
    language: Optional[str] = None  # detected-language metadata, when the service reports it

    @property
    def is_drift(self) -> bool:
        return self.status is Status.DRIFT


@dataclass(frozen=True)
class Reference:
    kind: str  # IMAGE | PDF | TEXT | VIDEO
    content: Union[bytes, str]  # raw bytes for media, plain text for TEXT, a path/URL for VIDEO
    name: str = "reference"
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class HazardZone:
    label: str
    box: NormBox


@dataclass
class AnalysisRequest:
    frame: bytes  # JPEG-encoded still
    reference: Optional[Reference]
    instruction: str
    language: str = "auto"
    hazard_zones: List[HazardZone] = field(default_factory=list)


@dataclass(frozen=True)
class InventoryResult:
    compliant: bool
    missing_items: List[str]
    message: str


class ReasoningBackend:
    """One remote collaborator; each method is a separate request/response call."""

    def name(self) -> str:
        raise NotImplementedError

    def analyze(self, request: AnalysisRequest) -> Verdict:
        raise NotImplementedError

    def digitize_procedure(self, reference: Reference) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def check_inventory(self, frame: bytes, required_items: List[str], language: str = "auto") -> InventoryResult:
        raise NotImplementedError

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------
# Payload adapters: the only place where raw service shapes are accepted
# ---------------------------------------------------------------------
def loads_lenient(text: str) -> Any:
    # Plain JSON first, then with markdown fences removed, then the outermost object
    if not text or not text.strip():
        raise ReasoningError("empty response from reasoning service")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    cleaned = re.sub(r"```(?:json)?\s*", "", text).replace("```", "").strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    m = re.search(r"[\[{].*[\]}]", cleaned, flags=re.DOTALL)
    if m:
        try:
            return json.loads(m.group(0))
        except json.JSONDecodeError:
            pass
    raise ReasoningError(f"malformed JSON from reasoning service: {text[:120]!r}")


def verdict_from_payload(data: Any, box_order: str = "yxyx") -> Verdict:
    if not isinstance(data, dict):
        raise ReasoningError("verdict payload is not an object")
    try:
        status = Status(str(data.get("status", "")).upper())
    except ValueError as exc:
        raise ReasoningError(f"unknown verdict status: {data.get('status')!r}") from exc

    raw_sev = data.get("severity", data.get("drift_severity", "LOW"))
    try:
        severity = Severity(str(raw_sev).upper())
    except ValueError:
        severity = Severity.MEDIUM if status is Status.DRIFT else Severity.LOW
    if status is Status.MATCH:
        severity = Severity.LOW

    raw_box = data.get("anomalyBox", data.get("boundingBox", data.get("box")))
    box = box_from_yxyx(raw_box) if box_order == "yxyx" else box_from_xywh(raw_box)

    message = data.get("message", data.get("correction_voice", ""))
    lang = data.get("language") or data.get("detected_language")
    return Verdict(status=status, severity=severity, box=box,
                   message=str(message or ""), language=str(lang) if lang else None)


def inventory_from_payload(data: Any) -> InventoryResult:
    if not isinstance(data, dict):
        raise ReasoningError("inventory payload is not an object")
    missing = [str(x) for x in (data.get("missing_items") or data.get("missing") or [])]
    compliant = bool(data.get("compliant", not missing))
    return InventoryResult(compliant=compliant, missing_items=missing, message=str(data.get("message", "")))


def hazard_zones_from_payload(items: Any) -> List[HazardZone]:
    # [{"label": ..., "boundingBox": [ymin, xmin, ymax, xmax]}]; malformed zones are left out
    zones = []
    for item in items if isinstance(items, (list, tuple)) else []:
        if not isinstance(item, dict):
            continue
        box = box_from_yxyx(item.get("boundingBox", item.get("box")))
        if box is None:
            continue
        zones.append(HazardZone(label=str(item.get("label") or "Hazard"), box=box))
    return zones
