# src/driftguard/reasoning/simulated_backend.py
import random
import time
from typing import Any, Dict, List, Optional

from .base import (
    AnalysisRequest, InventoryResult, ReasoningBackend, Reference, Verdict, verdict_from_payload,
)

DRIFT_PAYLOAD = {
    "status": "DRIFT",
    "severity": "MEDIUM",
    "message": "MISMATCH DETECTED: Operator is using a 12mm wrench. Schematic requires 10mm torque wrench for this assembly.",
    "boundingBox": [200, 300, 500, 600],  # [ymin, xmin, ymax, xmax]
}
MATCH_PAYLOAD = {
    "status": "MATCH",
    "severity": "LOW",
    "message": "SYSTEM NOMINAL: Component alignment matches schematic.",
}
DEMO_STEPS: List[Dict[str, Any]] = [
    {"text": "Disconnect main power", "timestamp": 5.0, "tools": ["lockout tag"]},
    {"text": "Remove access panel", "timestamp": 20.0, "tools": ["screwdriver"]},
    {"text": "Swap fuse module", "timestamp": 45.0, "tools": ["fuse puller"]},
    {"text": "Reattach panel and restore power", "timestamp": 70.0, "tools": ["screwdriver"]},
]


class SimulatedBackend(ReasoningBackend):
    """Offline stand-in for the reasoning service: random MATCH/DRIFT verdicts."""

    def __init__(self, drift_probability: float = 0.4, delay_s: float = 0.0, rng: Optional[random.Random] = None):
        self.drift_probability = drift_probability
        self.delay_s = delay_s
        self.rng = rng or random.Random()

    def name(self) -> str:
        return "Simulation"

    def _wait(self) -> None:
        if self.delay_s > 0:
            time.sleep(self.delay_s)

    def analyze(self, request: AnalysisRequest) -> Verdict:
        self._wait()
        payload = DRIFT_PAYLOAD if self.rng.random() < self.drift_probability else MATCH_PAYLOAD
        return verdict_from_payload(payload, box_order="yxyx")

    def digitize_procedure(self, reference: Reference) -> List[Dict[str, Any]]:
        self._wait()
        return [dict(s, tools=list(s["tools"])) for s in DEMO_STEPS]

    def check_inventory(self, frame: bytes, required_items: List[str], language: str = "auto") -> InventoryResult:
        self._wait()
        return InventoryResult(compliant=True, missing_items=[], message="PPE VERIFIED (simulation)")
