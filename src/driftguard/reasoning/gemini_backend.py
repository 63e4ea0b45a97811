# src/driftguard/reasoning/gemini_backend.py
import logging
import os
import time
from typing import Any, Dict, List

import google.generativeai as genai  # Gemini SDK

from .base import (
    AnalysisRequest, InventoryResult, ReasoningBackend, ReasoningError, Reference, Verdict,
    inventory_from_payload, loads_lenient, verdict_from_payload,
)
from ..geometry.boxes import box_to_yxyx

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are an industrial compliance supervisor.

TASK: Compare the REFERENCE MATERIAL against REALITY (the live camera frame).
1. Read the reference (image, PDF, text) to learn the expected state.
2. Inspect the live frame.
3. Identify discrepancies: wrong wire colour, missing part, wrong tool → DRIFT. Everything correct → MATCH.
4. On DRIFT give boundingBox [ymin, xmin, ymax, xmax] on a 0-1000 scale around the problem in the LIVE frame.
5. Give a concise HUD-style message, e.g. "ERR: Red wire on Port B. Expected Blue."
Severity: LOW, MEDIUM or CRITICAL (CRITICAL for anything unsafe).
Reply as JSON: {"status", "severity", "message", "boundingBox"}."""

DIGITIZE_PROMPT = """Watch this procedure and split it into short steps (at most 10 words each).
Reply as a JSON array of {"text", "timestamp" (seconds into the video), "tools" (list of tool names)}."""

INVENTORY_PROMPT = """Check the frame for these required items: {items}.
Reply as JSON: {{"compliant": bool, "missing_items": [names], "message": short status}}."""

_FILE_POLL_S = 2.0


class GeminiBackend(ReasoningBackend):
    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", timeout_s: float = 30.0):
        if not api_key:
            raise ValueError("Gemini API key is required (use SimulatedBackend without one)")
        genai.configure(api_key=api_key)
        self.model_name = model
        self.timeout_s = timeout_s
        self._model = genai.GenerativeModel(model)

    def name(self) -> str:
        return f"Gemini-{self.model_name}"

    def _generate(self, parts: List[Any]) -> Any:
        try:
            response = self._model.generate_content(
                parts,
                generation_config={"response_mime_type": "application/json"},
                request_options={"timeout": self.timeout_s},
            )
            text = response.text
        except ReasoningError:
            raise
        except Exception as exc:  # SDK raises a zoo of transport/safety errors
            raise ReasoningError(f"Gemini call failed: {exc}") from exc
        return loads_lenient(text)

    def _language_line(self, language: str) -> str:
        if not language or language == "auto":
            return "Answer in the operator's language if it is evident; report it as \"language\"."
        return f"Write the message in language code '{language}'."

    def analyze(self, request: AnalysisRequest) -> Verdict:
        parts: List[Any] = [ANALYSIS_PROMPT, self._language_line(request.language),
                            f"INSTRUCTION: {request.instruction}",
                            {"mime_type": "image/jpeg", "data": request.frame}]
        ref = request.reference
        if ref is not None:
            if ref.kind == "TEXT":
                parts.append(f"REFERENCE MANUAL: {ref.content}")
            elif isinstance(ref.content, (bytes, bytearray)):
                parts.append({"mime_type": ref.mime_type or "image/jpeg", "data": bytes(ref.content)})
                parts.append("REFERENCE SCHEMATIC/DOCUMENT (above)")
        if request.hazard_zones:
            zones = "; ".join(f"{z.label} at {box_to_yxyx(z.box)}" for z in request.hazard_zones)
            parts.append(f"KNOWN HAZARD ZONES [ymin, xmin, ymax, xmax]: {zones}")
        data = self._generate(parts)
        return verdict_from_payload(data, box_order="yxyx")

    def digitize_procedure(self, reference: Reference) -> List[Dict[str, Any]]:
        if reference.kind == "VIDEO":
            media = self._upload_video(str(reference.content))
        elif reference.kind == "TEXT":
            media = f"PROCEDURE TEXT: {reference.content}"
        else:
            media = {"mime_type": reference.mime_type or "application/pdf", "data": bytes(reference.content)}
        data = self._generate([DIGITIZE_PROMPT, media])
        if isinstance(data, dict):
            data = data.get("steps", [])
        if not isinstance(data, list):
            raise ReasoningError("procedure payload is not a list of steps")
        return [d for d in data if isinstance(d, dict)]

    def _upload_video(self, path: str) -> Any:
        if not os.path.isfile(path):
            raise ReasoningError(f"video not found: {path}")
        try:
            f = genai.upload_file(path=path)
            deadline = time.monotonic() + 10 * self.timeout_s
            while f.state.name == "PROCESSING":
                if time.monotonic() > deadline:
                    raise ReasoningError("video processing timed out")
                time.sleep(_FILE_POLL_S)
                f = genai.get_file(f.name)
        except ReasoningError:
            raise
        except Exception as exc:
            raise ReasoningError(f"video upload failed: {exc}") from exc
        if f.state.name != "ACTIVE":
            raise ReasoningError(f"video upload ended in state {f.state.name}")
        logger.info("Uploaded %s as %s", path, f.name)
        return f

    def check_inventory(self, frame: bytes, required_items: List[str], language: str = "auto") -> InventoryResult:
        prompt = INVENTORY_PROMPT.format(items=", ".join(required_items) or "standard PPE (helmet, gloves, glasses)")
        data = self._generate([prompt, self._language_line(language), {"mime_type": "image/jpeg", "data": frame}])
        return inventory_from_payload(data)
