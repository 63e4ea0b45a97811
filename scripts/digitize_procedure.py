# scripts/digitize_procedure.py
import argparse
import csv
import json
import mimetypes
import os
import sys

HERE = os.path.dirname(os.path.abspath(__file__))
SRC_DIR = os.path.join(os.path.dirname(HERE), "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from driftguard.config import GEMINI_API_KEY, GEMINI_MODEL, configure_logging
from driftguard.analysis.timeline import normalize_steps
from driftguard.reasoning.base import ReasoningError, Reference
from driftguard.reasoning.simulated_backend import SimulatedBackend

VIDEO_EXT = (".mp4", ".mov", ".avi", ".mkv", ".webm")


def load_reference(path: str) -> Reference:
    ext = os.path.splitext(path)[1].lower()
    mime = mimetypes.guess_type(path)[0]
    name = os.path.basename(path)
    if ext in VIDEO_EXT:
        return Reference("VIDEO", path, name, mime or "video/mp4")  # uploaded by the backend
    if ext in (".txt", ".md"):
        with open(path, "r", encoding="utf-8") as f:
            return Reference("TEXT", f.read(), name, "text/plain")
    with open(path, "rb") as f:
        kind = "PDF" if ext == ".pdf" else "IMAGE"
        return Reference(kind, f.read(), name, mime or ("application/pdf" if kind == "PDF" else "image/jpeg"))


def write_csv(path: str, steps) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        w = csv.writer(f)
        w.writerow(["id", "target_timestamp", "text", "tools"])
        for s in steps:
            w.writerow([s.id, "" if s.target_timestamp is None else f"{s.target_timestamp:.2f}", s.text, ";".join(s.tools)])


def main():
    ap = argparse.ArgumentParser(description="Turn a reference video or document into a procedure steps JSON")
    ap.add_argument("--ref", required=True, help="Path to reference video / PDF / image / text")
    ap.add_argument("--out", required=True, help="Output steps JSON path")
    ap.add_argument("--csv", default=None, help="Optional CSV path")
    ap.add_argument("--model", default=GEMINI_MODEL, help="Gemini model name")
    ap.add_argument("--simulate", action="store_true", help="Use the offline simulation backend")
    args = ap.parse_args()
    configure_logging()

    if not os.path.isfile(args.ref):
        print(f"Reference not found: {args.ref}", file=sys.stderr)
        sys.exit(2)

    if args.simulate or not GEMINI_API_KEY:
        backend = SimulatedBackend()
    else:
        from driftguard.reasoning.gemini_backend import GeminiBackend  # only needed with a key
        backend = GeminiBackend(GEMINI_API_KEY, args.model)
    print(f"[Backend] {backend.name()}")

    ref = load_reference(args.ref)
    try:
        raw = backend.digitize_procedure(ref)
    except ReasoningError as e:
        print(f"Digitization failed: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        backend.close()

    steps = normalize_steps(raw)
    if not steps:
        print("No steps found in reference.", file=sys.stderr)
        sys.exit(3)
    print(f"[Steps] {len(steps)} from {ref.name}")

    with open(args.out, "w", encoding="utf-8") as f:
        json.dump({"source": ref.name, "backend": backend.name(), "steps": [s.to_dict() for s in steps]},
                  f, indent=2, ensure_ascii=False)
    print(f"[OUT] JSON steps -> {args.out}")

    if args.csv:
        write_csv(args.csv, steps)
        print(f"[OUT] CSV -> {args.csv}")

    print("[Done]")

if __name__ == "__main__":
    main()
