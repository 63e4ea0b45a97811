# src/driftguard/config.py
import os  # environment lookups
import json  # structured env values
import logging  # root logging setup
from dataclasses import dataclass, field  # settings container
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv  # pull a local .env into os.environ before reading values

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_json(name: str, default: Any) -> Any:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logging.getLogger(__name__).warning("Ignoring malformed %s", name)
        return default


WINDOW_TITLE = "DriftGuard – Reality Supervisor"
FRAME_SIZE = (1280, 720)  # requested capture size (w, h)
CAM_INDEX = int(os.getenv("DRIFTGUARD_CAM_INDEX", "0"))
MIRROR_FEED = _env_bool("DRIFTGUARD_MIRROR", "true")  # selfie-style preview
JPEG_QUALITY = int(os.getenv("DRIFTGUARD_JPEG_QUALITY", "85"))

# reasoning service
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or ""
GEMINI_MODEL = os.getenv("DRIFTGUARD_MODEL", "gemini-2.5-flash")
LANGUAGES = ("auto", "en", "es", "de", "hi", "zh", "fr", "ja")
DEFAULT_LANGUAGE = os.getenv("DRIFTGUARD_LANGUAGE", "auto")

# scheduling
MIN_ANALYSIS_INTERVAL_S = float(os.getenv("DRIFTGUARD_MIN_INTERVAL_S", "3.0"))
MONITOR_INTERVAL_MS = int(os.getenv("DRIFTGUARD_MONITOR_INTERVAL_MS", "3000"))
POLL_INTERVAL_MS = 500  # video position polling cadence
STEP_LEAD_S = 0.5  # pause this far ahead of a step's timestamp
AUTO_VERIFY_STEPS = _env_bool("DRIFTGUARD_AUTO_VERIFY", "true")

# audit / report
AUDIT_CAPACITY = int(os.getenv("DRIFTGUARD_AUDIT_CAPACITY", "500"))
SEVERITY_PENALTIES: Dict[str, int] = {"CRITICAL": 15, "MEDIUM": 0, "LOW": 0}
# hazard zones sent as context and drawn on the preview, boxes in [ymin, xmin, ymax, xmax]
DEFAULT_HAZARD_ZONES: List[Dict[str, Any]] = [{"label": "High Voltage Zone", "boundingBox": [100, 600, 300, 900]}]
HAZARD_ZONES = _env_json("DRIFTGUARD_HAZARD_ZONES", DEFAULT_HAZARD_ZONES)
SCORE_GREEN_ABOVE = 80  # scores above this render green in reports
SAVE_ROOT_TEMP = os.getenv("DRIFTGUARD_SESSIONS_TMP", os.path.join("sessions", "_tmp"))
SAVE_ROOT_FINAL = os.getenv("DRIFTGUARD_SESSIONS", "sessions")
STATE_FILE = os.getenv("DRIFTGUARD_STATE_FILE", os.path.join(os.path.expanduser("~"), ".driftguard.json"))

LOG_LEVEL = os.getenv("DRIFTGUARD_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Settings:
    api_key: str = GEMINI_API_KEY
    model: str = GEMINI_MODEL
    language: str = DEFAULT_LANGUAGE
    cam_index: int = CAM_INDEX
    mirrored: bool = MIRROR_FEED
    min_interval_s: float = MIN_ANALYSIS_INTERVAL_S
    monitor_interval_ms: int = MONITOR_INTERVAL_MS
    poll_interval_ms: int = POLL_INTERVAL_MS
    step_lead_s: float = STEP_LEAD_S
    auto_verify: bool = AUTO_VERIFY_STEPS
    audit_capacity: int = AUDIT_CAPACITY
    penalties: Dict[str, int] = field(default_factory=lambda: dict(SEVERITY_PENALTIES))
    hazard_zones: List[Dict[str, Any]] = field(default_factory=lambda: list(HAZARD_ZONES))

    @property
    def simulation(self) -> bool:
        return not self.api_key  # no key → offline simulation backend

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or "",
            model=os.getenv("DRIFTGUARD_MODEL", GEMINI_MODEL),
            language=os.getenv("DRIFTGUARD_LANGUAGE", DEFAULT_LANGUAGE),
            cam_index=int(os.getenv("DRIFTGUARD_CAM_INDEX", str(CAM_INDEX))),
            mirrored=_env_bool("DRIFTGUARD_MIRROR", "true"),
            min_interval_s=float(os.getenv("DRIFTGUARD_MIN_INTERVAL_S", str(MIN_ANALYSIS_INTERVAL_S))),
            hazard_zones=_env_json("DRIFTGUARD_HAZARD_ZONES", DEFAULT_HAZARD_ZONES),
        )


def configure_logging(level: Optional[str] = None) -> None:
    root = logging.getLogger("driftguard")
    root.setLevel((level or LOG_LEVEL).upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
