# src/driftguard/scoring/scorer.py
from typing import Iterable, Mapping, Optional, Tuple  # type hints

from ..config import SCORE_GREEN_ABOVE, SEVERITY_PENALTIES

BASE_SCORE = 100


def compliance_score(severities: Iterable[str], penalties: Optional[Mapping[str, int]] = None) -> int:
    # Linear penalty per logged event, floored at zero; unknown severities cost nothing
    weights = SEVERITY_PENALTIES if penalties is None else penalties
    lost = 0
    for sev in severities:
        key = getattr(sev, "value", sev)  # accept Severity enums and plain strings
        lost += max(0, int(weights.get(str(key).upper(), 0)))
    return max(0, BASE_SCORE - lost)


def score_band(score: float) -> Tuple[str, str]:
    if score is None:
        return "Red", "no score"
    if score > SCORE_GREEN_ABOVE:  return "Green", "compliant"
    if score > 0:                  return "Amber", "deviations logged"
    return "Red", "non-compliant"


def format_duration(seconds: float) -> str:
    s = max(0, int(seconds or 0))
    return f"{s // 3600:02}:{(s % 3600) // 60:02}:{s % 60:02}"
