# src/driftguard/analysis/supervisor.py
from __future__ import annotations
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..config import Settings
from ..geometry.boxes import PixelRect, boxes_intersect, map_box
from ..geometry.calibration import Calibration, adjust_for_key, adjust_for_voice, KEY_ADJUSTMENTS
from ..io.audit_log import AuditEntry, AuditLog
from ..io.session_report import SessionWriter, build_report
from ..player.base import VideoPlayer
from ..reasoning.base import (
    AnalysisRequest, HazardZone, InventoryResult, ReasoningBackend, Reference, Severity, Verdict,
    hazard_zones_from_payload,
)
from .commands import GESTURE_COMMANDS, KEY_COMMANDS, Command, CommandKind, parse_voice_text
from .runner import CallRunner
from .scheduler import AnalysisScheduler, Trigger
from .ticker import TickerFactory
from .timeline import Mode, ProcedureTimeline, TimelineEvent, normalize_steps

logger = logging.getLogger(__name__)

UPLOAD_FIRST = "Upload reference first"


class SessionSupervisor:
    """
    Owns one supervision session and is the only place commands are applied.

    Wiring:
      - the timeline asks for a verification when it pauses on a step
        (``verify_requested``) and the scheduler turns that into a gated call;
      - DRIFT verdicts go to the audit log, CRITICAL ones also raise an
        incident; MATCH verdicts are fed back to the timeline as a
        ``VERDICT_MATCH`` command, which only advances a paused step;
      - failures surface as transient notices and change nothing else.

    Callbacks (all optional): ``on_notice(message, transient)``,
    ``on_verdict(verdict)``, ``on_incident(entry)``, ``on_summary(report)``,
    ``on_timeline_event(event)``.
    """

    def __init__(
        self,
        backend: ReasoningBackend,
        runner: CallRunner,
        frame_source: Any,
        player: Optional[VideoPlayer] = None,
        settings: Optional[Settings] = None,
        ticker_factory: Optional[TickerFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        session_writer: Optional[SessionWriter] = None,
        on_notice: Optional[Callable[[str, bool], None]] = None,
        on_verdict: Optional[Callable[[Verdict], None]] = None,
        on_incident: Optional[Callable[[AuditEntry], None]] = None,
        on_summary: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_timeline_event: Optional[Callable[[TimelineEvent], None]] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.backend = backend
        self.runner = runner
        self.frame_source = frame_source  # anything with get_frame() -> Optional[bytes]
        self.session_writer = session_writer
        self.on_notice = on_notice
        self.on_verdict = on_verdict
        self.on_incident = on_incident
        self.on_summary = on_summary
        self.on_timeline_event = on_timeline_event

        self.audit_log = AuditLog(self.settings.audit_capacity, self.settings.penalties)
        self.timeline = ProcedureTimeline(
            player=player, ticker_factory=ticker_factory,
            poll_interval_ms=self.settings.poll_interval_ms, lead_s=self.settings.step_lead_s,
            clock=clock, auto_verify=self.settings.auto_verify, listener=self._on_timeline_event,
        )
        self.scheduler = AnalysisScheduler(
            backend, runner, self._build_request, min_interval_s=self.settings.min_interval_s,
            clock=clock, on_result=self._on_result, on_error=self._on_error,
            ticker_factory=ticker_factory,
        )
        self.reference: Optional[Reference] = None
        self.language = self.settings.language
        self.hazard_zones: List[HazardZone] = hazard_zones_from_payload(self.settings.hazard_zones)
        self.calibration = Calibration()
        self.last_verdict: Optional[Verdict] = None
        self.last_inventory: Optional[InventoryResult] = None
        self.last_report: Optional[Dict[str, Any]] = None
        self._verdict_step: Optional[int] = None  # paused step that already has a verdict

    # ---------- notices ----------
    def _notify(self, message: str, transient: bool = True) -> None:
        logger.info("Notice: %s", message)
        if self.on_notice:
            self.on_notice(message, transient)

    @property
    def monitoring(self) -> bool:
        return self.scheduler.periodic_active

    @property
    def continuous(self) -> bool:
        # static references are watched on a timer; videos verify at step boundaries
        return not self.timeline.video_backed

    # ---------- session setup ----------
    def load_procedure(self, reference: Optional[Reference], steps: Iterable[Any] = (),
                       video_backed: bool = False) -> bool:
        if isinstance(steps, (str, bytes, Mapping)) or not isinstance(steps, Iterable):
            self._notify("Procedure steps must be a list")
            return False
        raw = list(steps)
        parsed = normalize_steps(raw)
        if raw and not parsed:
            self._notify("No usable steps in procedure")
            return False
        if len(parsed) < len(raw):
            self._notify(f"Skipped {len(raw) - len(parsed)} unusable step(s)")
        self.scheduler.stop_periodic()
        self.scheduler.invalidate()  # results for the previous reference are stale
        self.last_verdict = None
        self._verdict_step = None
        self.reference = reference
        return self.timeline.load(parsed, video_backed=video_backed)

    def set_language(self, language: str) -> None:
        self.language = language or "auto"

    def set_hazard_zones(self, zones: Iterable[HazardZone]) -> None:
        self.hazard_zones = list(zones)

    # ---------- single dispatch ----------
    def handle(self, command: Command) -> bool:
        kind = command.kind
        logger.debug("Command %s (%s)", kind.value, command.trigger.value)
        if kind is CommandKind.REQUEST_ANALYSIS:
            self.scheduler.request_analysis(command.trigger)
            return True
        if kind is CommandKind.ADJUST_CALIBRATION:
            self.calibration = adjust_for_voice(self.calibration, str(command.value))
            return True
        if kind is CommandKind.ARM:
            ok = self.timeline.dispatch(command)
            if ok and self.continuous and not self.scheduler.suspended:
                self.scheduler.start_periodic(self.settings.monitor_interval_ms)
            return ok
        if kind is CommandKind.PAUSE_MONITORING:
            self.scheduler.suspend()
            self.scheduler.stop_periodic()
            return self.timeline.dispatch(command)
        if kind is CommandKind.RESUME_MONITORING:
            self.scheduler.resume()
            if self.continuous and self.timeline.mode in (Mode.PLAYING, Mode.AWAITING_CONFIRMATION):
                self.scheduler.start_periodic(self.settings.monitor_interval_ms)
            return self.timeline.dispatch(command)
        if kind is CommandKind.RESET:
            self.reset()
            return True
        return self.timeline.dispatch(command)

    def handle_voice(self, transcript: str) -> bool:
        cmd = parse_voice_text(transcript)
        if cmd is None:
            logger.debug("No command in transcript %r", transcript)
            return False
        return self.handle(cmd)

    def handle_key(self, key: str, shift: bool = False) -> bool:
        if key in KEY_ADJUSTMENTS or key == "0":
            self.calibration = adjust_for_key(self.calibration, key, shift)
            return True
        cmd = KEY_COMMANDS.get(key)
        return self.handle(cmd) if cmd is not None else False

    def handle_gesture(self, label: str) -> bool:
        # labels come from an external recogniser, e.g. "Thumbs Up"
        cmd = GESTURE_COMMANDS.get(label)
        return self.handle(cmd) if cmd is not None else False

    def reset(self) -> None:
        self.scheduler.stop_periodic()
        self.scheduler.invalidate()
        self.scheduler.resume()
        self.timeline.reset()
        self.audit_log.clear()
        self.reference = None
        self.last_verdict = None
        self.last_inventory = None
        self.calibration = Calibration()
        self._verdict_step = None

    # ---------- scheduler hooks ----------
    def _instruction(self) -> str:
        step = self.timeline.current_step
        if step is not None and step.text:
            return f"Verify step: {step.text}"
        return "Standard Operating Procedure"

    def _build_request(self, trigger: Trigger) -> Optional[AnalysisRequest]:
        if self.reference is None and not self.timeline.steps:
            self._notify(UPLOAD_FIRST)
            return None
        frame = self.frame_source.get_frame() if self.frame_source is not None else None
        if frame is None:
            logger.debug("No camera frame for %s analysis", trigger.value)
            return None
        return AnalysisRequest(frame=frame, reference=self.reference, instruction=self._instruction(),
                               language=self.language, hazard_zones=list(self.hazard_zones))

    def _on_result(self, verdict: Verdict, trigger: Trigger) -> None:
        self.last_verdict = verdict
        if self.timeline.mode is Mode.AWAITING_CONFIRMATION:
            self._verdict_step = self.timeline.current_step_index
        if verdict.is_drift:
            entry = self.audit_log.append_verdict(verdict)
            hits = self.hazard_hits(verdict)
            if hits:
                self._notify(f"Drift inside hazard zone: {', '.join(hits)}")
            if verdict.severity is Severity.CRITICAL and entry is not None:
                self._raise_incident(entry)
        else:
            self.timeline.dispatch(Command(CommandKind.VERDICT_MATCH, trigger))
        if self.on_verdict:
            self.on_verdict(verdict)

    def _on_error(self, error: BaseException, trigger: Trigger) -> None:
        self._notify(f"Analysis failed: {error}", transient=True)

    def _raise_incident(self, entry: AuditEntry) -> None:
        self._notify(f"CRITICAL: {entry.message}", transient=False)
        if self.session_writer is not None:
            frame = self.frame_source.get_frame() if self.frame_source is not None else None
            self.session_writer.write_incident(entry, frame)
        if self.on_incident:
            self.on_incident(entry)

    def hazard_hits(self, verdict: Verdict) -> List[str]:
        if verdict.box is None:
            return []
        return [z.label for z in self.hazard_zones if boxes_intersect(verdict.box, z.box)]

    # ---------- timeline hooks ----------
    def _on_timeline_event(self, event: TimelineEvent) -> None:
        if event.kind == "step_reached":
            self._verdict_step = None
        elif event.kind == "verify_requested":
            if not (event.payload.get("retry") and self._verdict_step == event.step_index):
                self.scheduler.request_analysis(Trigger.STEP_CONFIRMATION)
        elif event.kind == "notice":
            self._notify(event.payload.get("message", ""))
        elif event.kind == "completed":
            self.scheduler.stop_periodic()
            self.last_report = self.session_report(event.payload.get("duration_s", 0.0))
            if self.session_writer is not None:
                self.session_writer.write_report(self.audit_log, event.payload.get("duration_s", 0.0),
                                                 self.timeline.steps_snapshot())
            self._notify("Procedure complete", transient=False)
            if self.on_summary:
                self.on_summary(self.last_report)
        if self.on_timeline_event:
            self.on_timeline_event(event)

    def session_report(self, duration_s: Optional[float] = None) -> Dict[str, Any]:
        d = self.timeline.elapsed() if duration_s is None else duration_s
        return build_report(self.audit_log, d, self.timeline.steps_snapshot())

    # ---------- side operations on the same collaborator ----------
    def digitize_reference(self, reference: Reference,
                           done: Optional[Callable[[bool], None]] = None) -> None:
        generation = self.scheduler.generation

        def _finish(steps: Optional[List[Dict[str, Any]]], error: Optional[BaseException]) -> None:
            if generation != self.scheduler.generation:
                logger.info("Discarded digitized steps from a superseded session")
                if done:
                    done(False)
                return
            if error is not None or steps is None:
                self._notify(f"Digitization failed: {error}")
                ok = False
            elif not steps:
                self._notify("No steps found in reference video")
                ok = False
            else:
                ok = self.load_procedure(reference, steps, video_backed=True)
                self._notify(f"Loaded {len(self.timeline.steps)} steps")
            if done:
                done(ok)

        self._notify("Digitizing procedure...")
        self.runner.run(lambda: self.backend.digitize_procedure(reference), _finish)

    def check_inventory(self, required_items: List[str],
                        done: Optional[Callable[[Optional[InventoryResult]], None]] = None) -> None:
        frame = self.frame_source.get_frame() if self.frame_source is not None else None
        if frame is None:
            self._notify("No camera frame available")
            if done:
                done(None)
            return

        def _finish(result: Optional[InventoryResult], error: Optional[BaseException]) -> None:
            if error is not None or result is None:
                self._notify(f"Inventory check failed: {error}")
                result = None
            else:
                self.last_inventory = result
                if result.compliant:
                    self._notify(result.message or "All required items present")
                else:
                    self._notify(f"Missing: {', '.join(result.missing_items)}", transient=False)
            if done:
                done(result)

        self.runner.run(lambda: self.backend.check_inventory(frame, list(required_items), self.language), _finish)

    # ---------- presentation ----------
    def overlay_rect(self, canvas_w: int, canvas_h: int) -> Optional[PixelRect]:
        v = self.last_verdict
        if v is None or not v.is_drift or v.box is None:
            return None
        return map_box(v.box, canvas_w, canvas_h, mirrored=self.settings.mirrored)
