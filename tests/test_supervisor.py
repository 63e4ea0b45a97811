"""
Session wiring: timeline + scheduler + audit log behind one command entry point.
"""

import pytest

from driftguard.analysis.commands import Command, CommandKind
from driftguard.analysis.runner import InlineRunner
from driftguard.analysis.scheduler import Trigger
from driftguard.analysis.supervisor import UPLOAD_FIRST, SessionSupervisor
from driftguard.analysis.timeline import Mode
from driftguard.config import Settings
from driftguard.geometry.boxes import NormBox
from driftguard.geometry.calibration import Calibration
from driftguard.io.session_report import SessionWriter
from driftguard.reasoning.base import HazardZone, InventoryResult, ReasoningError, Reference, Severity

from conftest import VIDEO_STEPS, FakeBackend, FakeFrameSource, drift, match

REF = Reference("IMAGE", b"png-bytes", "schematic.png", "image/png")


def _settings(**kw):
    s = Settings(api_key="", min_interval_s=3.0, monitor_interval_ms=3000, poll_interval_ms=500,
                 step_lead_s=0.5, auto_verify=True, audit_capacity=500, mirrored=False)
    for k, v in kw.items():
        setattr(s, k, v)
    return s


class TestSupervisor:
    def setup_method(self):
        self.notices = []
        self.summaries = []
        self.incidents = []

    def _make(self, backend, runner, clock, player=None, tickers=None, frames=None, settings=None, **kw):
        return SessionSupervisor(
            backend, runner, frames or FakeFrameSource(), player=player, settings=settings or _settings(),
            ticker_factory=tickers, clock=clock,
            on_notice=lambda m, t: self.notices.append(m),
            on_summary=self.summaries.append, on_incident=self.incidents.append, **kw)

    # ---------- scenario C ----------
    def test_rejected_call_leaves_flag_clear_and_log_unchanged(self, runner, clock):
        sup = self._make(FakeBackend([ReasoningError("503")]), runner, clock)
        sup.load_procedure(REF)
        before = len(sup.audit_log)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        assert sup.scheduler.in_flight
        runner.complete()
        assert not sup.scheduler.in_flight
        assert len(sup.audit_log) == before
        assert any("Analysis failed" in n for n in self.notices)

    # ---------- guidance ----------
    def test_no_reference_asks_for_upload(self, runner, clock):
        sup = self._make(FakeBackend(), runner, clock)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        assert runner.pending == []
        assert self.notices[-1] == UPLOAD_FIRST

    def test_no_frame_is_skipped(self, runner, clock):
        sup = self._make(FakeBackend(), runner, clock, frames=FakeFrameSource(None))
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        assert runner.pending == [] and sup.scheduler.calls_started == 0

    def test_unusable_procedure_is_refused_with_notice(self, runner, clock):
        sup = self._make(FakeBackend(), runner, clock)
        assert sup.load_procedure(REF, [17, None]) is False
        assert "No usable steps in procedure" in self.notices
        assert sup.load_procedure(REF, {"steps": "oops"}) is False
        assert sup.timeline.mode is Mode.IDLE

    def test_partly_unusable_procedure_loads_the_rest(self, runner, clock):
        sup = self._make(FakeBackend(), runner, clock)
        assert sup.load_procedure(REF, [{"id": "s-1", "text": "Open panel"}, 5])
        assert [s.text for s in sup.timeline.steps] == ["Open panel"]
        assert "Skipped 1 unusable step(s)" in self.notices

    # ---------- verdict routing ----------
    def test_drift_logged_and_overlay_mapped(self, runner, clock):
        sup = self._make(FakeBackend([drift(box=NormBox(100, 200, 300, 400))]), runner, clock)
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        runner.complete()
        assert len(sup.audit_log) == 1
        assert sup.overlay_rect(1000, 500) == pytest.approx((100, 100, 300, 200))
        sup.settings.mirrored = True
        assert sup.overlay_rect(1000, 500).x == pytest.approx(600)

    def test_match_clears_overlay(self, runner, clock):
        sup = self._make(FakeBackend([match()]), runner, clock)
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        runner.complete()
        assert sup.overlay_rect(640, 480) is None
        assert len(sup.audit_log) == 0

    def test_critical_raises_incident_with_snapshot(self, runner, clock, tmp_path):
        writer = SessionWriter(root=str(tmp_path))
        sup = self._make(FakeBackend([drift(Severity.CRITICAL, "Wrong polarity")]), runner, clock,
                         session_writer=writer)
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        runner.complete()
        assert self.incidents[0].message == "Wrong polarity"
        assert sup.audit_log.compute_score() == 85
        assert (tmp_path / writer.dir / "incidents" / "incident_001.jpg").exists()

    def test_hazard_zone_hit_is_announced(self, runner, clock):
        sup = self._make(FakeBackend([drift(box=NormBox(100, 100, 200, 200))]), runner, clock)
        sup.load_procedure(REF)
        sup.set_hazard_zones([HazardZone("Live busbar", NormBox(250, 250, 100, 100)),
                              HazardZone("Far corner", NormBox(900, 900, 50, 50))])
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        runner.complete()
        assert "Drift inside hazard zone: Live busbar" in self.notices

    def test_configured_zones_are_sent_and_checked(self, runner, clock):
        zones = [{"label": "High Voltage Zone", "boundingBox": [100, 600, 300, 900]}, {"label": "bad", "box": [1]}]
        backend = FakeBackend([drift(box=NormBox(650, 150, 50, 50))])
        sup = self._make(backend, runner, clock, settings=_settings(hazard_zones=zones))
        assert sup.hazard_zones == [HazardZone("High Voltage Zone", NormBox(600, 100, 300, 200))]
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        runner.complete()
        assert backend.requests[0].hazard_zones == sup.hazard_zones
        assert "Drift inside hazard zone: High Voltage Zone" in self.notices

    def test_request_carries_context(self, runner, clock):
        backend = FakeBackend()
        sup = self._make(backend, runner, clock)
        sup.load_procedure(REF, [{"text": "Tighten bolt"}])
        sup.set_language("de")
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        runner.complete()
        req = backend.requests[0]
        assert req.instruction == "Verify step: Tighten bolt"
        assert req.language == "de" and req.reference is REF

    # ---------- step verification loop ----------
    def test_video_step_verified_by_match(self, player, clock, tickers):
        backend = FakeBackend([match(), drift(), match()])
        sup = self._make(backend, InlineRunner(), clock, player=player, tickers=tickers)
        sup.load_procedure(Reference("VIDEO", "demo.mp4"), VIDEO_STEPS, video_backed=True)
        assert sup.handle(Command(CommandKind.ARM))
        assert not sup.monitoring  # videos verify at step boundaries, not on a timer

        player.position = 10
        sup.timeline.poll()  # MATCH → step 1 confirmed
        assert sup.timeline.current_step_index == 1

        clock.advance(5)
        player.position = 20
        sup.timeline.poll()  # DRIFT → stays on step 2
        assert sup.timeline.mode is Mode.AWAITING_CONFIRMATION
        assert len(sup.audit_log) == 1

        clock.advance(5)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS, Trigger.VOICE))  # retry → MATCH
        assert sup.timeline.current_step_index == 2

    def test_rate_limited_verification_is_retried_while_paused(self, player, clock):
        steps = [{"text": "Open panel", "timestamp": 10}, {"text": "Swap fuse", "timestamp": 12},
                 {"text": "Close panel", "timestamp": 30}]
        backend = FakeBackend([match(), match(), drift()])
        sup = self._make(backend, InlineRunner(), clock, player=player)
        sup.load_procedure(Reference("VIDEO", "demo.mp4"), steps, video_backed=True)
        sup.handle(Command(CommandKind.ARM))

        player.position = 10
        sup.timeline.poll()
        assert sup.timeline.current_step_index == 1

        clock.advance(1.5)
        player.position = 12
        sup.timeline.poll()  # pauses on step 2, request dropped by the rate limit
        assert sup.timeline.mode is Mode.AWAITING_CONFIRMATION
        assert len(backend.requests) == 1

        clock.advance(1.0)
        sup.timeline.poll()  # still inside the interval
        assert len(backend.requests) == 1

        clock.advance(1.0)
        sup.timeline.poll()
        assert len(backend.requests) == 2
        assert sup.timeline.current_step_index == 2

        clock.advance(5)
        player.position = 30
        sup.timeline.poll()  # DRIFT on step 3
        assert len(backend.requests) == 3
        clock.advance(5)
        sup.timeline.poll()  # a verdict is in; no more automatic calls for this step
        assert len(backend.requests) == 3

    def test_failed_verification_is_retried(self, player, clock):
        backend = FakeBackend([ReasoningError("timeout"), match()])
        sup = self._make(backend, InlineRunner(), clock, player=player)
        sup.load_procedure(Reference("VIDEO", "demo.mp4"), VIDEO_STEPS, video_backed=True)
        sup.handle(Command(CommandKind.ARM))
        player.position = 10
        sup.timeline.poll()
        assert sup.timeline.mode is Mode.AWAITING_CONFIRMATION
        clock.advance(3)
        sup.timeline.poll()
        assert sup.timeline.current_step_index == 1
        assert len(backend.requests) == 2

    def test_completion_emits_summary_and_writes_report(self, player, clock, tmp_path):
        writer = SessionWriter(root=str(tmp_path))
        sup = self._make(FakeBackend(), InlineRunner(), clock, player=player, session_writer=writer)
        sup.load_procedure(Reference("VIDEO", "demo.mp4"), VIDEO_STEPS[:1], video_backed=True)
        sup.handle(Command(CommandKind.ARM))
        clock.advance(30)
        sup.handle(Command(CommandKind.CONFIRM_STEP))
        assert sup.timeline.mode is Mode.COMPLETE
        header = self.summaries[0]["header"]
        assert header["steps_completed"] == 1 and header["duration_s"] == pytest.approx(30)
        assert (tmp_path / writer.dir / "report.json").exists()

    # ---------- monitoring controls ----------
    def test_static_reference_arms_periodic_monitoring(self, runner, clock, tickers):
        sup = self._make(FakeBackend(), runner, clock, tickers=tickers)
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.ARM))
        assert sup.monitoring
        sched_ticker = tickers.tickers[1]  # [0] is the timeline poller
        sched_ticker.fire()
        assert len(runner.pending) == 1

    def test_pause_stops_calls_resume_restarts(self, runner, clock, tickers):
        sup = self._make(FakeBackend(), runner, clock, tickers=tickers)
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.ARM))
        sup.handle(Command(CommandKind.PAUSE_MONITORING))
        assert not sup.monitoring and sup.timeline.frozen
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        assert runner.pending == []
        sup.handle(Command(CommandKind.RESUME_MONITORING))
        assert sup.monitoring and not sup.timeline.frozen

    def test_reset_clears_paused_monitoring(self, runner, clock, tickers):
        sup = self._make(FakeBackend(), runner, clock, tickers=tickers)
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.ARM))
        sup.handle(Command(CommandKind.PAUSE_MONITORING))
        sup.handle(Command(CommandKind.RESET))
        assert not sup.timeline.frozen and not sup.scheduler.suspended

    def test_reset_discards_in_flight_result(self, runner, clock):
        sup = self._make(FakeBackend([drift(Severity.CRITICAL)]), runner, clock)
        sup.load_procedure(REF)
        sup.handle(Command(CommandKind.REQUEST_ANALYSIS))
        sup.handle(Command(CommandKind.RESET))
        runner.complete()  # arrives after reset
        assert len(sup.audit_log) == 0
        assert sup.last_verdict is None
        assert sup.timeline.mode is Mode.IDLE and sup.reference is None

    # ---------- input modalities ----------
    def test_voice_and_keys_share_the_entry_point(self, runner, clock):
        sup = self._make(FakeBackend(), runner, clock)
        sup.load_procedure(REF, [{"text": "a"}, {"text": "b"}])
        sup.handle(Command(CommandKind.ARM))
        assert sup.handle_voice("next")
        assert sup.timeline.current_step_index == 1
        assert sup.handle_key("B")
        assert sup.timeline.current_step_index == 0
        assert sup.handle_voice("gibberish") is False

    def test_gestures_dispatch_through_the_same_entry_point(self, runner, clock):
        sup = self._make(FakeBackend(), runner, clock)
        sup.load_procedure(REF, [{"text": "a"}, {"text": "b"}])
        sup.handle(Command(CommandKind.ARM))
        assert sup.handle_gesture("Thumbs Up")
        assert sup.timeline.current_step_index == 1
        clock.advance(10)
        assert sup.handle_gesture("Open Palm")
        assert len(runner.pending) == 1
        assert sup.handle_gesture("Wave") is False

    def test_calibration_commands(self, runner, clock):
        sup = self._make(FakeBackend(), runner, clock)
        sup.handle_voice("move right")
        sup.handle_key("Left", shift=True)
        assert sup.calibration.offset_x == 0.0
        sup.handle_key("]")
        assert sup.calibration.rotation_deg == 1.0
        sup.handle_key("0")
        assert sup.calibration == Calibration()

    # ---------- side operations ----------
    def test_digitize_loads_video_procedure(self, clock, player):
        backend = FakeBackend()
        backend.digitized = [{"text": "b", "timestamp": 8}, {"text": "a", "timestamp": 2}]
        sup = self._make(backend, InlineRunner(), clock, player=player)
        done = []
        sup.digitize_reference(Reference("VIDEO", "demo.mp4"), done=done.append)
        assert done == [True]
        assert [s.text for s in sup.timeline.steps] == ["a", "b"]
        assert sup.timeline.video_backed and sup.timeline.mode is Mode.READY

    def test_digitize_result_after_reset_is_discarded(self, runner, clock):
        backend = FakeBackend()
        backend.digitized = [{"text": "a", "timestamp": 2}]
        sup = self._make(backend, runner, clock)
        done = []
        sup.digitize_reference(Reference("VIDEO", "demo.mp4"), done=done.append)
        sup.handle(Command(CommandKind.RESET))
        runner.complete()
        assert done == [False]
        assert sup.timeline.mode is Mode.IDLE and sup.timeline.steps == []
        assert sup.reference is None

    def test_digitize_without_steps_reports(self, clock):
        sup = self._make(FakeBackend(), InlineRunner(), clock)
        done = []
        sup.digitize_reference(Reference("VIDEO", "demo.mp4"), done=done.append)
        assert done == [False]
        assert "No steps found in reference video" in self.notices

    def test_inventory_missing_items(self, clock):
        backend = FakeBackend()
        backend.inventory = InventoryResult(False, ["gloves", "helmet"], "")
        sup = self._make(backend, InlineRunner(), clock)
        got = []
        sup.check_inventory(["gloves", "helmet"], done=got.append)
        assert got[0].missing_items == ["gloves", "helmet"]
        assert "Missing: gloves, helmet" in self.notices
