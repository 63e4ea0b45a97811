# src/driftguard/ui/main_window.py
import os, json, mimetypes, cv2  # stdlib + OpenCV
from typing import Any, Dict, Optional  # type hints for clarity
from PySide6 import QtCore, QtGui, QtWidgets  # Qt UI framework (signals, widgets, etc.)
from PySide6.QtGui import QAction  # toolbar actions

# Global configuration values / settings dataclass
from ..config import WINDOW_TITLE, FRAME_SIZE, JPEG_QUALITY, STATE_FILE, Settings, configure_logging
# Procedure / supervision core
from ..analysis.commands import Command, CommandKind, KEY_COMMANDS
from ..analysis.scheduler import Trigger
from ..analysis.supervisor import SessionSupervisor
from ..analysis.timeline import Mode, TimelineEvent
# Reasoning backends (remote service or offline simulation)
from ..reasoning.base import ReasoningBackend, Reference, Verdict
from ..reasoning.gemini_backend import GeminiBackend
from ..reasoning.simulated_backend import SimulatedBackend
# Devices
from ..camera.frame_source import FrameSource, enumerate_cameras
from ..player.video_player import OpenCVVideoPlayer
# Session IO
from ..io.audit_log import AuditEntry
from ..io.kv_store import JsonFileStore, KeyValueStore, TUTORIAL_SEEN
from ..io.session_report import SessionWriter, export_session_dir, list_temp_sessions
from ..scoring.scorer import score_band
from ..geometry.calibration import KEY_ADJUSTMENTS
# Qt glue
from .workers import QtCallRunner, QtTicker
from .dialogs import SettingsDialog, ExportDialog, InventoryDialog
from .overlays import (
    draw_drift_box, draw_caption_bar, draw_hazard_zones, draw_step_banner,
    blend_reference, cvimg_to_qt,
)

VIDEO_EXT = (".mp4", ".mov", ".avi", ".mkv", ".webm")
IMAGE_EXT = (".png", ".jpg", ".jpeg", ".bmp", ".webp")
FRAME_INTERVAL_MS = 33  # ~30 FPS preview
NOTICE_MS = 4000  # transient notices auto-dismiss after this long

TUTORIAL_TEXT = (
    "1. Load a reference (image, PDF, text or video).\n"
    "2. For videos, digitize or load the procedure steps.\n"
    "3. Press A to arm. The video pauses at every step for verification.\n\n"
    "Space = confirm step, B = previous step, V = verify now, Ctrl+R = reset.\n"
    "Arrows / [ ] / - = move, rotate and scale the reference ghost (Shift x10, 0 resets)."
)


def make_backend(settings: Settings) -> ReasoningBackend:
    if settings.simulation:
        return SimulatedBackend()  # no API key configured
    return GeminiBackend(settings.api_key, settings.model)


class MainWindow(QtWidgets.QMainWindow):  # main application window (presentation + device ownership)
    def __init__(self, settings: Optional[Settings] = None, store: Optional[KeyValueStore] = None):
        super().__init__()  # init base QMainWindow
        configure_logging()
        self.settings = settings or Settings.from_env()  # environment-driven defaults
        self.store = store or JsonFileStore(STATE_FILE)  # cross-session flags
        self.setWindowTitle(WINDOW_TITLE)
        self.resize(1280, 800)
        self.video_label = QtWidgets.QLabel("Starting…\n Click on Start to begin. or press 'S' to start.")
        self.video_label.setAlignment(QtCore.Qt.AlignCenter)
        self.setCentralWidget(self.video_label)

        self.frame_source = FrameSource(self.settings.cam_index, FRAME_SIZE, JPEG_QUALITY)
        self.player: Optional[OpenCVVideoPlayer] = None  # reference video, when one is loaded
        self.reference_img = None  # ghost overlay source (images only)
        self.runner = QtCallRunner()
        self.backend = make_backend(self.settings)
        self.supervisor = SessionSupervisor(
            self.backend, self.runner, self.frame_source, settings=self.settings,
            ticker_factory=QtTicker, on_notice=self.on_notice, on_verdict=self.on_verdict,
            on_incident=self.on_incident, on_summary=self.on_summary,
            on_timeline_event=self.on_timeline_event,
        )
        self.frame_timer = QtCore.QTimer(self)  # preview/render loop
        self.frame_timer.timeout.connect(self.on_frame)
        QtCore.QTimer.singleShot(0, self.build_ui)  # defer building UI to allow full init

    # ---------------- UI & toolbar ----------------
    def build_ui(self):
        self.status = self.statusBar()
        self.model_indicator = QtWidgets.QLabel(f"Backend: {self.backend.name()}")
        self.score_indicator = QtWidgets.QLabel("Score: 100")
        self.status.addPermanentWidget(self.score_indicator)
        self.status.addPermanentWidget(self.model_indicator)

        self.tb = self.addToolBar("Controls")
        self.cmb_camera = QtWidgets.QComboBox()  # camera device selector
        self._cams = enumerate_cameras(10)
        for idx, label in self._cams: self.cmb_camera.addItem(label, idx)
        self.btn_start = QAction("Start", self)
        self.btn_stop = QAction("Stop", self); self.btn_stop.setEnabled(False)
        if not self._cams:
            self.btn_start.setEnabled(False)  # nothing to capture from
            QtWidgets.QMessageBox.warning(self, "Camera", "No usable camera found. Plug in a webcam and restart.")
        self.cmb_camera.currentIndexChanged.connect(self.on_camera_change)

        self.act_load_ref = QAction("Load Reference", self)
        self.act_load_steps = QAction("Load Procedure", self)
        self.act_digitize = QAction("Digitize", self); self.act_digitize.setEnabled(False)  # video references only
        self.act_arm = QAction("Arm", self)
        self.act_verify = QAction("Verify", self)
        self.act_confirm = QAction("Confirm Step", self)
        self.act_previous = QAction("Previous", self)
        self.act_pause = QAction("Pause Monitoring", self); self.act_pause.setCheckable(True)
        self.act_preflight = QAction("Pre-flight", self)
        self.act_export = QAction("Export", self)
        self.act_reset = QAction("Reset", self)
        self.act_settings = QAction("Settings", self)

        self.tb.addWidget(QtWidgets.QLabel("Camera: ")); self.tb.addWidget(self.cmb_camera); self.tb.addSeparator()
        self.tb.addAction(self.btn_start); self.tb.addAction(self.btn_stop); self.tb.addSeparator()
        for a in (self.act_load_ref, self.act_load_steps, self.act_digitize): self.tb.addAction(a)
        self.tb.addSeparator()
        for a in (self.act_arm, self.act_verify, self.act_confirm, self.act_previous, self.act_pause): self.tb.addAction(a)
        self.tb.addSeparator()
        for a in (self.act_preflight, self.act_export, self.act_reset, self.act_settings): self.tb.addAction(a)

        # connect toolbar actions to handlers
        self.btn_start.triggered.connect(self.on_start); self.btn_stop.triggered.connect(self.on_stop)
        self.act_load_ref.triggered.connect(self.on_load_reference)
        self.act_load_steps.triggered.connect(self.on_load_procedure)
        self.act_digitize.triggered.connect(self.on_digitize)
        self.act_arm.triggered.connect(lambda: self._send(Command(CommandKind.ARM)))
        self.act_verify.triggered.connect(lambda: self._send(Command(CommandKind.REQUEST_ANALYSIS)))
        self.act_confirm.triggered.connect(lambda: self._send(Command(CommandKind.CONFIRM_STEP)))
        self.act_previous.triggered.connect(lambda: self._send(Command(CommandKind.PREVIOUS_STEP)))
        self.act_pause.toggled.connect(self.on_pause_toggled)
        self.act_preflight.triggered.connect(self.on_preflight)
        self.act_export.triggered.connect(self.on_open_export)
        self.act_reset.triggered.connect(lambda: self._send(Command(CommandKind.RESET)))
        self.act_settings.triggered.connect(self.on_open_settings)

        # steps dock (left)
        self.steps_dock = QtWidgets.QDockWidget("Procedure Steps", self)
        self.steps_list = QtWidgets.QListWidget()
        self.steps_list.itemClicked.connect(self.on_step_clicked)  # click = jump to step
        self.steps_dock.setWidget(self.steps_list)
        self.addDockWidget(QtCore.Qt.LeftDockWidgetArea, self.steps_dock)

        # audit dock (right): newest first + voice transcript entry
        self.audit_dock = QtWidgets.QDockWidget("Audit Log", self)
        panel = QtWidgets.QWidget(); lay = QtWidgets.QVBoxLayout(panel)
        self.audit_list = QtWidgets.QListWidget()
        self.voice_edit = QtWidgets.QLineEdit(); self.voice_edit.setPlaceholderText("Voice transcript, e.g. 'next step'")
        self.voice_edit.returnPressed.connect(self.on_voice_text)
        lay.addWidget(self.audit_list); lay.addWidget(self.voice_edit)
        self.audit_dock.setWidget(panel)
        self.addDockWidget(QtCore.Qt.RightDockWidgetArea, self.audit_dock)

        # keyboard shortcuts
        QtGui.QShortcut(QtGui.QKeySequence("S"), self, activated=self._shortcut_start_stop)  # S = start/stop
        QtGui.QShortcut(QtGui.QKeySequence("E"), self, activated=self.on_open_export)  # E = export dialog
        for key in KEY_COMMANDS:
            QtGui.QShortcut(QtGui.QKeySequence(key), self, activated=lambda k=key: self._send(KEY_COMMANDS[k]))
        for key in list(KEY_ADJUSTMENTS) + ["0"]:  # calibration keys, Shift = coarse
            QtGui.QShortcut(QtGui.QKeySequence(key), self, activated=lambda k=key: self.supervisor.handle_key(k))
            QtGui.QShortcut(QtGui.QKeySequence(f"Shift+{key}"), self,
                            activated=lambda k=key: self.supervisor.handle_key(k, shift=True))

        self.status.showMessage("Ready. Press Start." if self._cams else "No camera.")
        QtCore.QTimer.singleShot(300, self._show_tutorial_once)
        QtCore.QTimer.singleShot(600, self._prompt_export_if_pending)

    def _show_tutorial_once(self):
        if self.store.get(TUTORIAL_SEEN, False): return
        QtWidgets.QMessageBox.information(self, "Welcome", TUTORIAL_TEXT)
        self.store.set(TUTORIAL_SEEN, True)

    def _send(self, cmd: Command) -> bool:
        if cmd.kind is CommandKind.ARM and self.supervisor.timeline.mode is Mode.READY:
            self.supervisor.session_writer = SessionWriter()  # one temp folder per armed session
        if cmd.kind is CommandKind.RESET:
            self._flush_report()
        ok = self.supervisor.handle(cmd)
        self._refresh_steps()
        return ok

    # ---------- lifecycle ----------
    def on_start(self):
        if self.frame_timer.isActive(): return
        data = self.cmb_camera.currentData()
        self.frame_source.cam_index = int(data) if data is not None else 0
        if not self.frame_source.open():
            QtWidgets.QMessageBox.critical(self, "Camera", "Could not open the selected camera.\n\nTip: Use the 'Camera' dropdown to pick another index.")
            return
        self.frame_timer.start(FRAME_INTERVAL_MS)
        self.btn_start.setEnabled(False); self.btn_stop.setEnabled(True)
        self.status.showMessage("Running…")

    def on_stop(self):
        self.frame_timer.stop()
        self.frame_source.close()
        self.btn_start.setEnabled(bool(self._cams)); self.btn_stop.setEnabled(False)
        self.status.showMessage("Stopped")

    def on_camera_change(self, _i: int):
        if self.frame_timer.isActive():
            self.on_stop(); self.on_start()  # restart capture on the new device

    def closeEvent(self, ev: QtGui.QCloseEvent) -> None:
        try:
            self.on_stop()
            self.supervisor.scheduler.stop_periodic()
            self.runner.wait(3000)  # let an in-flight call finish before teardown
            self._flush_report()
            if self.player: self.player.close()
            self.backend.close()
            self._prompt_export_if_pending()
        finally:
            super().closeEvent(ev)

    # ---------- reference & procedure ----------
    def on_load_reference(self):
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self, "Load reference", "", "References (*.png *.jpg *.jpeg *.bmp *.webp *.pdf *.txt *.md *.mp4 *.mov *.avi *.mkv *.webm)")
        if not path: return
        ext = os.path.splitext(path)[1].lower()
        mime = mimetypes.guess_type(path)[0]
        if self.player: self.player.close(); self.player = None
        self.reference_img = None
        try:
            if ext in VIDEO_EXT:
                self.player = OpenCVVideoPlayer(path)
                ref = Reference("VIDEO", path, os.path.basename(path), mime or "video/mp4")
            elif ext in IMAGE_EXT:
                with open(path, "rb") as f: ref = Reference("IMAGE", f.read(), os.path.basename(path), mime or "image/jpeg")
                self.reference_img = cv2.imread(path)
            elif ext == ".pdf":
                with open(path, "rb") as f: ref = Reference("PDF", f.read(), os.path.basename(path), "application/pdf")
            else:
                with open(path, "r", encoding="utf-8") as f: ref = Reference("TEXT", f.read(), os.path.basename(path), "text/plain")
        except OSError as e:
            QtWidgets.QMessageBox.critical(self, "Reference", str(e)); return
        self.supervisor.timeline.player = self.player
        self.supervisor.load_procedure(ref, [], video_backed=False)  # static until steps are loaded
        self.act_digitize.setEnabled(self.player is not None)
        self._refresh_steps()
        self.status.showMessage(f"Reference loaded: {ref.name}", NOTICE_MS)

    def on_load_procedure(self):
        path, _ = QtWidgets.QFileDialog.getOpenFileName(self, "Load procedure", "", "Procedure (*.json)")
        if not path: return
        try:
            with open(path, "r", encoding="utf-8") as f: data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            QtWidgets.QMessageBox.critical(self, "Procedure", f"Could not read steps:\n{e}"); return
        steps = data.get("steps", []) if isinstance(data, dict) else data
        self.supervisor.load_procedure(self.supervisor.reference, steps, video_backed=self.player is not None)
        self._refresh_steps()

    def on_digitize(self):
        ref = self.supervisor.reference
        if ref is None or ref.kind != "VIDEO":
            self.on_notice("Load a reference video first", True); return
        self.act_digitize.setEnabled(False)

        def _done(ok: bool):
            self.act_digitize.setEnabled(True)
            self._refresh_steps()

        self.supervisor.digitize_reference(ref, done=_done)

    def on_step_clicked(self, item: QtWidgets.QListWidgetItem):
        self._send(Command(CommandKind.SELECT_STEP, Trigger.MANUAL, self.steps_list.row(item)))

    def on_voice_text(self):
        text = self.voice_edit.text(); self.voice_edit.clear()
        if not self.supervisor.handle_voice(text):
            self.status.showMessage(f"No command recognised in: {text!r}", NOTICE_MS)
        self._refresh_steps()

    def on_pause_toggled(self, checked: bool):
        self._send(Command(CommandKind.PAUSE_MONITORING if checked else CommandKind.RESUME_MONITORING))

    def _sync_pause_action(self):
        # reset and voice commands change the frozen flag without the toolbar
        frozen = self.supervisor.timeline.frozen
        blocked = self.act_pause.blockSignals(True)
        self.act_pause.setChecked(frozen)
        self.act_pause.blockSignals(blocked)
        self.act_pause.setText("Resume Monitoring" if frozen else "Pause Monitoring")

    def on_preflight(self):
        dlg = InventoryDialog(self)
        if dlg.exec() != QtWidgets.QDialog.Accepted: return
        self.supervisor.check_inventory(dlg.items())

    def on_open_settings(self):
        dlg = SettingsDialog(self, settings=self.settings)
        if dlg.exec() == QtWidgets.QDialog.Accepted:
            dlg.apply_to(self.settings)
            self.supervisor.set_language(self.settings.language)
            self.supervisor.scheduler.min_interval_s = self.settings.min_interval_s
            self.supervisor.timeline.auto_verify = self.settings.auto_verify

    # ---------- supervisor callbacks ----------
    def on_notice(self, message: str, transient: bool):
        self.status.showMessage(message, NOTICE_MS if transient else 0)

    def on_verdict(self, verdict: Verdict):
        self._refresh_audit()

    def on_incident(self, entry: AuditEntry):
        self._refresh_audit()

    def on_summary(self, report: Dict[str, Any]):
        h = report["header"]
        QtWidgets.QMessageBox.information(
            self, "Procedure complete",
            f"Steps completed: {h['steps_completed']}/{h['steps_total']}\n"
            f"Duration: {h['duration']}\nDeviations logged: {h['entry_count']}\n"
            f"Compliance score: {h['score']} ({h['band']})")

    def on_timeline_event(self, event: TimelineEvent):
        if event.kind in ("state_changed", "step_completed", "reset", "completed"):
            self._refresh_steps()
        if event.kind == "reset":
            self._refresh_audit()

    def _flush_report(self):
        sup = self.supervisor
        if sup.session_writer is None or sup.timeline.mode is Mode.COMPLETE: return  # completion already wrote it
        if sup.timeline.start_time is not None:
            sup.session_writer.write_report(sup.audit_log, sup.timeline.elapsed(), sup.timeline.steps_snapshot())
        sup.session_writer = None

    # ---------- docks ----------
    def _refresh_steps(self):
        tl = self.supervisor.timeline
        self.steps_list.clear()
        for i, s in enumerate(tl.steps_snapshot()):
            mark = "✔" if s.completed else ("▶" if i == tl.current_step_index and tl.mode is not Mode.READY else "•")
            ts = f" [{s.target_timestamp:.1f}s]" if s.target_timestamp is not None else ""
            self.steps_list.addItem(f"{mark} {s.id}. {s.text}{ts}")
        if tl.steps and 0 <= tl.current_step_index < len(tl.steps):
            self.steps_list.setCurrentRow(tl.current_step_index)
        self.act_arm.setEnabled(tl.mode is Mode.READY)
        self._sync_pause_action()

    def _refresh_audit(self):
        log = self.supervisor.audit_log
        self.audit_list.clear()
        for e in log.entries():  # newest first
            self.audit_list.addItem(f"{e.timestamp}  [{e.severity}]  {e.message}")
        score = log.compute_score(); band, _ = score_band(score)
        self.score_indicator.setText(f"Score: {score} ({band})")

    # ---------- export ----------
    def on_open_export(self):
        sessions = list_temp_sessions()
        if not sessions:
            QtWidgets.QMessageBox.information(self, "Export", "No temporary sessions to export."); return
        dlg = ExportDialog(self, sessions)
        if dlg.exec() == QtWidgets.QDialog.Accepted:
            moved = []
            for tmp in dlg.exported:
                try:
                    moved.append(os.path.basename(export_session_dir(tmp)))
                except OSError as e:
                    QtWidgets.QMessageBox.critical(self, "Export error", str(e))
            if moved:
                QtWidgets.QMessageBox.information(self, "Export", "Exported:\n- " + "\n- ".join(moved))

    def _prompt_export_if_pending(self):
        sessions = list_temp_sessions()
        if not sessions: return
        ret = QtWidgets.QMessageBox.question(
            self, "Export sessions", f"{len(sessions)} un-exported session(s) found. Export now?",
            QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No)
        if ret == QtWidgets.QMessageBox.Yes: self.on_open_export()

    # ---------- frame loop ----------
    def on_frame(self):
        frame = self.frame_source.read()  # raw, unmirrored; this is what gets analysed
        if frame is None: return
        sup = self.supervisor
        view = cv2.flip(frame, 1) if self.settings.mirrored else frame.copy()
        h, w = view.shape[:2]

        if self.player is not None:
            sup.timeline.poll()  # cheap; the ticker also polls, this keeps the preview in step
            ref_frame = self.player.read_frame()
            if ref_frame is not None:  # picture-in-picture of the reference video
                pip = cv2.resize(ref_frame, (w // 4, h // 4))
                view[8:8 + pip.shape[0], w - pip.shape[1] - 8:w - 8] = pip
        else:
            blend_reference(view, self.reference_img, sup.calibration)

        draw_hazard_zones(view, sup.hazard_zones, mirrored=self.settings.mirrored)
        v = sup.last_verdict
        if v is not None:
            draw_drift_box(view, sup.overlay_rect(w, h), v.severity.value)
            draw_caption_bar(view, v.message, v.severity.value)
        tl = sup.timeline
        step = tl.current_step
        draw_step_banner(view, step.text if step else "", tl.current_step_index, len(tl.steps), tl.mode.value, tl.frozen)

        qimg = cvimg_to_qt(QtGui, view)
        self.video_label.setPixmap(QtGui.QPixmap.fromImage(qimg))

    # ---------- shortcuts ----------
    def _shortcut_start_stop(self): self.on_stop() if self.btn_stop.isEnabled() else self.on_start()
