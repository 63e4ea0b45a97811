# src/driftguard/ui/dialogs.py
import os
from typing import List

from PySide6 import QtCore, QtWidgets

from ..config import LANGUAGES, Settings


class SettingsDialog(QtWidgets.QDialog):
    def __init__(self, parent=None, settings: Settings = None):
        super().__init__(parent)
        self.setWindowTitle("Settings")
        self.setModal(True)
        s = settings or Settings()

        self.cmb_language = QtWidgets.QComboBox()
        self.cmb_language.addItems(list(LANGUAGES))
        if s.language in LANGUAGES:
            self.cmb_language.setCurrentIndex(LANGUAGES.index(s.language))

        self.spn_interval = QtWidgets.QDoubleSpinBox()
        self.spn_interval.setRange(1.0, 30.0); self.spn_interval.setSingleStep(0.5); self.spn_interval.setSuffix(" s")
        self.spn_interval.setValue(s.min_interval_s)

        self.spn_monitor = QtWidgets.QSpinBox()
        self.spn_monitor.setRange(1000, 60000); self.spn_monitor.setSingleStep(500); self.spn_monitor.setSuffix(" ms")
        self.spn_monitor.setValue(s.monitor_interval_ms)

        self.chk_mirror = QtWidgets.QCheckBox("Mirror live feed")
        self.chk_mirror.setChecked(s.mirrored)
        self.chk_auto_verify = QtWidgets.QCheckBox("Verify automatically at each step")
        self.chk_auto_verify.setChecked(s.auto_verify)

        form = QtWidgets.QFormLayout()
        form.addRow("Language:", self.cmb_language)
        form.addRow("Min. analysis interval:", self.spn_interval)
        form.addRow("Monitoring interval:", self.spn_monitor)
        form.addRow(self.chk_mirror)
        form.addRow(self.chk_auto_verify)

        btn_ok = QtWidgets.QPushButton("OK")
        btn_cancel = QtWidgets.QPushButton("Cancel")
        btns = QtWidgets.QHBoxLayout()
        btns.addStretch(1)
        btns.addWidget(btn_cancel)
        btns.addWidget(btn_ok)

        lay = QtWidgets.QVBoxLayout(self)
        lay.addLayout(form)
        lay.addStretch(1)
        lay.addLayout(btns)

        btn_ok.clicked.connect(self.accept)
        btn_cancel.clicked.connect(self.reject)

    def apply_to(self, s: Settings) -> Settings:
        s.language = self.cmb_language.currentText()
        s.min_interval_s = float(self.spn_interval.value())
        s.monitor_interval_ms = int(self.spn_monitor.value())
        s.mirrored = self.chk_mirror.isChecked()
        s.auto_verify = self.chk_auto_verify.isChecked()
        return s


class ExportDialog(QtWidgets.QDialog):
    def __init__(self, parent=None, session_paths: List[str] = None):
        super().__init__(parent)
        self.setWindowTitle("Export Sessions")
        self.setModal(True)
        self.paths = session_paths or []

        self.list = QtWidgets.QListWidget()
        self.list.setSelectionMode(QtWidgets.QAbstractItemView.ExtendedSelection)
        for p in self.paths:
            item = QtWidgets.QListWidgetItem(os.path.basename(p))
            item.setData(QtCore.Qt.UserRole, p)
            self.list.addItem(item)

        self.btn_export = QtWidgets.QPushButton("Export Selected")
        self.btn_close = QtWidgets.QPushButton("Close")
        btns = QtWidgets.QHBoxLayout()
        btns.addStretch(1)
        btns.addWidget(self.btn_close)
        btns.addWidget(self.btn_export)

        lay = QtWidgets.QVBoxLayout(self)
        lay.addWidget(QtWidgets.QLabel("Session reports not yet exported:"))
        lay.addWidget(self.list)
        lay.addLayout(btns)

        self.btn_close.clicked.connect(self.reject)
        self.btn_export.clicked.connect(self._on_export)
        self.exported: List[str] = []  # paths chosen for export

    def _on_export(self):
        sel = self.list.selectedItems()
        if not sel:
            QtWidgets.QMessageBox.information(self, "Export", "Select at least one session to export.")
            return
        self.exported = [it.data(QtCore.Qt.UserRole) for it in sel]
        self.accept()


class InventoryDialog(QtWidgets.QDialog):
    # Pre-flight PPE/tool list, one item per line
    def __init__(self, parent=None, items: List[str] = None):
        super().__init__(parent)
        self.setWindowTitle("Pre-flight Check")
        self.setModal(True)
        self.txt = QtWidgets.QPlainTextEdit("\n".join(items or ["safety glasses", "gloves"]))
        btn_ok = QtWidgets.QPushButton("Check")
        btn_cancel = QtWidgets.QPushButton("Cancel")
        btns = QtWidgets.QHBoxLayout()
        btns.addStretch(1)
        btns.addWidget(btn_cancel)
        btns.addWidget(btn_ok)
        lay = QtWidgets.QVBoxLayout(self)
        lay.addWidget(QtWidgets.QLabel("Required items (one per line):"))
        lay.addWidget(self.txt)
        lay.addLayout(btns)
        btn_ok.clicked.connect(self.accept)
        btn_cancel.clicked.connect(self.reject)

    def items(self) -> List[str]:
        return [ln.strip() for ln in self.txt.toPlainText().splitlines() if ln.strip()]
