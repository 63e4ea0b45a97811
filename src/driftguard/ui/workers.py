# src/driftguard/ui/workers.py
from typing import Any, Callable, Optional  # type hints
from PySide6 import QtCore  # threads, timers, signals

from ..analysis.runner import CallRunner, DoneCallback, Job
from ..analysis.ticker import Ticker


class _Relay(QtCore.QObject):
    # Lives on the GUI thread; queued delivery brings results back onto it
    finished = QtCore.Signal(object, object, object)  # done, result, error

    def __init__(self):
        super().__init__()
        self.finished.connect(self._deliver, QtCore.Qt.ConnectionType.QueuedConnection)

    @QtCore.Slot(object, object, object)
    def _deliver(self, done: DoneCallback, result: Any, error: Any):
        done(result, error)


class _CallTask(QtCore.QRunnable):
    def __init__(self, job: Job, done: DoneCallback, relay: _Relay):
        super().__init__()
        self._job, self._done, self._relay = job, done, relay
        self.setAutoDelete(True)

    def run(self):
        try:
            result = self._job()  # blocking network call off the GUI thread
        except Exception as exc:
            self._relay.finished.emit(self._done, None, exc)
            return
        self._relay.finished.emit(self._done, result, None)


class QtCallRunner(CallRunner):
    """Runs reasoning calls on a QThreadPool; ``done`` always fires on the GUI thread."""

    def __init__(self, pool: Optional[QtCore.QThreadPool] = None):
        self.pool = pool or QtCore.QThreadPool.globalInstance()
        self._relay = _Relay()

    def run(self, job: Job, done: DoneCallback) -> None:
        self.pool.start(_CallTask(job, done, self._relay))

    def wait(self, msecs: int = 5000) -> bool:
        return self.pool.waitForDone(msecs)  # used on shutdown so no task outlives the window


class QtTicker(Ticker):
    # QTimer-backed ticker; timeouts arrive on the owner's event loop
    def __init__(self, callback: Callable[[], None]):
        super().__init__(callback)
        self._timer = QtCore.QTimer()
        self._timer.timeout.connect(self.callback)

    def start(self, interval_ms: int) -> None:
        self._timer.start(int(interval_ms))

    def stop(self) -> None:
        self._timer.stop()

    @property
    def active(self) -> bool:
        return self._timer.isActive()
