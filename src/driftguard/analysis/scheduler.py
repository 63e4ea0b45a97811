# src/driftguard/analysis/scheduler.py
from __future__ import annotations
import logging
import time
from enum import Enum
from typing import Callable, Optional

from ..reasoning.base import AnalysisRequest, ReasoningBackend, Verdict
from .runner import CallRunner
from .ticker import Ticker, TickerFactory

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    PERIODIC = "periodic"
    VOICE = "voice"
    GESTURE = "gesture"
    MANUAL = "manual"
    STEP_CONFIRMATION = "step-confirmation"


class AnalysisScheduler:
    """
    Gates calls into the reasoning backend.

    Rules, checked in order on every request:
      suspended → drop; call in flight → drop; less than ``min_interval_s``
      since the last *started* call → drop; no request could be built
      (no frame, no reference) → drop without counting as started.

    Dropped requests are never queued. Completion always clears the in-flight
    flag before anything else runs; results from a superseded generation
    (see ``invalidate``) are discarded.
    """

    def __init__(
        self,
        backend: ReasoningBackend,
        runner: CallRunner,
        build_request: Callable[[Trigger], Optional[AnalysisRequest]],
        min_interval_s: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        on_result: Optional[Callable[[Verdict, Trigger], None]] = None,
        on_error: Optional[Callable[[BaseException, Trigger], None]] = None,
        ticker_factory: Optional[TickerFactory] = None,
    ) -> None:
        self.backend = backend
        self.runner = runner
        self.build_request = build_request
        self.min_interval_s = float(min_interval_s)
        self.clock = clock
        self.on_result = on_result
        self.on_error = on_error
        self.in_flight = False
        self.suspended = False
        self.last_call_ts: Optional[float] = None
        self.generation = 0
        self.calls_started = 0
        self._ticker: Optional[Ticker] = ticker_factory(self._on_tick) if ticker_factory else None

    # ---------- gating ----------
    def _blocked_reason(self) -> Optional[str]:
        if self.suspended:
            return "suspended"
        if self.in_flight:
            return "in flight"
        if self.last_call_ts is not None and (self.clock() - self.last_call_ts) < self.min_interval_s:
            return "rate limited"
        return None

    def request_analysis(self, trigger: Trigger = Trigger.MANUAL) -> None:
        reason = self._blocked_reason()
        if reason:
            logger.debug("Dropped %s analysis request (%s)", trigger.value, reason)
            return
        request = self.build_request(trigger)
        if request is None:
            logger.debug("Skipped %s analysis: nothing to send", trigger.value)
            return

        self.in_flight = True
        self.last_call_ts = self.clock()
        self.calls_started += 1
        generation = self.generation
        logger.info("Analysis started (%s, call #%d)", trigger.value, self.calls_started)
        finished = []

        def _done(verdict: Optional[Verdict], error: Optional[BaseException]) -> None:
            finished.append(True)
            self._complete(generation, trigger, verdict, error)

        try:
            self.runner.run(lambda: self.backend.analyze(request), _done)
        except Exception as exc:
            if finished:
                raise
            # runner refused the job (e.g. pool shut down): treat as a failed call
            self._complete(generation, trigger, None, exc)

    def _complete(self, generation: int, trigger: Trigger,
                  verdict: Optional[Verdict], error: Optional[BaseException]) -> None:
        self.in_flight = False
        if generation != self.generation:
            logger.info("Discarded %s result from a superseded session", trigger.value)
            return
        if error is not None or verdict is None:
            logger.warning("Analysis failed (%s): %s", trigger.value, error)
            if self.on_error:
                self.on_error(error or RuntimeError("empty verdict"), trigger)
            return
        if self.on_result:
            self.on_result(verdict, trigger)

    # ---------- lifecycle ----------
    def suspend(self) -> None:
        self.suspended = True

    def resume(self) -> None:
        self.suspended = False

    def invalidate(self) -> None:
        # In-flight calls keep running; their results will be ignored
        self.generation += 1

    def start_periodic(self, interval_ms: int) -> None:
        if self._ticker is not None:
            self._ticker.start(interval_ms)

    def stop_periodic(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()

    @property
    def periodic_active(self) -> bool:
        return bool(self._ticker and self._ticker.active)

    def _on_tick(self) -> None:
        self.request_analysis(Trigger.PERIODIC)
