"""
Rate-limited, single-flight analysis scheduling.
"""

import pytest

from driftguard.analysis.runner import InlineRunner
from driftguard.analysis.scheduler import AnalysisScheduler, Trigger
from driftguard.reasoning.base import AnalysisRequest, ReasoningError

from conftest import FakeBackend, drift, match


def _request(trigger):
    return AnalysisRequest(frame=b"jpeg", reference=None, instruction="check")


class TestGating:
    def setup_method(self):
        self.results = []
        self.errors = []

    def _make(self, backend, runner, clock, build=_request, **kw):
        return AnalysisScheduler(
            backend, runner, build, min_interval_s=3.0, clock=clock,
            on_result=lambda v, t: self.results.append((v, t)),
            on_error=lambda e, t: self.errors.append((e, t)), **kw)

    def test_single_flight_drops_triggers_while_in_flight(self, runner, clock):
        backend = FakeBackend()
        s = self._make(backend, runner, clock)
        for _ in range(5):
            s.request_analysis(Trigger.MANUAL)
            clock.advance(10)  # past the rate limit, so only in-flight gating applies
        assert len(runner.pending) == 1
        assert s.in_flight
        runner.complete()
        assert not s.in_flight
        assert len(self.results) == 1

    def test_rate_limit_counts_from_last_started_call(self, runner, clock):
        s = self._make(FakeBackend(), runner, clock)
        s.request_analysis()
        runner.complete()
        clock.advance(2.9)
        s.request_analysis()
        assert runner.pending == []
        clock.advance(0.2)
        s.request_analysis()
        assert len(runner.pending) == 1
        assert s.calls_started == 2

    def test_failure_clears_flag_and_reports(self, runner, clock):
        s = self._make(FakeBackend([ReasoningError("timeout")]), runner, clock)
        s.request_analysis(Trigger.VOICE)
        runner.complete()
        assert not s.in_flight
        assert self.results == []
        assert isinstance(self.errors[0][0], ReasoningError)
        assert self.errors[0][1] is Trigger.VOICE

    def test_suspended_scheduler_makes_no_calls(self, runner, clock):
        s = self._make(FakeBackend(), runner, clock)
        s.suspend()
        s.request_analysis()
        assert runner.pending == [] and s.calls_started == 0
        s.resume()
        s.request_analysis()
        assert len(runner.pending) == 1

    def test_nothing_to_send_is_not_counted(self, runner, clock):
        s = self._make(FakeBackend(), runner, clock, build=lambda t: None)
        s.request_analysis()
        assert runner.pending == []
        assert s.last_call_ts is None and not s.in_flight

    def test_stale_result_is_discarded_after_invalidate(self, runner, clock):
        s = self._make(FakeBackend([drift()]), runner, clock)
        s.request_analysis()
        s.invalidate()
        runner.complete()
        assert self.results == [] and self.errors == []
        assert not s.in_flight

    def test_inline_runner_completes_synchronously(self, clock):
        s = self._make(FakeBackend([match()]), InlineRunner(), clock)
        s.request_analysis()
        assert not s.in_flight
        assert self.results[0][0].message == "ok"

    def test_callback_error_propagates_and_flag_stays_clear(self, clock):
        def boom(v, t):
            raise KeyError("ui bug")
        s = AnalysisScheduler(FakeBackend(), InlineRunner(), _request, clock=clock, on_result=boom)
        with pytest.raises(KeyError):
            s.request_analysis()
        assert not s.in_flight

    def test_refusing_runner_counts_as_failed_call(self, clock):
        class Refuses:
            def run(self, job, done):
                raise RuntimeError("pool closed")
        s = self._make(FakeBackend(), Refuses(), clock)
        s.request_analysis()
        assert not s.in_flight
        assert len(self.errors) == 1


class TestPeriodic:
    def test_ticks_request_periodic_analysis(self, runner, clock, tickers):
        backend = FakeBackend()
        s = AnalysisScheduler(backend, runner, _request, clock=clock, ticker_factory=tickers)
        s.start_periodic(3000)
        assert s.periodic_active and tickers.tickers[0].interval_ms == 3000
        tickers.tickers[0].fire()
        assert len(runner.pending) == 1

    def test_stop_periodic_stops_ticks_but_not_in_flight_call(self, runner, clock, tickers):
        results = []
        s = AnalysisScheduler(FakeBackend(), runner, _request, clock=clock, ticker_factory=tickers,
                              on_result=lambda v, t: results.append(t))
        s.start_periodic(3000)
        tickers.tickers[0].fire()
        s.stop_periodic()
        clock.advance(10)
        tickers.tickers[0].fire()  # inactive: no effect
        runner.complete()
        assert results == [Trigger.PERIODIC]
        assert not s.periodic_active
