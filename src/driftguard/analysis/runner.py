# src/driftguard/analysis/runner.py
from typing import Any, Callable, Optional

Job = Callable[[], Any]
DoneCallback = Callable[[Optional[Any], Optional[BaseException]], None]


class CallRunner:
    """Executes a reasoning call and reports back on the owner's event loop."""

    def run(self, job: Job, done: DoneCallback) -> None:
        raise NotImplementedError


class InlineRunner(CallRunner):
    # Runs the job in place; used by scripts and headless sessions
    def run(self, job: Job, done: DoneCallback) -> None:
        try:
            result = job()
        except Exception as exc:
            done(None, exc)
            return
        done(result, None)
