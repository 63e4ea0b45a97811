# src/driftguard/analysis/ticker.py
from typing import Callable, Optional


class Ticker:
    """Recurring timer that calls ``callback`` every ``interval_ms`` while active."""

    def __init__(self, callback: Callable[[], None]):
        self.callback = callback

    def start(self, interval_ms: int) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    @property
    def active(self) -> bool:
        raise NotImplementedError


class ManualTicker(Ticker):
    # Headless ticker: the owner calls fire() to simulate a timeout
    def __init__(self, callback: Callable[[], None]):
        super().__init__(callback)
        self.interval_ms: Optional[int] = None
        self._active = False

    def start(self, interval_ms: int) -> None:
        self.interval_ms = int(interval_ms)
        self._active = True

    def stop(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def fire(self) -> None:
        if self._active:
            self.callback()


TickerFactory = Callable[[Callable[[], None]], Ticker]
