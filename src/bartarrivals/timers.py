"""Cancellable timers used by the refresh scheduler."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag shared between an owner and its callbacks; once cancelled, stays cancelled."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class PeriodicTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "periodic-timer"):
        self.interval = interval
        self.callback = callback
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._name = name

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"{self._name} callback failed: {e}", exc_info=True)

    def cancel(self) -> None:
        self._stop.set()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()


class OneShotTimer:
    """Calls ``callback`` once after ``delay`` seconds unless cancelled first."""

    def __init__(self, delay: float, callback: Callable[[], None], name: str = "oneshot-timer"):
        self._timer = threading.Timer(max(0.0, delay), callback)
        self._timer.name = name
        self._timer.daemon = True

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._timer.cancel()
