"""A timer that calls a handler repeatedly at a fixed interval."""

from __future__ import annotations

import threading
from typing import Callable, Optional


class PeriodicTimer:
    """Calls ``handler(timer_id)`` every ``interval`` seconds until stopped."""

    def __init__(self, timer_id: int, handler: Callable[[int], None], interval: float) -> None:
        self.timer_id = timer_id
        self.interval = interval
        self._handler = handler
        self._cancel: Optional[threading.Event] = None
        self._mutex = threading.Lock()

    def start(self) -> bool:
        """Start the timer; returns False if it is already running."""
        with self._mutex:
            if self._cancel is not None:
                return False
            cancel = threading.Event()
            self._cancel = cancel

        def run() -> None:
            while not cancel.wait(self.interval):
                self._handler(self.timer_id)

        threading.Thread(target=run, daemon=True).start()
        return True

    def stop(self) -> None:
        """Stop the timer; safe to call from inside the handler."""
        with self._mutex:
            if self._cancel is not None:
                self._cancel.set()
                self._cancel = None

    def is_running(self) -> bool:
        """True between start() and stop()."""
        with self._mutex:
            return self._cancel is not None