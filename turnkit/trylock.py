"""A non-blocking lock that fails instead of waiting."""

from __future__ import annotations

import threading

from turnkit.errors import DoubleLockError


class TryLock:
    """Lock that raises DoubleLockError when already held."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held = False

    def lock(self) -> None:
        """Take the lock or raise DoubleLockError at once."""
        with self._guard:
            if self._held:
                raise DoubleLockError()
            self._held = True

    def unlock(self) -> None:
        """Release the lock; releasing a free lock does nothing."""
        with self._guard:
            self._held = False

    def locked(self) -> bool:
        """True while the lock is held."""
        with self._guard:
            return self._held

    def __enter__(self) -> "TryLock":
        self.lock()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unlock()