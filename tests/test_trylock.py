import threading
import time

import pytest

from turnkit.errors import DoubleLockError
from turnkit.trylock import TryLock


def test_success_case():
    lock = TryLock()
    lock.lock()
    assert lock.locked()
    lock.unlock()
    assert not lock.locked()


def test_double_lock_raises():
    lock = TryLock()
    lock.lock()
    with pytest.raises(DoubleLockError):
        lock.lock()
    lock.unlock()
    assert not lock.locked()


def test_failure_case_concurrent():
    lock = TryLock()
    errors = [None, None]

    def work(index):
        try:
            with lock:
                time.sleep(0.05)
        except DoubleLockError as exc:
            errors[index] = exc

    threads = [threading.Thread(target=work, args=(i,)) for i in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    failed = [e for e in errors if e is not None]
    assert len(failed) == 1
    assert isinstance(failed[0], DoubleLockError)
    assert not lock.locked()


def test_context_manager_releases_on_error():
    lock = TryLock()
    with pytest.raises(ValueError):
        with lock:
            raise ValueError("boom")
    assert not lock.locked()