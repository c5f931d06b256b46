"""
Readers-writer lock for state shared across request workers.

Many concurrent readers or one writer. Writers are preferred: once a writer
is waiting, new readers block, so a refresh is never starved by a steady
stream of chat turns.
"""

import threading
from contextlib import contextmanager


class ReadWriteLock:
    """
    Writer-preferring readers-writer lock.

    Example:
        lock = ReadWriteLock()
        with lock.read_lock():
            provider = state.current_provider
        with lock.write_lock():
            state.current_provider = Provider.HOSTED
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer_active = True

    def release_write(self) -> None:
        with self._cond:
            self._writer_active = False
            self._cond.notify_all()

    @contextmanager
    def read_lock(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_lock(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
