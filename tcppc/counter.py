"""Thread-safe counter of live sessions."""

import threading
from contextlib import contextmanager


class SessionCounter:
    """Counts the sessions currently being handled."""

    def __init__(self):
        self._count = 0
        self._lock = threading.Lock()

    def inc(self):
        with self._lock:
            self._count += 1

    def dec(self):
        with self._lock:
            if self._count == 0:
                raise ValueError("session counter is already zero")
            self._count -= 1

    def count(self):
        with self._lock:
            return self._count

    @contextmanager
    def track(self):
        """Count a session for the duration of a ``with`` block."""
        self.inc()
        try:
            yield self
        finally:
            self.dec()


counter = SessionCounter()