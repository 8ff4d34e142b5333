"""Thread-safe exception counter shared by every write() call."""

import threading


class ExceptionCounter:
    """Monotonic counter of handled errors.

    The host may call write() from several worker threads, so increments
    go through a lock.
    """

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        """Add one and return the new total."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value
