import threading


class BackendLimiter:
    """Counting semaphore bounding simultaneous calls to one backend.

    Use as a context manager around the backend call; the slot is released
    on every exit path, so a failing backend cannot leak capacity.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"limiter capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._slots = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0

    def __enter__(self) -> "BackendLimiter":
        self._slots.acquire()
        with self._lock:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        with self._lock:
            self._in_flight -= 1
        self._slots.release()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak
