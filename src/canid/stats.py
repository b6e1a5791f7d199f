import threading


class Stats:
    """Thread-safe lookup statistics tracker."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.prefix_hits = 0
        self.prefix_misses = 0
        self.prefix_evictions = 0
        self.backend_errors = 0
        self.address_hits = 0
        self.address_misses = 0
        self.address_evictions = 0
        self.resolution_failures = 0

    def record_prefix_hit(self) -> None:
        with self._lock:
            self.prefix_hits += 1

    def record_prefix_miss(self, error: bool = False) -> None:
        with self._lock:
            self.prefix_misses += 1
            if error:
                self.backend_errors += 1

    def record_prefix_eviction(self) -> None:
        with self._lock:
            self.prefix_evictions += 1

    def record_address_hit(self) -> None:
        with self._lock:
            self.address_hits += 1

    def record_address_miss(self, failed: bool = False) -> None:
        with self._lock:
            self.address_misses += 1
            if failed:
                self.resolution_failures += 1

    def record_address_eviction(self) -> None:
        with self._lock:
            self.address_evictions += 1

    def to_dict(self) -> dict:
        with self._lock:
            prefix_total = max(self.prefix_hits + self.prefix_misses, 1)
            address_total = max(self.address_hits + self.address_misses, 1)
            return {
                "prefix_hits": self.prefix_hits,
                "prefix_misses": self.prefix_misses,
                "prefix_hit_rate": round((self.prefix_hits / prefix_total) * 100, 1),
                "prefix_evictions": self.prefix_evictions,
                "backend_errors": self.backend_errors,
                "address_hits": self.address_hits,
                "address_misses": self.address_misses,
                "address_hit_rate": round((self.address_hits / address_total) * 100, 1),
                "address_evictions": self.address_evictions,
                "resolution_failures": self.resolution_failures,
            }
