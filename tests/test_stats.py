"""Tests for stats.py: lookup statistics tracking."""

import threading

from canid.stats import Stats


class TestCounters:
    def test_prefix_counting(self):
        stats = Stats()
        stats.record_prefix_hit()
        stats.record_prefix_hit()
        stats.record_prefix_miss()
        stats.record_prefix_miss(error=True)
        stats.record_prefix_eviction()
        assert stats.prefix_hits == 2
        assert stats.prefix_misses == 2
        assert stats.backend_errors == 1
        assert stats.prefix_evictions == 1

    def test_address_counting(self):
        stats = Stats()
        stats.record_address_hit()
        stats.record_address_miss()
        stats.record_address_miss(failed=True)
        stats.record_address_eviction()
        assert stats.address_hits == 1
        assert stats.address_misses == 2
        assert stats.resolution_failures == 1
        assert stats.address_evictions == 1


class TestToDict:
    def test_empty_rates(self):
        data = Stats().to_dict()
        assert data["prefix_hit_rate"] == 0.0
        assert data["address_hit_rate"] == 0.0

    def test_hit_rates(self):
        stats = Stats()
        for _ in range(3):
            stats.record_prefix_hit()
        stats.record_prefix_miss()
        stats.record_address_miss()
        data = stats.to_dict()
        assert data["prefix_hit_rate"] == 75.0
        assert data["address_hit_rate"] == 0.0
        assert data["prefix_hits"] == 3
        assert data["address_misses"] == 1


class TestThreadSafety:
    def test_concurrent_updates(self):
        stats = Stats()

        def worker():
            for _ in range(1000):
                stats.record_prefix_hit()
                stats.record_address_miss()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert stats.prefix_hits == 4000
        assert stats.address_misses == 4000
