import threading
import time

import pytest

from canid.limiter import BackendLimiter
from canid.rwlock import RWLock


class TestBackendLimiter:
    def test_counts_in_flight(self):
        limiter = BackendLimiter(3)
        with limiter:
            assert limiter.in_flight == 1
            with limiter:
                assert limiter.in_flight == 2
        assert limiter.in_flight == 0
        assert limiter.peak == 2

    def test_released_on_exception(self):
        limiter = BackendLimiter(1)
        with pytest.raises(RuntimeError):
            with limiter:
                raise RuntimeError("backend blew up")
        assert limiter.in_flight == 0
        # would block forever if the slot leaked
        with limiter:
            pass

    def test_blocks_when_full(self):
        limiter = BackendLimiter(1)
        entered = threading.Event()

        def second():
            with limiter:
                entered.set()

        with limiter:
            t = threading.Thread(target=second)
            t.start()
            assert not entered.wait(0.2)
        assert entered.wait(5)
        t.join(5)

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            BackendLimiter(0)


class TestRWLock:
    def test_readers_share(self):
        lock = RWLock()
        inside = threading.Barrier(3, timeout=5)

        def reader():
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)
        assert not inside.broken

    def test_writer_excludes_readers(self):
        lock = RWLock()
        events = []

        def reader():
            with lock.read():
                events.append("read")

        with lock.write():
            t = threading.Thread(target=reader)
            t.start()
            time.sleep(0.1)
            events.append("write-done")
        t.join(5)
        assert events == ["write-done", "read"]

    def test_writer_waits_for_readers(self):
        lock = RWLock()
        events = []

        def writer():
            with lock.write():
                events.append("write")

        with lock.read():
            t = threading.Thread(target=writer)
            t.start()
            time.sleep(0.1)
            events.append("read-done")
        t.join(5)
        assert events == ["read-done", "write"]

    def test_released_on_exception(self):
        lock = RWLock()
        with pytest.raises(KeyError):
            with lock.write():
                raise KeyError("x")
        with lock.read():
            pass
        with lock.write():
            pass
