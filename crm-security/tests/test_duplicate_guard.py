"""
Tests for the duplicate request guard.
"""

import hashlib
import threading

from crm_security.duplicate_guard import DuplicateRequestGuard, body_digest, request_signature

from conftest import TickClock


class TestSignature:
    """Tests for request fingerprints."""

    def test_signature_format(self):
        expected = hashlib.sha256(
            ("1.2.3.4-curl/8-" + hashlib.sha256(b'{"a":1}').hexdigest()[:16]).encode()
        ).hexdigest()

        assert request_signature("1.2.3.4", "curl/8", b'{"a":1}') == expected

    def test_body_changes_signature(self):
        assert request_signature("ip", "ua", b"a") != request_signature("ip", "ua", b"b")

    def test_str_and_bytes_bodies_agree(self):
        assert body_digest("abc") == body_digest(b"abc")
        assert body_digest(None) == body_digest(b"")


class TestGuard:
    """Tests for check_and_record."""

    def test_duplicate_within_window(self):
        clock = TickClock()
        guard = DuplicateRequestGuard(window=2.0, enabled=True, clock=clock)

        assert guard.check_and_record("sig") is False
        clock.advance(0.5)
        assert guard.check_and_record("sig") is True

    def test_allowed_after_window(self):
        clock = TickClock()
        guard = DuplicateRequestGuard(window=2.0, enabled=True, clock=clock)

        guard.check_and_record("sig")
        clock.advance(2.0)

        assert guard.check_and_record("sig") is False

    def test_duplicate_does_not_refresh(self):
        """Repeated duplicates do not extend the window."""
        clock = TickClock()
        guard = DuplicateRequestGuard(window=2.0, enabled=True, clock=clock)

        guard.check_and_record("sig")
        clock.advance(1.5)
        assert guard.check_and_record("sig") is True
        clock.advance(0.6)
        assert guard.check_and_record("sig") is False

    def test_distinct_signatures_independent(self):
        guard = DuplicateRequestGuard(enabled=True, clock=TickClock())

        assert guard.check_and_record("a") is False
        assert guard.check_and_record("b") is False

    def test_disabled_guard(self):
        guard = DuplicateRequestGuard(enabled=False, clock=TickClock())

        assert guard.check_and_record("sig") is False
        assert guard.check_and_record("sig") is False
        assert guard.size == 0

    def test_sweep_over_cap(self):
        """Exceeding the cap sweeps entries older than the horizon."""
        clock = TickClock()
        guard = DuplicateRequestGuard(window=2.0, max_entries=3, sweep_horizon=60.0, enabled=True, clock=clock)

        guard.check_and_record("old-1")
        guard.check_and_record("old-2")
        clock.advance(61)
        guard.check_and_record("new-1")
        assert guard.size == 3

        guard.check_and_record("new-2")

        assert guard.size == 2
        assert guard.check_and_record("new-1") is True

    def test_sweep_keeps_refreshed_signature(self):
        """A signature seen again after its window is swept by its newest time."""
        clock = TickClock()
        guard = DuplicateRequestGuard(window=2.0, max_entries=1, sweep_horizon=60.0, enabled=True, clock=clock)

        guard.check_and_record("a")
        guard.check_and_record("b")
        clock.advance(61)
        guard.check_and_record("a")

        assert guard.size == 1
        assert guard.check_and_record("a") is True

    def test_sweep_stops_at_fresh_entries(self):
        """Sweeping a map of fresh entries removes nothing."""
        clock = TickClock()
        guard = DuplicateRequestGuard(window=2.0, max_entries=2, sweep_horizon=60.0, enabled=True, clock=clock)

        for n in range(5):
            guard.check_and_record(f"sig-{n}")
            clock.advance(1)

        assert guard.size == 5

    def test_thread_safety(self):
        """Exactly one of many concurrent identical requests is accepted."""
        guard = DuplicateRequestGuard(window=60.0, enabled=True)
        results = []
        barrier = threading.Barrier(16)

        def worker():
            barrier.wait()
            results.append(guard.check_and_record("same"))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(False) == 1
