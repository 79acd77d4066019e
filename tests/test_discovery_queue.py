"""Tests for exploration/queue.py - dedup, FIFO order, retries and parking."""

import pytest

from remote_explorer.exploration.models import Session
from remote_explorer.exploration.queue import DiscoveryQueue


@pytest.fixture
def session():
    return Session(name="test")


@pytest.fixture
def queue(session):
    return DiscoveryQueue(session)


class TestEnqueue:
    def test_placeholder_carries_provenance(self, queue, session):
        assert queue.enqueue("/etc/app.conf", "/etc/profile", "extracted")
        record = session.results["/etc/app.conf"]
        assert record.placeholder
        assert record.discovered_from == "/etc/profile"
        assert record.discovery_method == "extracted"
        assert session.total == 1

    def test_never_twice(self, queue, session):
        assert queue.enqueue("/etc/a.conf")
        for _ in range(5):
            assert not queue.enqueue("/etc/a.conf", "/etc/other")
        assert list(session.queue) == ["/etc/a.conf"]
        assert session.results["/etc/a.conf"].discovered_from is None

    def test_in_flight_and_scanned_are_known(self, queue):
        queue.enqueue("/etc/a.conf")
        queue.pop_batch(1)
        assert not queue.enqueue("/etc/a.conf")
        queue.mark_scanned("/etc/a.conf")
        assert not queue.enqueue("/etc/a.conf")


class TestBatches:
    def test_fifo(self, queue):
        for name in ("a", "b", "c"):
            queue.enqueue(f"/etc/{name}.conf")
        assert queue.pop_batch(2) == ["/etc/a.conf", "/etc/b.conf"]
        assert queue.pop_batch(5) == ["/etc/c.conf"]
        assert not queue

    def test_release_in_flight_goes_to_front(self, queue, session):
        for name in ("a", "b", "c"):
            queue.enqueue(f"/etc/{name}.conf")
        queue.pop_batch(2)
        queue.release_in_flight()
        assert list(session.queue) == ["/etc/a.conf", "/etc/b.conf", "/etc/c.conf"]


class TestRetries:
    def test_retry_until_exhausted_then_park(self, queue, session):
        queue.enqueue("/etc/a.conf")
        queue.pop_batch(1)
        assert queue.retry("/etc/a.conf", max_retries=1)
        assert list(session.queue) == ["/etc/a.conf"]

        queue.pop_batch(1)
        assert not queue.retry("/etc/a.conf", max_retries=1)
        assert session.retry_pending == ["/etc/a.conf"]
        assert not queue
        assert "/etc/a.conf" not in session.scanned
        assert queue.is_known("/etc/a.conf")

    def test_requeue_parked_goes_to_front(self, queue, session):
        queue.enqueue("/etc/a.conf")
        queue.enqueue("/etc/b.conf")
        queue.pop_batch(1)
        queue.park("/etc/a.conf")
        assert queue.requeue_parked() == 1
        assert list(session.queue) == ["/etc/a.conf", "/etc/b.conf"]
        assert session.retry_pending == []
        assert session.retry_counts == {}

    def test_success_clears_retry_count(self, queue, session):
        queue.enqueue("/etc/a.conf")
        queue.pop_batch(1)
        queue.retry("/etc/a.conf", max_retries=2)
        queue.pop_batch(1)
        queue.mark_scanned("/etc/a.conf")
        assert session.retry_counts == {}
        assert session.scanned == {"/etc/a.conf"}


def test_rebuilds_from_restored_session():
    session = Session()
    session.queue.extend(["/etc/a.conf", "/etc/b.conf"])
    queue = DiscoveryQueue(session)
    assert len(queue) == 2
    assert not queue.enqueue("/etc/b.conf")
