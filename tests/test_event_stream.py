"""
Unit tests for publish/subscribe event streams.

Tests cover:
- Fan-out to multiple subscribers
- Drop-oldest overflow policy and its reason code
- Blocking get with timeout
- Close semantics (no delivery after close, waiters woken)
"""

import threading
import time

import pytest

from ace_core.io import EventStream


class TestDelivery:
    """Tests for event delivery."""

    def test_every_subscriber_receives(self, metrics):
        """Test each subscriber gets its own copy of every event."""
        stream = EventStream('test', metrics=metrics)
        first = stream.subscribe()
        second = stream.subscribe()

        assert stream.publish('a') == 2
        assert stream.publish('b') == 2

        assert first.drain() == ['a', 'b']
        assert second.drain() == ['a', 'b']
        assert metrics.get_counter('events_published') == 2

    def test_publish_without_subscribers(self, metrics):
        """Test publishing with no subscribers delivers nothing."""
        stream = EventStream('test', metrics=metrics)
        assert stream.publish('a') == 0

    def test_unsubscribe(self):
        """Test a closed subscription stops receiving."""
        stream = EventStream('test')
        sub = stream.subscribe()

        sub.close()
        stream.publish('a')

        assert sub.closed
        assert sub.pending() == 0
        assert stream.subscriber_count() == 0

    def test_invalid_maxlen(self):
        """Test non-positive queue length raises."""
        stream = EventStream('test')
        with pytest.raises(ValueError):
            stream.subscribe(maxlen=-1)


class TestOverflow:
    """Tests for the drop-oldest policy."""

    def test_oldest_event_dropped(self, metrics):
        """Test a full queue evicts the oldest event and counts it."""
        stream = EventStream('test', metrics=metrics)
        sub = stream.subscribe(maxlen=2)

        for event in (1, 2, 3, 4):
            stream.publish(event)

        assert sub.drain() == [3, 4]
        assert sub.dropped == 2
        assert metrics.get_drop_count('subscriber_overflow') == 2

    def test_slow_subscriber_does_not_affect_others(self, metrics):
        """Test one full queue leaves other subscribers intact."""
        stream = EventStream('test', metrics=metrics)
        slow = stream.subscribe(maxlen=1)
        fast = stream.subscribe(maxlen=10)

        for event in range(5):
            stream.publish(event)

        assert slow.drain() == [4]
        assert fast.drain() == [0, 1, 2, 3, 4]


class TestBlockingGet:
    """Tests for get() waiting semantics."""

    def test_get_timeout_returns_none(self):
        """Test get returns None when nothing arrives."""
        sub = EventStream('test').subscribe()

        start = time.time()
        assert sub.get(timeout=0.05) is None
        assert time.time() - start >= 0.04

    def test_get_wakes_on_publish(self):
        """Test a waiting get receives an event published from another thread."""
        stream = EventStream('test')
        sub = stream.subscribe()

        timer = threading.Timer(0.05, stream.publish, args=('hello',))
        timer.start()
        try:
            assert sub.get(timeout=2.0) == 'hello'
        finally:
            timer.cancel()

    def test_iteration_ends_on_close(self):
        """Test iterating a subscription stops once the stream closes."""
        stream = EventStream('test')
        sub = stream.subscribe()
        stream.publish(1)
        stream.publish(2)

        threading.Timer(0.05, stream.close).start()

        assert list(sub) == [1, 2]


class TestClose:
    """Tests for stream close."""

    def test_publish_after_close_delivers_nothing(self, metrics):
        """Test no event is delivered once the stream is closed."""
        stream = EventStream('test', metrics=metrics)
        sub = stream.subscribe()

        stream.close()

        assert stream.publish('late') == 0
        assert sub.drain() == []
        assert sub.closed

    def test_subscribe_after_close(self):
        """Test subscribing to a closed stream yields a closed subscription."""
        stream = EventStream('test')
        stream.close()

        sub = stream.subscribe()

        assert sub.closed
        assert sub.get(timeout=0.01) is None

    def test_close_wakes_waiter(self):
        """Test close unblocks a get() without timeout."""
        stream = EventStream('test')
        sub = stream.subscribe()
        results = []

        waiter = threading.Thread(target=lambda: results.append(sub.get()))
        waiter.start()
        time.sleep(0.05)
        stream.close()
        waiter.join(timeout=2.0)

        assert not waiter.is_alive()
        assert results == [None]
