"""
Publish/Subscribe Event Streams.

Multi-subscriber, append-only broadcast of engine outputs. Delivery
never blocks the publisher: each subscriber owns a bounded queue and,
when it is full, the oldest queued event is dropped (drop-oldest) and
counted under the 'subscriber_overflow' reason code.

Once a stream is closed, publish() delivers nothing.
"""

import logging
import threading
from collections import deque
from typing import Deque, Generic, Iterator, List, Optional, TypeVar

from ace_core.metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Subscription(Generic[T]):
    """
    One subscriber's bounded view of a stream.

    Usage:
        sub = engine.insights.subscribe(maxlen=64)
        insight = sub.get(timeout=1.0)   # None on timeout or close
        pending = sub.drain()
        sub.close()
    """

    def __init__(self, stream: 'EventStream[T]', maxlen: int):
        if maxlen <= 0:
            raise ValueError(f"Subscriber queue length must be positive: {maxlen}")

        self._stream = stream
        self._queue: Deque[T] = deque(maxlen=maxlen)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    @property
    def maxlen(self) -> int:
        return self._queue.maxlen

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: T) -> bool:
        """
        Enqueue an event without blocking.

        Returns:
            True if an older event was evicted to make room
        """
        with self._cond:
            if self._closed:
                return False
            overflow = len(self._queue) == self._queue.maxlen
            if overflow:
                self.dropped += 1
            self._queue.append(event)
            self._cond.notify()
            return overflow

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Wait for the next event.

        Args:
            timeout: Seconds to wait (None waits until an event or close)

        Returns:
            The event, or None on timeout or once closed and empty
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._queue or self._closed, timeout=timeout):
                return None
            if self._queue:
                return self._queue.popleft()
            return None

    def drain(self) -> List[T]:
        """Remove and return every queued event."""
        with self._cond:
            events = list(self._queue)
            self._queue.clear()
            return events

    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def close(self):
        """Unsubscribe; wakes any waiting get()."""
        self._stream.unsubscribe(self)
        self._mark_closed()

    def _mark_closed(self):
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        """Yield events until the subscription is closed."""
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class EventStream(Generic[T]):
    """
    Broadcast channel with independent bounded subscriber queues.

    Usage:
        stream = EventStream('insights', default_maxlen=256)
        sub = stream.subscribe()
        stream.publish(insight)
    """

    def __init__(
        self,
        name: str,
        default_maxlen: int = 256,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.name = name
        self.default_maxlen = default_maxlen
        self.metrics = metrics or MetricsCollector()
        self._lock = threading.Lock()
        self._subscribers: List[Subscription[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, maxlen: Optional[int] = None) -> Subscription[T]:
        """
        Register a new subscriber.

        Args:
            maxlen: Queue length (defaults to the stream default)

        Returns:
            Subscription (already closed if the stream is closed)
        """
        subscription = Subscription(self, maxlen or self.default_maxlen)
        with self._lock:
            if self._closed:
                subscription._mark_closed()
            else:
                self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription[T]):
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, event: T) -> int:
        """
        Deliver an event to every subscriber.

        Returns:
            Number of subscribers the event was delivered to
        """
        with self._lock:
            if self._closed:
                return 0
            # Delivery under the stream lock so close() fences publishes
            delivered = 0
            for subscription in self._subscribers:
                if subscription._deliver(event):
                    self.metrics.increment_drop('subscriber_overflow')
                delivered += 1

        self.metrics.increment('events_published')
        return delivered

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self):
        """Close the stream and every subscription."""
        with self._lock:
            self._closed = True
            subscribers = list(self._subscribers)
            self._subscribers.clear()

        for subscription in subscribers:
            subscription._mark_closed()

        logger.debug(f"Event stream '{self.name}' closed ({len(subscribers)} subscribers)")
