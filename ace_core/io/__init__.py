"""
I/O Module: Rolling history and event delivery.

- Bounded history ring (no unbounded RAM growth)
- Copy-on-read snapshots for concurrent readers
- Non-blocking multi-subscriber streams with drop-oldest backpressure
"""

from .history_buffer import HistoryBuffer
from .event_stream import EventStream, Subscription

__all__ = [
    'HistoryBuffer',
    'EventStream',
    'Subscription',
]
