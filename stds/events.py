"""
Engine Events
=============
Bounded, non-blocking delivery of engine events to subscribers.

Event types:
- NODE_CREATED:       {id, symbol, path, weight, synthesis, stats}
- DECISION_TRIGGERED: {decision, data: {open, high, low, close, volume}, timestamp}

Publishing never blocks the producer. When the channel is full the oldest
queued event is dropped and counted. Subscribers run on a single
dispatcher thread, in publish order.

Usage:
    channel = NotificationChannel(maxsize=10000)
    channel.subscribe(lambda event: print(event.type, event.payload))
    channel.start()
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from queue import Queue, Empty, Full
from typing import Any, Callable, Dict, List, Optional

from .monitoring.metrics import metrics

logger = logging.getLogger(__name__)

NODE_CREATED = "NODE_CREATED"
DECISION_TRIGGERED = "DECISION_TRIGGERED"


@dataclass(frozen=True)
class Event:
    """One engine event."""
    type: str
    payload: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'payload': self.payload,
            'timestamp': int(self.timestamp * 1000),
        }


EventCallback = Callable[[Event], None]


class NotificationChannel:
    """
    Drop-oldest event queue with a background dispatcher.

    Example:
        channel = NotificationChannel(maxsize=100)
        channel.subscribe(handler)
        channel.start()
        channel.publish(Event(NODE_CREATED, payload))
        channel.drain()
    """

    def __init__(self, maxsize: int = 10000):
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self.maxsize = maxsize

        self._queue: Queue = Queue(maxsize=maxsize)
        self._subscribers: List[EventCallback] = []
        self._subscribers_lock = threading.Lock()

        self._running = False
        self._thread: Optional[threading.Thread] = None

        self._stats_lock = threading.Lock()
        self._published = 0
        self._delivered = 0
        self._dropped = 0

    # =========================================================================
    # PRODUCER SIDE
    # =========================================================================

    def publish(self, event: Event):
        """Enqueue an event, dropping the oldest queued one if full."""
        while True:
            try:
                self._queue.put_nowait(event)
                break
            except Full:
                try:
                    dropped = self._queue.get_nowait()
                    self._queue.task_done()
                except Empty:
                    continue
                with self._stats_lock:
                    self._dropped += 1
                    dropped_total = self._dropped
                metrics.record_event_dropped()
                if dropped_total == 1 or dropped_total % 1000 == 0:
                    logger.warning(
                        f"Event channel full ({self.maxsize}); dropped {dropped_total} events "
                        f"(latest dropped: {dropped.type})"
                    )

        with self._stats_lock:
            self._published += 1

    def emit(self, event_type: str, payload: Dict[str, Any]):
        """Shorthand for publish(Event(event_type, payload))."""
        self.publish(Event(event_type, payload))

    # =========================================================================
    # CONSUMER SIDE
    # =========================================================================

    def subscribe(self, callback: EventCallback) -> EventCallback:
        """Register a subscriber (decorator or direct call)."""
        with self._subscribers_lock:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: EventCallback):
        with self._subscribers_lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def start(self):
        """Start the dispatcher thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(
            target=self._dispatch_loop,
            daemon=True,
            name="EventDispatcher"
        )
        self._thread.start()
        logger.info("Event dispatcher started")

    def stop(self, timeout: float = 5.0):
        """Stop the dispatcher thread. Queued events stay queued."""
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Event dispatcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def drain(self, timeout: float = 5.0) -> bool:
        """
        Wait until every queued event has been delivered or dropped.

        Returns:
            True if the queue emptied within `timeout`
        """
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def _dispatch_loop(self):
        while self._running:
            try:
                event = self._queue.get(timeout=0.5)
            except Empty:
                continue

            try:
                self._deliver(event)
            finally:
                self._queue.task_done()

    def _deliver(self, event: Event):
        with self._subscribers_lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event subscriber error ({event.type}): {e}")

        with self._stats_lock:
            self._delivered += 1

    def get_status(self) -> dict:
        """Get channel statistics."""
        with self._stats_lock:
            return {
                'running': self._running,
                'queued': self._queue.qsize(),
                'capacity': self.maxsize,
                'published': self._published,
                'delivered': self._delivered,
                'dropped': self._dropped,
            }


class EventLog:
    """
    Ring buffer of recent events with sequence numbers, for polling clients.

    Subscribe it to a channel:
        log = EventLog(maxlen=1000)
        channel.subscribe(log.record)
    """

    def __init__(self, maxlen: int = 1000):
        self._events: deque = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._sequence = 0

    def record(self, event: Event):
        with self._lock:
            self._sequence += 1
            self._events.append((self._sequence, event))

    @property
    def last_sequence(self) -> int:
        with self._lock:
            return self._sequence

    def since(self, sequence: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Events with a sequence number greater than `sequence`."""
        with self._lock:
            items = [(seq, event) for seq, event in self._events if seq > sequence]

        if limit is not None:
            items = items[:limit]
        return [dict(event.to_dict(), seq=seq) for seq, event in items]
