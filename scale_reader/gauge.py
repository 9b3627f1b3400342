"""Current weight gauge with a weight-changed broadcast."""

import logging
import queue
import threading
from datetime import datetime, timezone
from typing import List, Optional

from scale_reader import protocol
from scale_reader.models import WeightSample

logger = logging.getLogger(__name__)


class WeightGauge:
    """Single-writer, multi-reader holder for the current weight.

    The poll loop is the only writer. Readers never wait on the poll loop;
    the lock only guards the value swap. Subscribers receive a WeightSample
    whenever the weight moves by more than change_delta.
    """

    def __init__(
        self,
        change_delta: float = protocol.WEIGHT_CHANGE_DELTA,
        subscriber_queue_size: int = 100,
    ) -> None:
        self._lock = threading.Lock()
        self._value: Optional[float] = None
        self._updated_at: Optional[datetime] = None
        self._change_delta = change_delta
        self._queue_size = subscriber_queue_size
        self._subscribers: List[queue.Queue] = []

    def get(self) -> Optional[float]:
        """Current weight, or None while still unknown."""
        with self._lock:
            return self._value

    def sample(self) -> Optional[WeightSample]:
        """Current weight with its update time, or None while still unknown."""
        with self._lock:
            if self._value is None or self._updated_at is None:
                return None
            return WeightSample(weight=self._value, ts=self._updated_at)

    def set(self, weight: float) -> None:
        """Store a new weight and notify subscribers if it changed."""
        now = datetime.now(timezone.utc)
        with self._lock:
            previous = self._value
            self._value = weight
            self._updated_at = now
            changed = previous is None or abs(previous - weight) > self._change_delta
            subscribers = list(self._subscribers) if changed else []

        if not changed:
            return

        logger.info(f"Weight changed: {weight:.2f}")
        event = WeightSample(weight=weight, ts=now)
        for q in subscribers:
            self._offer(q, event)

    def reset(self) -> None:
        """Return to the unknown state."""
        with self._lock:
            self._value = None
            self._updated_at = None

    def subscribe(self) -> queue.Queue:
        """Register a new listener queue for weight-changed events."""
        q: queue.Queue = queue.Queue(maxsize=self._queue_size)
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    @staticmethod
    def _offer(q: queue.Queue, event: WeightSample) -> None:
        # Slow consumers lose the oldest event, never block the writer
        while True:
            try:
                q.put_nowait(event)
                return
            except queue.Full:
                try:
                    q.get_nowait()
                except queue.Empty:
                    pass
