"""Coalescing buffer that rate-limits publication of pipe data."""

import logging
import threading
import time
from collections import deque
from typing import Callable, Dict, List, Optional, Union

from ..config import BufferPolicy

Payload = Union[str, bytes]
PublishFunc = Callable[[str, Payload, int], bool]

DEFAULT_MAX_QUEUE = 100


class BufferedItem:
    """The unpublished state of one outbound channel."""

    def __init__(
        self,
        topic: str,
        payload: Payload,
        qos: int,
        policy: BufferPolicy = BufferPolicy.COALESCE,
        max_queue: int = DEFAULT_MAX_QUEUE,
    ):
        self.topic = topic
        self.payload = payload
        self.qos = qos
        self.policy = policy
        self.pending = True
        self.last_update = time.monotonic()
        # Older payloads still waiting to be published (queue policy only)
        self.backlog: deque = deque(maxlen=max(max_queue - 1, 0))

    def update(self, topic: str, payload: Payload, qos: int) -> None:
        if self.policy is BufferPolicy.QUEUE and self.pending:
            self.backlog.append(self.payload)
        self.topic = topic
        self.payload = payload
        self.qos = qos
        self.pending = True
        self.last_update = time.monotonic()

    def drain(self) -> List[Payload]:
        """Return the payloads to publish, oldest first, and reset the backlog."""
        payloads = list(self.backlog)
        payloads.append(self.payload)
        self.backlog.clear()
        return payloads


class CoalescingBuffer:
    """Holds at most one pending payload per channel between flushes.

    Intermediate updates are dropped (last value wins) unless the channel
    uses the queue policy. Publishing is best effort: a failed publish is
    not retried.
    """

    def __init__(self, publish: PublishFunc, max_queue: int = DEFAULT_MAX_QUEUE):
        """Initialize the buffer.

        Args:
            publish: Called as publish(topic, payload, qos) for each flushed item
            max_queue: Items kept per channel under the queue policy
        """
        self.publish = publish
        self.max_queue = max_queue
        self.logger = logging.getLogger(__name__)
        self._items: Dict[int, BufferedItem] = {}
        self._lock = threading.RLock()

    def buffer_update(
        self,
        channel_id: int,
        topic: str,
        payload: Payload,
        qos: int,
        policy: BufferPolicy = BufferPolicy.COALESCE,
    ) -> None:
        """Store the newest payload for a channel and mark it pending."""
        with self._lock:
            item = self._items.get(channel_id)
            if item is None:
                self._items[channel_id] = BufferedItem(topic, payload, qos, policy, self.max_queue)
            else:
                item.update(topic, payload, qos)

    def flush(self) -> int:
        """Publish every pending item once.

        Returns:
            Number of publish calls made
        """
        published = 0
        with self._lock:
            for channel_id, item in self._items.items():
                if not item.pending:
                    continue

                for payload in item.drain():
                    published += 1
                    try:
                        success = self.publish(item.topic, payload, item.qos)
                    except Exception as e:
                        self.logger.error(f"Error publishing to '{item.topic}': {e}", exc_info=True)
                        success = False

                    if success:
                        self.logger.debug(
                            f"Timer published to topic '{item.topic}' ({len(payload)} bytes)"
                        )
                    else:
                        self.logger.debug(f"Dropped update for topic '{item.topic}' (publish failed)")

                item.pending = False
        return published

    def clear(self) -> None:
        """Drop every buffered item."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
        if count:
            self.logger.debug(f"Cleared {count} buffered channels")

    def get(self, channel_id: int) -> Optional[BufferedItem]:
        with self._lock:
            return self._items.get(channel_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
