"""
In-process publish/subscribe bus for real-time UI updates.

Publishers run on request threads (FastAPI threadpool) or on the classifier
worker thread; WebSocket subscribers live on the event loop. Messages cross
over with ``loop.call_soon_threadsafe``. Delivery is best effort: nothing is
persisted or replayed, and a full subscriber queue drops the message.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Set

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

COUGH_EVENT_NEW = "cough_event:new"
COUGH_EVENT_DETECTION_COMPLETE = "cough_event:detection_complete"
COUGH_NOTIFICATION_NEW = "cough_notification:new"
COUGH_NOTIFICATION_ACKNOWLEDGED = "cough_notification:acknowledged"

Listener = Callable[[str, Any], None]


class Subscription:
    def __init__(self, loop: asyncio.AbstractEventLoop, max_pending: int) -> None:
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)

    def _deliver(self, message: Dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Subscriber queue full, dropping %s", message.get("event"))

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()


class EventBus:
    def __init__(self, max_pending: int = 100) -> None:
        self._max_pending = max_pending
        self._subscriptions: Set[Subscription] = set()
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        """Register a queue bound to the running event loop."""
        subscription = Subscription(asyncio.get_running_loop(), self._max_pending)
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    def add_listener(self, listener: Listener) -> None:
        """Register a synchronous callback, invoked on the publishing thread."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions) + len(self._listeners)

    def publish(self, event: str, payload: Any) -> int:
        """Fan a message out to every current subscriber. Returns how many were reached."""
        data = jsonable_encoder(payload)
        message = {"event": event, "data": data}
        with self._lock:
            listeners = list(self._listeners)
            subscriptions = list(self._subscriptions)

        delivered = 0
        for listener in listeners:
            try:
                listener(event, data)
                delivered += 1
            except Exception:
                logger.exception("Bus listener failed on %s", event)
        for subscription in subscriptions:
            try:
                subscription.loop.call_soon_threadsafe(subscription._deliver, message)
                delivered += 1
            except RuntimeError:
                # loop already closed
                logger.warning("Dropping subscriber with a closed loop")
                self.unsubscribe(subscription)
        logger.debug("Published %s to %d subscribers", event, delivered)
        return delivered
