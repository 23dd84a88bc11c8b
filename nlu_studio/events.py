"""In-process publish/subscribe bus carrying status events between services and widgets."""
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

STATUSBAR_TOPIC = "statusbar.event"

EventHandler = Callable[[Dict[str, Any]], None]


class Subscription:
    """Handle returned by :meth:`EventBus.on`; ``release`` detaches the handler."""

    def __init__(self, bus: "EventBus", topic: str, handler: EventHandler):
        self.topic = topic
        self.handler = handler
        self._bus: Optional[EventBus] = bus

    @property
    def active(self) -> bool:
        return self._bus is not None

    def release(self) -> None:
        if self._bus is None:
            return
        self._bus._remove(self)
        self._bus = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class EventBus:
    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def on(self, topic: str, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, topic, handler)
        with self._lock:
            self._subscriptions[topic].append(subscription)
        return subscription

    def emit(self, topic: str, event: Dict[str, Any]) -> int:
        """Deliver ``event`` to every handler of ``topic``; returns the number of handlers called."""
        with self._lock:
            subscriptions = list(self._subscriptions.get(topic, ()))

        for subscription in subscriptions:
            try:
                subscription.handler(event)
            except Exception as e:
                logger.error(f"Event handler for '{topic}' failed: {e}", exc_info=True)
        return len(subscriptions)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(topic, ()))

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            handlers = self._subscriptions.get(subscription.topic)
            if handlers and subscription in handlers:
                handlers.remove(subscription)
