import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = Callable[[int, str, Any], None]

WILDCARD = "*"


class NotificationHub:
    """Fan out change events to the devices of one business.

    Delivery is best effort: a failing subscriber is logged and skipped, and
    ``publish`` never raises into the reconciliation that triggered it.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int | str, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, business_id: int | str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[business_id].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(business_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def connected(self, business_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(business_id, []))

    def publish(self, business_id: int, event: str, data: Any = None) -> None:
        with self._lock:
            callbacks = [*self._subscribers.get(business_id, []), *self._subscribers.get(WILDCARD, [])]
        logger.debug("Broadcast %s to business:%s (%s subscribers)", event, business_id, len(callbacks))
        for callback in callbacks:
            try:
                callback(business_id, event, data)
            except Exception:
                logger.exception("Notification subscriber failed for %s on business:%s", event, business_id)
