import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """Something changed in ``table``. Subscribers re-query, there is no row payload."""

    table: str
    event: str


@dataclass(frozen=True)
class Subscription:
    """Opaque handle returned by RealtimeHub.subscribe"""

    table: str
    events: FrozenSet[str]
    callback: Callable[[ChangeEvent], None] = field(compare=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


class RealtimeHub:
    """In-process change notifications for dashboard clients"""

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        events: Iterable[str],
        callback: Callable[[ChangeEvent], None],
    ) -> Subscription:
        """Register ``callback`` for ``events`` on ``table``"""
        subscription = Subscription(
            table=table, events=frozenset(events), callback=callback
        )
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        logger.debug(
            "Subscribed %s to %s %s", subscription.id, table, sorted(subscription.events)
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Release a subscription; unknown handles are ignored"""
        with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)
        if removed:
            logger.debug("Unsubscribed %s", subscription.id)

    def publish(self, table: str, event: str) -> int:
        """Notify matching subscribers, returns how many were called"""
        with self._lock:
            targets: List[Subscription] = [
                s
                for s in self._subscriptions.values()
                if s.table == table and event in s.events
            ]

        change = ChangeEvent(table=table, event=event)
        for subscription in targets:
            try:
                subscription.callback(change)
            except Exception:
                # Subscriber failures never reach the writer
                logger.exception("Realtime subscriber %s failed", subscription.id)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


realtime_hub = RealtimeHub()
