"""Thread-safe delivery of monitor notifications to subscribers."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Hashable
from dataclasses import dataclass

from installwatch.events.models import Notification, NotificationHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subscription:
    """
    A handler and the topics it listens to.

    Attributes:
        id: Identifier returned by EventBus.subscribe()
        handler: Callable receiving matching notifications
        topics: MonitorState, OutcomeKind or notification classes; empty means everything
    """

    id: int
    handler: NotificationHandler
    topics: frozenset[Hashable]

    def wants(self, notification: Notification) -> bool:
        return not self.topics or not self.topics.isdisjoint(notification.topics)


class EventBus:
    """
    Fans monitor notifications out to interested subscribers.

    Monitors publish a StateChange for every transition and an OutcomeReported
    for their terminal event; InstallationWatcher publishes InstallationCompleted.
    The terminal result itself is still obtained from TailMonitor.wait(); the
    bus only feeds progress displays and audit trails.

    Handlers run synchronously in the publisher's thread, in subscription
    order. A failing handler is logged and skipped.

    Example:
        bus = EventBus()
        bus.subscribe(lambda n: print(n.monitor, n.event.detail), OutcomeKind.FAILURE)
        bus.subscribe(show_progress, StateChange)
        monitor = TailMonitor(target, event_bus=bus)
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, handler: NotificationHandler, *topics: Hashable) -> int:
        """
        Register a handler.

        Args:
            handler: Called with each matching notification
            *topics: Any of MonitorState members, OutcomeKind members or the
                notification classes; none subscribes to everything

        Returns:
            Subscription ID for unsubscribe()
        """
        with self._lock:
            subscription = Subscription(next(self._ids), handler, frozenset(topics))
            self._subscriptions.append(subscription)

        wanted = ", ".join(sorted(_topic_name(t) for t in topics)) or "everything"
        logger.debug(f"Subscription {subscription.id} listens to {wanted}")
        return subscription.id

    def unsubscribe(self, subscription_id: int) -> bool:
        """
        Remove a subscription.

        Returns:
            True if it existed, False otherwise
        """
        with self._lock:
            remaining = [s for s in self._subscriptions if s.id != subscription_id]
            removed = len(remaining) != len(self._subscriptions)
            self._subscriptions = remaining

        if not removed:
            logger.debug(f"Unknown subscription {subscription_id}")
        return removed

    def publish(self, notification: Notification) -> int:
        """
        Deliver a notification to every subscription that wants it.

        Handlers may subscribe or unsubscribe while a notification is being
        delivered; changes apply from the next publish().

        Returns:
            Number of handlers that completed without raising
        """
        with self._lock:
            targets = [s for s in self._subscriptions if s.wants(notification)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.handler(notification)
            except Exception:
                logger.exception(
                    f"Subscription {subscription.id} failed on {type(notification).__name__}"
                )
            else:
                delivered += 1
        return delivered

    def subscriber_count(self, topic: Hashable | None = None) -> int:
        """Count subscriptions, or only those a notification with ``topic`` reaches."""
        with self._lock:
            if topic is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if not s.topics or topic in s.topics)


def _topic_name(topic: Hashable) -> str:
    if isinstance(topic, type):
        return topic.__name__
    return str(getattr(topic, "value", topic))
