"""Event system for monitor notifications."""

from installwatch.events.bus import EventBus, Subscription
from installwatch.events.models import (
    InstallationCompleted,
    Notification,
    NotificationHandler,
    OutcomeReported,
    StateChange,
)

__all__ = [
    "EventBus",
    "InstallationCompleted",
    "Notification",
    "NotificationHandler",
    "OutcomeReported",
    "StateChange",
    "Subscription",
]
