"""Notifications published while installer logs are watched.

Every notification exposes ``topics``: the keys a subscriber can ask for.
A state change matches its class and the state entered, an outcome matches
its class and its OutcomeKind, and the end of an installation run matches
its class only.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..installation import InstallReport
    from ..monitoring.models import MonitorState, OutcomeKind, TerminalEvent


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class StateChange:
    """A monitor moved from one lifecycle state to another."""

    monitor: str
    path: Path
    previous: MonitorState
    current: MonitorState
    timestamp: datetime = field(default_factory=_now)

    @property
    def topics(self) -> tuple[Hashable, ...]:
        return (StateChange, self.current)


@dataclass(frozen=True)
class OutcomeReported:
    """A monitor emitted its terminal event."""

    event: TerminalEvent

    @property
    def monitor(self) -> str:
        return self.event.monitor

    @property
    def kind(self) -> OutcomeKind:
        return self.event.kind

    @property
    def topics(self) -> tuple[Hashable, ...]:
        return (OutcomeReported, self.event.kind)


@dataclass(frozen=True)
class InstallationCompleted:
    """Every job of an InstallationWatcher run has a result."""

    report: InstallReport
    timestamp: datetime = field(default_factory=_now)

    @property
    def topics(self) -> tuple[Hashable, ...]:
        return (InstallationCompleted,)


Notification = StateChange | OutcomeReported | InstallationCompleted
NotificationHandler = Callable[[Notification], None]
