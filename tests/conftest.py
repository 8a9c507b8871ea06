"""Shared fixtures for installwatch tests."""

import logging
from pathlib import Path

import pytest

from installwatch.events import EventBus, Notification, OutcomeReported
from installwatch.monitoring.models import TerminalEvent


class FakeClock:
    """Manually advanced monotonic clock for watchdog tests."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingBus(EventBus):
    """EventBus that keeps every published notification."""

    def __init__(self) -> None:
        super().__init__()
        self.notifications: list[Notification] = []

    def publish(self, notification: Notification) -> int:
        self.notifications.append(notification)
        return super().publish(notification)

    def of_type(self, notification_type: type) -> list:
        return [n for n in self.notifications if isinstance(n, notification_type)]

    def outcomes(self) -> list[TerminalEvent]:
        return [n.event for n in self.of_type(OutcomeReported)]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    """Path of a log file that does not exist yet."""
    return tmp_path / "install.log"


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging() so caplog keeps seeing installwatch records."""
    yield
    package_logger = logging.getLogger("installwatch")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
