"""Exceptions raised by installwatch."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .monitoring.models import TerminalEvent


class InstallWatchError(Exception):
    """Base class for installwatch errors."""


class InstallerError(InstallWatchError):
    """The installer log reported an internal error.

    Attributes:
        event: The terminal event carrying the error detail.
    """

    def __init__(self, event: TerminalEvent):
        self.event = event
        message = f"Installer reported an error in {event.path}"
        if event.detail:
            message = f"{message}: {event.detail}"
        super().__init__(message)


class MonitorStoppedError(InstallWatchError):
    """The monitor was stopped before it produced an outcome."""


class ConfigError(InstallWatchError, ValueError):
    """Configuration file content is invalid."""
