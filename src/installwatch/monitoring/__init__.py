"""Installation-progress monitoring.

This package tails installer log files and turns their text into a single
terminal outcome per log.

Key Components:
    - models: Watch targets, read cursors, classifications and terminal events
    - config: Configuration dataclass for monitors
    - line_source: Incremental, encoding-aware line reading
    - classifier: Ordered recognizers, first match wins
    - tail_monitor: asyncio state machine with watchdog

Example:
    >>> from installwatch.monitoring import MonitorConfig, TailMonitor, WatchTarget
    >>> monitor = TailMonitor(WatchTarget("install.log"), config=MonitorConfig())
    >>> event = await monitor.run()
"""

from __future__ import annotations

from .classifier import PatternClassifier, Recognizer
from .config import MonitorConfig
from .line_source import LineSource
from .models import (
    Classification,
    LineBatch,
    MonitorState,
    OutcomeKind,
    ReadCursor,
    TerminalEvent,
    WatchTarget,
)
from .tail_monitor import TailMonitor

__all__ = [
    "Classification",
    "LineBatch",
    "LineSource",
    "MonitorConfig",
    "MonitorState",
    "OutcomeKind",
    "PatternClassifier",
    "ReadCursor",
    "Recognizer",
    "TailMonitor",
    "TerminalEvent",
    "WatchTarget",
]
