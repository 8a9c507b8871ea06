"""installwatch: follow installer log files until they report an outcome."""

from .config import InstallWatchConfig, load_config
from .errors import ConfigError, InstallerError, InstallWatchError, MonitorStoppedError
from .installation import InstallationWatcher, InstallReport, JobResult, WatchJob
from .logging_manager import setup_logging
from .monitoring import (
    MonitorConfig,
    MonitorState,
    OutcomeKind,
    PatternClassifier,
    TailMonitor,
    TerminalEvent,
    WatchTarget,
)

__all__ = [
    "ConfigError",
    "InstallReport",
    "InstallWatchConfig",
    "InstallWatchError",
    "InstallationWatcher",
    "InstallerError",
    "JobResult",
    "MonitorConfig",
    "MonitorState",
    "MonitorStoppedError",
    "OutcomeKind",
    "PatternClassifier",
    "TailMonitor",
    "TerminalEvent",
    "WatchJob",
    "WatchTarget",
    "load_config",
    "setup_logging",
]

__version__ = "0.1.0"
