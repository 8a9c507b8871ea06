"""YAML configuration for installwatch.

Example file::

    monitor:
      poll_interval_seconds: 0.5
      max_wait_seconds: 3600
    logging:
      level: INFO
      log_dir: /tmp/installwatch_logs
    watches:
      - name: build-tools
        path: C:/Users/me/.windows-build-tools/build-tools-log.txt
        recognizers: vs-build-tools
      - name: python
        path: C:/Users/me/.windows-build-tools/python-log.txt
        encoding: utf-16-le
        recognizers: msi
        default_detail: C:/Python27
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .installation import WatchJob
from .monitoring.classifier import PatternClassifier
from .monitoring.config import MonitorConfig
from .monitoring.models import WatchTarget

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "INSTALLWATCH_CONFIG"
DEFAULT_CONFIG_PATH = Path("installwatch.yaml")


@dataclass
class InstallWatchConfig:
    """Parsed configuration file.

    Attributes:
        monitor: Settings shared by all monitors.
        log_level: Console log level.
        log_dir: Directory for the JSON log file, None for console only.
        jobs: Installer logs to watch.
    """

    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    log_level: str = "INFO"
    log_dir: str | None = None
    jobs: list[WatchJob] = field(default_factory=list)


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Pick the configuration file: explicit path, then $INSTALLWATCH_CONFIG, then ./installwatch.yaml."""
    if path is not None:
        return Path(path)
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_config(path: str | Path | None = None) -> InstallWatchConfig:
    """Load configuration from a YAML file.

    Args:
        path: Configuration file, see resolve_config_path() for the fallback order.

    Returns:
        Parsed configuration.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigError: If YAML parsing fails or values are invalid
    """
    config_path = resolve_config_path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"installwatch configuration file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration YAML: {e}") from e

    config = parse_config(raw or {})
    logger.debug(f"Loaded configuration from {config_path} ({len(config.jobs)} watches)")
    return config


def parse_config(raw: dict[str, Any]) -> InstallWatchConfig:
    """Build an InstallWatchConfig from already-parsed YAML data.

    Raises:
        ConfigError: If a section has the wrong shape or invalid values
    """
    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping")

    try:
        monitor = MonitorConfig.from_dict(raw.get("monitor"))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid monitor settings: {e}") from e

    logging_section = raw.get("logging") or {}
    if not isinstance(logging_section, dict):
        raise ConfigError("'logging' must be a mapping")

    watches = raw.get("watches") or []
    if not isinstance(watches, list):
        raise ConfigError("'watches' must be a list")

    jobs = [_parse_watch(index, entry) for index, entry in enumerate(watches)]

    return InstallWatchConfig(
        monitor=monitor,
        log_level=str(logging_section.get("level", "INFO")),
        log_dir=logging_section.get("log_dir"),
        jobs=jobs,
    )


def _parse_watch(index: int, entry: Any) -> WatchJob:
    if not isinstance(entry, dict) or "path" not in entry:
        raise ConfigError(f"Watch #{index} must be a mapping with a 'path'")

    name = str(entry.get("name") or f"watch-{index}")
    recognizers = entry.get("recognizers", "generic")

    try:
        target = WatchTarget(Path(entry["path"]), entry.get("encoding", "utf-8"))
        if isinstance(recognizers, str):
            classifier = PatternClassifier.from_preset(recognizers)
        else:
            classifier = PatternClassifier.from_config(recognizers)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid watch '{name}': {e}") from e

    diagnostics_dir = entry.get("diagnostics_dir")
    return WatchJob(
        name=name,
        target=target,
        classifier=classifier,
        display_name=entry.get("display_name"),
        default_detail=entry.get("default_detail"),
        diagnostics_dir=Path(diagnostics_dir) if diagnostics_dir else None,
    )
