"""Logging setup for installwatch.

Library modules only create ``logging.getLogger(__name__)`` loggers; callers
that run installwatch as an application call setup_logging() once.
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "taskName",
    ]
)


class MonitorLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds monitor context to all log messages."""

    def process(self, msg, kwargs):
        """Add the monitor name to log records."""
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return f"[{self.extra['monitor']}] {msg}", kwargs


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line, including ``extra`` fields."""

    def format(self, record):
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES:
                continue
            try:
                json.dumps(value)  # Ensure serializable
                log_obj[key] = value
            except (TypeError, ValueError):
                log_obj[key] = str(value)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def setup_logging(log_level: str = "INFO", log_dir: str | Path | None = None) -> logging.Logger:
    """Configure the ``installwatch`` logger.

    Adds a human-readable console handler and, when log_dir is given, a
    rotating JSON-lines file handler that captures everything down to DEBUG.

    Args:
        log_level: Console log level name.
        log_dir: Directory for ``installwatch.log``, None for console only.

    Returns:
        The configured package logger.
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logger = logging.getLogger("installwatch")
    logger.setLevel(logging.DEBUG if log_dir else level)
    logger.propagate = False

    # Remove existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler - human readable
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path / "installwatch.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger
