"""Data models for the installation-progress monitor.

This module defines the core data structures shared by the line source, the
pattern classifier and the tail monitor: what to watch, where reading left off,
how a line was classified and the terminal event a monitor emits.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import InstallerError

# Names installers and other tools use for the encodings we care about
ENCODING_ALIASES: dict[str, str] = {
    "utf8": "utf-8",
    "utf-8": "utf-8",
    "ucs2": "utf-16-le",
    "ucs-2": "utf-16-le",
    "utf16": "utf-16-le",
    "utf-16": "utf-16-le",
    "utf16le": "utf-16-le",
    "utf-16le": "utf-16-le",
    "utf-16-le": "utf-16-le",
    "utf16be": "utf-16-be",
    "utf-16be": "utf-16-be",
    "utf-16-be": "utf-16-be",
}

BOM_WRITING_CODECS: dict[str, str] = {
    "utf-8-sig": "utf-8",
    "utf-16": "utf-16-le",
    "utf-32": "utf-32-le",
}


def normalize_encoding(encoding: str | None) -> str:
    """Map an encoding name to the codec used for decoding.

    Windows Installer logs are written as little-endian UTF-16 ("ucs2" in
    Node.js terms), so generic UTF-16 names resolve to ``utf-16-le``. Codecs
    that write a BOM resolve to their BOM-less form so that a newline encodes to a
    single code unit.

    Args:
        encoding: Encoding name, or None for the UTF-8 default.

    Returns:
        Canonical codec name.

    Raises:
        ValueError: If Python has no codec for the name, or the codec is not a
            text encoding with a fixed newline sequence.
    """
    if not encoding:
        return "utf-8"

    key = encoding.strip().lower().replace("_", "-")
    if key in ENCODING_ALIASES:
        return ENCODING_ALIASES[key]

    try:
        name = codecs.lookup(key).name
    except LookupError as e:
        raise ValueError(f"Unknown text encoding: {encoding!r}") from e

    # These codecs prepend a BOM when encoding; the file's BOM is dropped on read
    name = BOM_WRITING_CODECS.get(name, name)

    try:
        newline = "\n".encode(name)
    except LookupError as e:
        raise ValueError(f"Not a text encoding: {encoding!r}") from e
    if "\n\n".encode(name) != newline * 2:
        raise ValueError(f"Encoding {encoding!r} has no fixed line boundary to split on")
    return name


class OutcomeKind(str, Enum):
    """Discriminant of a terminal monitor event.

    Attributes:
        ERROR: The installer log reported an internal error.
        FAILURE: The installer finished cleanly but unsuccessfully.
        SUCCESS: The installer reported a successful installation.
        TIMEOUT: No terminal marker appeared within the wait budget.
    """

    ERROR = "error"
    FAILURE = "failure"
    SUCCESS = "success"
    TIMEOUT = "timeout"


class MonitorState(str, Enum):
    """Lifecycle state of a tail monitor."""

    IDLE = "idle"
    WAITING_FOR_FILE = "waiting_for_file"
    TAILING = "tailing"
    DONE = "done"


@dataclass(frozen=True)
class WatchTarget:
    """Log file a monitor watches.

    Attributes:
        path: Filesystem path of the installer log.
        encoding: Text encoding of the log, normalized on construction.
    """

    path: Path
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))
        object.__setattr__(self, "encoding", normalize_encoding(self.encoding))

    @property
    def newline(self) -> bytes:
        """Line boundary as it appears in the encoded file."""
        return "\n".encode(self.encoding)


@dataclass
class ReadCursor:
    """Tracks reading position for incremental log consumption.

    Attributes:
        byte_offset: Bytes consumed as complete lines.
        carry: Bytes read past byte_offset that do not end in a line boundary yet.
        lines_read: Number of complete lines delivered so far.
    """

    byte_offset: int = 0
    carry: bytes = b""
    lines_read: int = 0

    @property
    def read_position(self) -> int:
        """File position the next read resumes from."""
        return self.byte_offset + len(self.carry)

    def reset(self) -> None:
        self.byte_offset = 0
        self.carry = b""
        self.lines_read = 0


@dataclass
class LineBatch:
    """Result of one bounded read attempt.

    Attributes:
        lines: Complete decoded lines, in file order.
        available: Whether the file existed at read time.
        transient_error: Error that prevented reading an existing file, if any.
    """

    lines: list[str] = field(default_factory=list)
    available: bool = True
    transient_error: OSError | None = None


@dataclass(frozen=True)
class Classification:
    """Outcome a recognizer assigned to a single log line.

    Attributes:
        kind: ERROR, FAILURE or SUCCESS.
        detail: Value extracted from the matching line, if any.
        line: The line that matched.
        recognizer: Name of the recognizer that matched.
    """

    kind: OutcomeKind
    detail: str | None = None
    line: str = ""
    recognizer: str = ""


@dataclass(frozen=True)
class TerminalEvent:
    """The single event a monitor emits before it stops.

    Attributes:
        kind: Outcome discriminant.
        detail: Optional payload (install path, return code, timeout reason).
        monitor: Name of the emitting monitor.
        path: Watched log file.
        line: Log line that triggered the outcome, None for timeouts.
        lines_read: Lines consumed before the outcome.
        elapsed_seconds: Time since the monitor started.
        timestamp: When the event was emitted.
    """

    kind: OutcomeKind
    detail: str | None
    monitor: str
    path: Path
    line: str | None = None
    lines_read: int = 0
    elapsed_seconds: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def raise_for_error(self) -> None:
        """Raise InstallerError if the installer reported an error."""
        if self.kind is OutcomeKind.ERROR:
            raise InstallerError(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "detail": self.detail,
            "monitor": self.monitor,
            "path": str(self.path),
            "line": self.line,
            "lines_read": self.lines_read,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "timestamp": self.timestamp.isoformat(),
        }
