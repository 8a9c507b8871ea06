"""Configuration for installation-progress monitors.

This module defines the configuration dataclass that controls monitor
behavior: polling cadence, the watchdog budget and read/decoding limits.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

DECODE_ERROR_POLICIES = ("replace", "ignore")


@dataclass
class MonitorConfig:
    """Configuration for a tail monitor.

    Attributes:
        poll_interval_seconds: Seconds between polls of the log file (default: 1.0).
        max_wait_seconds: Watchdog budget before a timeout is reported, None
            to wait forever (default: 7200).
        max_bytes_per_read: Upper bound on bytes read per poll (default: 256 KiB).
        decode_errors: Codec error handler for malformed bytes, "replace" or
            "ignore" (default: "replace").
    """

    poll_interval_seconds: float = 1.0
    max_wait_seconds: float | None = 7200.0
    max_bytes_per_read: int = 256 * 1024
    decode_errors: str = "replace"

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ValueError(
                f"poll_interval_seconds must be positive, got {self.poll_interval_seconds}"
            )
        if self.max_wait_seconds is not None and self.max_wait_seconds < 0:
            raise ValueError(
                f"max_wait_seconds must not be negative, got {self.max_wait_seconds}"
            )
        if self.max_bytes_per_read < 2:
            raise ValueError(
                f"max_bytes_per_read must be at least 2, got {self.max_bytes_per_read}"
            )
        if self.decode_errors not in DECODE_ERROR_POLICIES:
            allowed = ", ".join(DECODE_ERROR_POLICIES)
            raise ValueError(
                f"Invalid decode_errors '{self.decode_errors}'. Allowed values: {allowed}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MonitorConfig:
        """Build a config from a mapping, rejecting unknown keys."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown monitor settings: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
