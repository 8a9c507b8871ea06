"""Incremental line reading from a growing installer log.

This module reads only the bytes appended since the previous read, decodes
them with the target's encoding and splits them into complete lines. A
trailing fragment without a line boundary is carried over to the next read.
"""

from __future__ import annotations

import logging

import aiofiles
import aiofiles.os

from .models import LineBatch, ReadCursor, WatchTarget

logger = logging.getLogger(__name__)

BOM = "\ufeff"


class LineSource:
    """Reads a log file incrementally without re-reading consumed bytes.

    Each call to read() is a single bounded attempt: the file is opened,
    at most max_bytes_per_read bytes are read from the cursor's position and
    the handle is closed again before returning.

    Attributes:
        target: File and encoding being read.
        cursor: Current reading position.
        max_bytes: Maximum bytes read per call.
        decode_errors: Codec error handler applied to malformed bytes.
    """

    def __init__(
        self,
        target: WatchTarget,
        max_bytes_per_read: int = 256 * 1024,
        decode_errors: str = "replace",
        cursor: ReadCursor | None = None,
    ):
        """Initialize the line source.

        Args:
            target: File and encoding to read.
            max_bytes_per_read: Maximum bytes read per call.
            decode_errors: Codec error handler ("replace" or "ignore").
            cursor: Starting cursor, a fresh one by default.
        """
        self.target = target
        self.max_bytes = max_bytes_per_read
        self.decode_errors = decode_errors
        self.cursor = cursor if cursor is not None else ReadCursor()
        self._newline = target.newline

    async def read(self) -> LineBatch:
        """Read complete lines appended since the last read.

        Returns:
            LineBatch with the new lines. available is False when the file
            does not exist yet; transient_error is set when the file exists
            but could not be read this time (for example while the installer
            holds an exclusive lock).
        """
        path = self.target.path

        try:
            file_size = (await aiofiles.os.stat(path)).st_size
        except FileNotFoundError:
            logger.debug(f"Log file does not exist yet: {path}")
            return LineBatch(available=False)
        except OSError as e:
            logger.debug(f"Failed to stat log file {path}: {e}")
            return LineBatch(transient_error=e)

        position = self.cursor.read_position
        if file_size < position:
            logger.warning(
                f"Log file {path} was truncated "
                f"(position {position} > size {file_size}), reading from the beginning"
            )
            self.cursor.reset()
            position = 0

        if file_size == position:
            return LineBatch()

        try:
            async with aiofiles.open(path, "rb") as f:
                await f.seek(position)
                chunk = await f.read(min(file_size - position, self.max_bytes))
        except OSError as e:
            logger.debug(f"Log file {path} not readable, retrying next poll: {e}")
            return LineBatch(transient_error=e)

        lines = self._consume(chunk)
        if lines:
            logger.debug(
                f"Read {len(lines)} new lines from {path} "
                f"(offset {position} -> {self.cursor.read_position})"
            )
        return LineBatch(lines=lines)

    def _consume(self, chunk: bytes) -> list[str]:
        """Split freshly read bytes into lines and advance the cursor."""
        buffer = self.cursor.carry + chunk
        end = self._last_boundary(buffer)
        if end == 0:
            self.cursor.carry = buffer
            return []

        at_start = self.cursor.byte_offset == 0
        text = buffer[:end].decode(self.target.encoding, errors=self.decode_errors)
        if at_start and text.startswith(BOM):
            text = text[1:]

        self.cursor.carry = buffer[end:]
        self.cursor.byte_offset += end

        # text ends with a newline, so the final element is always empty
        lines = [line.rstrip("\r") for line in text.split("\n")[:-1]]
        self.cursor.lines_read += len(lines)
        return lines

    def _last_boundary(self, buffer: bytes) -> int:
        """Return the index just past the last aligned line boundary, or 0."""
        width = len(self._newline)
        index = buffer.rfind(self._newline)
        while index > 0 and index % width:
            index = buffer.rfind(self._newline, 0, index + width - 1)
        if index == -1:
            return 0
        return index + width

    def pending_text(self) -> str:
        """Decoded carry: the start of a line still waiting for its line ending."""
        text = self.cursor.carry.decode(self.target.encoding, errors="replace")
        if self.cursor.byte_offset == 0:
            text = text.removeprefix(BOM)
        return text.rstrip("\r")

    def reset(self) -> None:
        """Forget the reading position; the next read starts at byte 0."""
        self.cursor.reset()
        logger.info(f"Reset position for {self.target.path}")
