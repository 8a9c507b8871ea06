"""
TailMonitor - asyncio state machine that follows one installer log.

The monitor polls its log file at a fixed interval, feeds new lines to a
PatternClassifier and resolves a one-shot result with the first terminal
outcome: error, failure, success, or timeout when the watchdog budget runs out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import aiofiles.os

from ..errors import MonitorStoppedError
from ..events import EventBus, OutcomeReported, StateChange
from ..logging_manager import MonitorLoggerAdapter
from .classifier import PatternClassifier
from .config import MonitorConfig
from .line_source import LineSource
from .models import MonitorState, OutcomeKind, TerminalEvent, WatchTarget

logger = logging.getLogger(__name__)

_OUTCOME_LOG_LEVELS = {
    OutcomeKind.SUCCESS: logging.INFO,
    OutcomeKind.FAILURE: logging.WARNING,
    OutcomeKind.ERROR: logging.ERROR,
    OutcomeKind.TIMEOUT: logging.WARNING,
}


class TailMonitor:
    """
    Watches one installer log file until it reports an outcome.

    States: idle -> waiting_for_file -> tailing -> done. The monitor never
    writes to the log and never touches the installer process. Each poll opens
    the file, reads a bounded chunk and closes it again, so stopping the
    monitor leaves no open handle behind.

    Example:
        monitor = TailMonitor(WatchTarget("install.log"), config=MonitorConfig(poll_interval_seconds=0.5))
        event = await monitor.run()
        if event.kind is OutcomeKind.SUCCESS:
            print(event.detail)
    """

    def __init__(
        self,
        target: WatchTarget,
        classifier: PatternClassifier | None = None,
        config: MonitorConfig | None = None,
        *,
        name: str | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the monitor.

        Args:
            target: Log file and encoding to watch
            classifier: Recognizers to apply (default: the "generic" preset)
            config: Polling and watchdog settings
            name: Label used in logs and events (default: the log file name)
            event_bus: Optional bus receiving state changes and the outcome
            clock: Monotonic time source used by the watchdog
        """
        self.target = target
        self.classifier = classifier or PatternClassifier.from_preset("generic")
        self.config = config or MonitorConfig()
        self.name = name or target.path.name
        self.event_bus = event_bus
        self.line_source = LineSource(
            target,
            max_bytes_per_read=self.config.max_bytes_per_read,
            decode_errors=self.config.decode_errors,
        )

        self._clock = clock
        self._state = MonitorState.IDLE
        self._started_at: float | None = None
        self._result: asyncio.Future[TerminalEvent] | None = None
        self._event: TerminalEvent | None = None
        self._task: asyncio.Task | None = None
        self._last_transient_error: OSError | None = None
        self._logger = MonitorLoggerAdapter(logger, {"monitor": self.name})

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def event(self) -> TerminalEvent | None:
        """The terminal event, once one has been emitted."""
        return self._event

    def is_running(self) -> bool:
        """Check if the polling task is currently active."""
        return self._task is not None and not self._task.done()

    # ============================================================================
    # Lifecycle Methods
    # ============================================================================

    async def start(self) -> None:
        """
        Start polling in a background task.

        Raises:
            RuntimeError: If the monitor was already started
        """
        if self._state is not MonitorState.IDLE:
            raise RuntimeError(f"TailMonitor {self.name} is already running")

        await self._begin()
        self._task = asyncio.create_task(self._poll_loop(), name=f"tail-monitor-{self.name}")

        self._logger.info(
            f"Watching {self.target.path} "
            f"(encoding: {self.target.encoding}, poll interval: {self.config.poll_interval_seconds}s)"
        )

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the monitor at the next poll boundary.

        A stopped monitor emits no further events. If it had not produced an
        outcome yet, wait() raises MonitorStoppedError.

        Args:
            timeout: Maximum time to wait for the polling task to finish (seconds)
        """
        if self._state is not MonitorState.DONE:
            self._logger.info("Stopping monitor")
            self._transition(MonitorState.DONE)

        if self._task is not None and not self._task.done():
            self._task.cancel()
            _, pending = await asyncio.wait({self._task}, timeout=timeout)
            if pending:
                self._logger.warning("Polling task did not stop within timeout")

        if self._result is not None and not self._result.done():
            self._result.cancel()

    async def wait(self, timeout: float | None = None) -> TerminalEvent:
        """
        Wait for the terminal event.

        Args:
            timeout: Seconds to wait, None to wait until the monitor finishes

        Returns:
            The terminal event

        Raises:
            RuntimeError: If the monitor was never started
            MonitorStoppedError: If the monitor was stopped without an outcome
            TimeoutError: If timeout elapsed first (the monitor keeps running)
        """
        if self._result is None:
            raise RuntimeError(f"TailMonitor {self.name} has not been started")

        try:
            return await asyncio.wait_for(asyncio.shield(self._result), timeout)
        except asyncio.CancelledError:
            if self._result.cancelled():
                raise MonitorStoppedError(
                    f"TailMonitor {self.name} was stopped before {self.target.path} "
                    "reported an outcome"
                ) from None
            raise

    async def run(self, timeout: float | None = None) -> TerminalEvent:
        """Start the monitor and wait for its terminal event."""
        await self.start()
        try:
            return await self.wait(timeout)
        finally:
            await self.stop()

    async def __aenter__(self) -> TailMonitor:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ============================================================================
    # Core Monitoring Methods
    # ============================================================================

    async def poll(self) -> TerminalEvent | None:
        """
        Run a single poll tick.

        Reads the lines appended since the previous tick, classifies them in
        order and stops at the first classified line; the rest of the batch is
        discarded. The watchdog is checked after the batch. Calling poll() on
        an idle monitor begins monitoring without starting the background task.

        Returns:
            The terminal event if this tick produced one, otherwise None
        """
        if self._state is MonitorState.DONE:
            return None
        if self._state is MonitorState.IDLE:
            await self._begin()

        batch = await self.line_source.read()

        if batch.transient_error is not None:
            self._last_transient_error = batch.transient_error
        elif batch.available:
            self._last_transient_error = None

        if batch.available and self._state is MonitorState.WAITING_FOR_FILE:
            self._transition(MonitorState.TAILING)

        for line in batch.lines:
            classification = self.classifier.classify(line)
            if classification is not None:
                return self._finish(classification.kind, classification.detail, line=line)

        if self._watchdog_expired():
            return self._finish(OutcomeKind.TIMEOUT, self._timeout_reason())

        return None

    async def _poll_loop(self) -> None:
        """
        Main polling loop (runs in background task).

        Polls until a terminal event is produced or the monitor is stopped.
        """
        interval = self.config.poll_interval_seconds

        try:
            while self._state is not MonitorState.DONE:
                if await self.poll() is not None:
                    break
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            self._logger.debug("Polling cancelled")
            raise
        except Exception as e:
            self._logger.exception(f"Unexpected error while tailing {self.target.path}")
            self._transition(MonitorState.DONE)
            if self._result is not None and not self._result.done():
                self._result.set_exception(e)

    async def _begin(self) -> None:
        self._started_at = self._clock()
        self._result = asyncio.get_running_loop().create_future()

        if await aiofiles.os.path.exists(self.target.path):
            self._transition(MonitorState.TAILING)
        else:
            self._transition(MonitorState.WAITING_FOR_FILE)

    def _finish(
        self, kind: OutcomeKind, detail: str | None, line: str | None = None
    ) -> TerminalEvent:
        event = TerminalEvent(
            kind=kind,
            detail=detail,
            monitor=self.name,
            path=self.target.path,
            line=line,
            lines_read=self.line_source.cursor.lines_read,
            elapsed_seconds=self._elapsed(),
        )
        self._event = event
        self._transition(MonitorState.DONE)

        if self._result is not None and not self._result.done():
            self._result.set_result(event)

        suffix = f": {detail}" if detail else ""
        self._logger.log(_OUTCOME_LOG_LEVELS[kind], f"Outcome {kind.value}{suffix}")
        if self.event_bus is not None:
            self.event_bus.publish(OutcomeReported(event))

        return event

    # ============================================================================
    # Watchdog
    # ============================================================================

    def _elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def _watchdog_expired(self) -> bool:
        budget = self.config.max_wait_seconds
        return budget is not None and self._elapsed() >= budget

    def _timeout_reason(self) -> str:
        budget = self.config.max_wait_seconds
        if self._state is MonitorState.WAITING_FOR_FILE:
            return f"log file {self.target.path} did not appear within {budget}s"
        if self._last_transient_error is not None:
            return f"log file {self.target.path} stayed unreadable: {self._last_transient_error}"
        reason = f"no completion marker in {self.target.path} within {budget}s"
        pending = self.line_source.pending_text()
        if pending:
            # An unterminated last line is never classified
            reason += f"; last line has no line ending yet: {pending[:80]!r}"
        return reason

    # ============================================================================
    # Notifications
    # ============================================================================

    def _transition(self, new_state: MonitorState) -> None:
        old_state = self._state
        if old_state is new_state:
            return

        self._state = new_state
        self._logger.debug(f"State {old_state.value} -> {new_state.value}")
        if self.event_bus is not None:
            self.event_bus.publish(
                StateChange(
                    monitor=self.name,
                    path=self.target.path,
                    previous=old_state,
                    current=new_state,
                )
            )
