"""Concurrent watching of several installers.

InstallationWatcher runs one TailMonitor per installer log, reports each
outcome as it arrives and aggregates an InstallReport. It only watches:
launching the installers is the caller's job.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import InstallerError, MonitorStoppedError
from .events import EventBus, InstallationCompleted
from .monitoring.classifier import PatternClassifier
from .monitoring.config import MonitorConfig
from .monitoring.models import OutcomeKind, TerminalEvent, WatchTarget
from .monitoring.tail_monitor import TailMonitor

logger = logging.getLogger(__name__)

STOPPED = "stopped"


def _generic_classifier() -> PatternClassifier:
    return PatternClassifier.from_preset("generic")


@dataclass
class WatchJob:
    """One installer log to watch.

    Attributes:
        name: Unique job identifier.
        target: Log file and encoding.
        classifier: Recognizers for this installer's log.
        display_name: Human-readable installer name for messages.
        default_detail: Success detail used when the log line carries none.
        diagnostics_dir: Where users should look on failure (default: the log's directory).
    """

    name: str
    target: WatchTarget
    classifier: PatternClassifier = field(default_factory=_generic_classifier)
    display_name: str | None = None
    default_detail: str | None = None
    diagnostics_dir: Path | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name

    @property
    def log_dir(self) -> Path:
        return self.diagnostics_dir or self.target.path.parent


@dataclass
class JobResult:
    """Outcome of one watch job; event is None if it was stopped first."""

    job: WatchJob
    event: TerminalEvent | None

    @property
    def status(self) -> str:
        return self.event.kind.value if self.event else STOPPED

    @property
    def succeeded(self) -> bool:
        return self.event is not None and self.event.succeeded

    @property
    def detail(self) -> str | None:
        if self.event is None:
            return None
        if self.event.succeeded:
            return self.event.detail or self.job.default_detail
        return self.event.detail

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.job.name,
            "status": self.status,
            "detail": self.detail,
            "log_path": str(self.job.target.path),
            "event": self.event.to_dict() if self.event else None,
        }


@dataclass
class InstallReport:
    """Aggregated outcome of all watch jobs."""

    results: dict[str, JobResult]

    @property
    def succeeded(self) -> bool:
        return bool(self.results) and all(r.succeeded for r in self.results.values())

    @property
    def details(self) -> dict[str, str | None]:
        """Success detail per job (for example resolved install paths)."""
        return {name: r.detail for name, r in self.results.items() if r.succeeded}

    def with_status(self, status: str) -> list[str]:
        return [name for name, r in self.results.items() if r.status == status]

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "results": {name: r.to_dict() for name, r in self.results.items()},
        }


class InstallationWatcher:
    """
    Watches several installer logs concurrently.

    Example:
        watcher = InstallationWatcher([build_tools_job(vs_log), msi_job(py_log, r"C:\\Python27")])
        report = await watcher.run()
        paths = report.details
    """

    def __init__(
        self,
        jobs: Iterable[WatchJob],
        config: MonitorConfig | None = None,
        *,
        event_bus: EventBus | None = None,
        abort_on_error: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the watcher.

        Args:
            jobs: Installer logs to watch
            config: Settings shared by all monitors
            event_bus: Optional bus passed to every monitor
            abort_on_error: Stop everything and raise InstallerError on the first error outcome
            clock: Monotonic time source for the monitors' watchdogs

        Raises:
            ValueError: If no jobs are given or job names repeat
        """
        self.jobs = list(jobs)
        if not self.jobs:
            raise ValueError("InstallationWatcher needs at least one job")

        names = [job.name for job in self.jobs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate job names: {', '.join(duplicates)}")

        self.config = config or MonitorConfig()
        self.event_bus = event_bus
        self.abort_on_error = abort_on_error
        self._clock = clock
        self._monitors: dict[str, TailMonitor] = {}

    @property
    def monitors(self) -> dict[str, TailMonitor]:
        return dict(self._monitors)

    async def run(self, overall_timeout: float | None = None) -> InstallReport:
        """
        Watch all jobs until each has an outcome.

        Args:
            overall_timeout: Seconds after which remaining monitors are stopped

        Returns:
            The aggregated report

        Raises:
            InstallerError: If a job reports an error and abort_on_error is set
        """
        jobs_by_name = {job.name: job for job in self.jobs}
        self._monitors = {
            job.name: TailMonitor(
                job.target,
                job.classifier,
                self.config,
                name=job.name,
                event_bus=self.event_bus,
                clock=self._clock,
            )
            for job in self.jobs
        }

        logger.info(f"Waiting for {len(self.jobs)} installer(s) to finish")
        results: dict[str, JobResult] = {}
        waiters: dict[asyncio.Task, str] = {}
        loop = asyncio.get_running_loop()
        deadline = loop.time() + overall_timeout if overall_timeout is not None else None

        try:
            for name, monitor in self._monitors.items():
                await monitor.start()
                waiters[asyncio.create_task(monitor.wait(), name=f"wait-{name}")] = name

            pending = set(waiters)
            while pending:
                remaining = None if deadline is None else max(0.0, deadline - loop.time())
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    logger.warning(
                        f"Overall timeout of {overall_timeout}s reached, "
                        f"stopping {len(pending)} monitor(s)"
                    )
                    break

                for task in done:
                    name = waiters[task]
                    try:
                        event = task.result()
                    except MonitorStoppedError:
                        event = None
                    result = JobResult(jobs_by_name[name], event)
                    results[name] = result
                    self._report(result)

                    if self.abort_on_error and event is not None and event.kind is OutcomeKind.ERROR:
                        raise InstallerError(event)
        finally:
            await self.stop()
            for task in waiters:
                task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        for name, job in jobs_by_name.items():
            if name not in results:
                results[name] = JobResult(job, None)
                self._report(results[name])

        report = InstallReport(results)
        self._publish(report)
        return report

    async def stop(self) -> None:
        """Stop every monitor that is still running."""
        for monitor in self._monitors.values():
            await monitor.stop()

    def _report(self, result: JobResult) -> None:
        job = result.job
        status = result.status

        if status == OutcomeKind.SUCCESS.value:
            logger.info(f"Successfully installed {job.label}.")
            if result.detail:
                logger.debug(f"{job.label} installed at {result.detail}")
        elif status == OutcomeKind.FAILURE.value:
            logger.error(f"Could not install {job.label}.")
            logger.error(
                f"Please find more details in the log files, which can be found at {job.log_dir}"
            )
        elif status == OutcomeKind.ERROR.value:
            logger.error(f"{job.label} installer reported an error: {result.detail}")
        elif status == OutcomeKind.TIMEOUT.value:
            logger.warning(f"Gave up waiting for {job.label}: {result.detail}")
        else:
            logger.warning(f"Stopped watching {job.label} before it finished")

    def _publish(self, report: InstallReport) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(InstallationCompleted(report))
