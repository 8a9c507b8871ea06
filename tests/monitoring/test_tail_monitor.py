"""
Tests for TailMonitor.

Tick-level behavior is driven through poll() with a fake clock; lifecycle
tests run the background task with millisecond poll intervals.
"""

import asyncio
from pathlib import Path

import aiofiles
import pytest

from installwatch.errors import InstallerError, MonitorStoppedError
from installwatch.events import OutcomeReported, StateChange
from installwatch.monitoring.classifier import PatternClassifier
from installwatch.monitoring.config import MonitorConfig
from installwatch.monitoring.models import MonitorState, OutcomeKind, WatchTarget
from installwatch.monitoring.tail_monitor import TailMonitor


class RecordingClassifier(PatternClassifier):
    """Generic classifier that remembers every line it was asked about."""

    def __init__(self) -> None:
        super().__init__(PatternClassifier.from_preset("generic"))
        self.seen: list[str] = []

    def classify(self, line):
        self.seen.append(line)
        return super().classify(line)


class ExplodingClassifier(PatternClassifier):
    def __init__(self) -> None:
        super().__init__(PatternClassifier.from_preset("generic"))

    def classify(self, line):
        raise RuntimeError("classifier bug")


def fast_config(**overrides) -> MonitorConfig:
    settings = {"poll_interval_seconds": 0.01, "max_wait_seconds": 5.0}
    settings.update(overrides)
    return MonitorConfig(**settings)


def append_text(path: Path, text: str) -> None:
    with path.open("a", encoding="utf-8", newline="") as f:
        f.write(text)


# ============================================================================
# Tick-driven state machine tests
# ============================================================================


class TestTailMonitorTicks:
    """State transitions driven one poll() at a time."""

    @pytest.mark.asyncio
    async def test_waits_for_missing_file(self, log_path: Path, fake_clock) -> None:
        """Test that a missing file means waiting, not an error, and tailing starts once it exists."""
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config(), clock=fake_clock)
        assert monitor.state is MonitorState.IDLE

        assert await monitor.poll() is None
        assert monitor.state is MonitorState.WAITING_FOR_FILE

        fake_clock.advance(0.01)
        assert await monitor.poll() is None
        assert monitor.state is MonitorState.WAITING_FOR_FILE

        log_path.write_text("Preparing setup\n")
        fake_clock.advance(0.01)
        assert await monitor.poll() is None
        assert monitor.state is MonitorState.TAILING

    @pytest.mark.asyncio
    async def test_existing_file_starts_tailing(self, log_path: Path, fake_clock) -> None:
        log_path.write_text("")
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config(), clock=fake_clock)

        await monitor.poll()

        assert monitor.state is MonitorState.TAILING

    @pytest.mark.asyncio
    async def test_first_match_wins_and_later_lines_are_ignored(
        self, log_path: Path, fake_clock
    ) -> None:
        """Test that a failure followed by success reports failure and classifies nothing after it."""
        log_path.write_text(
            "Installing\n"
            "[FAILURE] see C:\\logs\n"
            "[SUCCESS] installed at C:\\tools\\x\n"
            "[SUCCESS] installed at C:\\tools\\y\n"
        )
        classifier = RecordingClassifier()
        monitor = TailMonitor(
            WatchTarget(log_path), classifier, fast_config(), clock=fake_clock
        )

        event = await monitor.poll()

        assert event is not None
        assert event.kind is OutcomeKind.FAILURE
        assert event.detail == "see C:\\logs"
        assert event.line == "[FAILURE] see C:\\logs"
        assert classifier.seen == ["Installing", "[FAILURE] see C:\\logs"]
        assert monitor.state is MonitorState.DONE

        append_text(log_path, "[ERROR] late\n")
        assert await monitor.poll() is None
        assert classifier.seen == ["Installing", "[FAILURE] see C:\\logs"]
        assert monitor.event is event

    @pytest.mark.asyncio
    async def test_watchdog_when_file_never_appears(self, log_path: Path, fake_clock) -> None:
        """Test a budget of three poll intervals against a file that never exists."""
        monitor = TailMonitor(
            WatchTarget(log_path),
            config=fast_config(poll_interval_seconds=0.25, max_wait_seconds=0.75),
            clock=fake_clock,
        )

        results = []
        for _ in range(3):
            results.append(await monitor.poll())
            fake_clock.advance(0.25)
        results.append(await monitor.poll())

        assert results[:3] == [None, None, None]
        event = results[3]
        assert event.kind is OutcomeKind.TIMEOUT
        assert "did not appear" in event.detail
        assert event.elapsed_seconds == pytest.approx(0.75)
        assert event.line is None

        fake_clock.advance(10)
        assert await monitor.poll() is None

    @pytest.mark.asyncio
    async def test_watchdog_without_completion_marker(self, log_path: Path, fake_clock) -> None:
        log_path.write_text("still working\n")
        monitor = TailMonitor(
            WatchTarget(log_path), config=fast_config(max_wait_seconds=1), clock=fake_clock
        )

        assert await monitor.poll() is None
        fake_clock.advance(1)
        event = await monitor.poll()

        assert event.kind is OutcomeKind.TIMEOUT
        assert "no completion marker" in event.detail
        assert event.lines_read == 1
        assert "no line ending" not in event.detail

    @pytest.mark.asyncio
    async def test_watchdog_names_unterminated_last_line(self, log_path: Path, fake_clock) -> None:
        """Test that a marker written without a trailing newline is named in the timeout reason."""
        log_path.write_text("still working\n[SUCCESS] installed at C:\\x")
        monitor = TailMonitor(
            WatchTarget(log_path), config=fast_config(max_wait_seconds=1), clock=fake_clock
        )

        assert await monitor.poll() is None
        fake_clock.advance(1)
        event = await monitor.poll()

        assert event.kind is OutcomeKind.TIMEOUT
        assert "no completion marker" in event.detail
        assert "last line has no line ending yet" in event.detail
        assert "[SUCCESS] installed at" in event.detail
        assert event.lines_read == 1

    @pytest.mark.asyncio
    async def test_watchdog_disabled(self, log_path: Path, fake_clock) -> None:
        monitor = TailMonitor(
            WatchTarget(log_path), config=fast_config(max_wait_seconds=None), clock=fake_clock
        )

        await monitor.poll()
        fake_clock.advance(10**6)

        assert await monitor.poll() is None
        assert monitor.state is MonitorState.WAITING_FOR_FILE

    @pytest.mark.asyncio
    async def test_persistent_lock_reported_on_timeout(
        self, log_path: Path, fake_clock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a file locked for the whole budget is retried and then reported as a timeout."""
        log_path.write_text("[SUCCESS] installed at C:\\x\n")

        def locked(*args, **kwargs):
            raise PermissionError(13, "The process cannot access the file")

        monkeypatch.setattr(aiofiles, "open", locked)
        monitor = TailMonitor(
            WatchTarget(log_path), config=fast_config(max_wait_seconds=0.5), clock=fake_clock
        )

        assert await monitor.poll() is None
        assert monitor.state is MonitorState.TAILING
        fake_clock.advance(0.5)
        event = await monitor.poll()

        assert event.kind is OutcomeKind.TIMEOUT
        assert "stayed unreadable" in event.detail

    @pytest.mark.asyncio
    async def test_lock_released_before_budget(
        self, log_path: Path, fake_clock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        log_path.write_text("[SUCCESS] installed at C:\\x\n")
        real_open = aiofiles.open

        def locked(*args, **kwargs):
            raise PermissionError(13, "The process cannot access the file")

        monkeypatch.setattr(aiofiles, "open", locked)
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config(), clock=fake_clock)
        assert await monitor.poll() is None

        monkeypatch.setattr(aiofiles, "open", real_open)
        event = await monitor.poll()

        assert event.kind is OutcomeKind.SUCCESS
        assert event.detail == "C:\\x"


# ============================================================================
# Lifecycle tests
# ============================================================================


class TestTailMonitorLifecycle:
    """Background polling, waiting and stopping."""

    @pytest.mark.asyncio
    async def test_timeout_scenario(self, log_path: Path, recording_bus) -> None:
        """Test that a never-created file with a 30ms budget yields exactly one timeout."""
        monitor = TailMonitor(
            WatchTarget(log_path),
            config=MonitorConfig(poll_interval_seconds=0.01, max_wait_seconds=0.03),
            event_bus=recording_bus,
        )

        event = await monitor.run()

        assert event.kind is OutcomeKind.TIMEOUT
        assert 0.03 <= event.elapsed_seconds < 1.0
        assert monitor.state is MonitorState.DONE
        assert not monitor.is_running()

        await asyncio.sleep(0.05)
        assert [e.kind for e in recording_bus.outcomes()] == [OutcomeKind.TIMEOUT]

    @pytest.mark.asyncio
    async def test_error_scenario(self, log_path: Path, recording_bus) -> None:
        log_path.write_text("[ERROR] cannot continue\n")
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config(), event_bus=recording_bus)

        event = await monitor.run()

        assert event.kind is OutcomeKind.ERROR
        assert event.detail == "cannot continue"
        assert recording_bus.outcomes() == [event]
        with pytest.raises(InstallerError):
            event.raise_for_error()

    @pytest.mark.asyncio
    async def test_success_scenario(self, log_path: Path, recording_bus) -> None:
        log_path.write_text("[SUCCESS] installed at C:\\tools\\x\n")
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config(), event_bus=recording_bus)

        event = await monitor.run()

        assert event.kind is OutcomeKind.SUCCESS
        assert event.detail == "C:\\tools\\x"
        assert recording_bus.outcomes() == [event]

    @pytest.mark.asyncio
    async def test_state_change_events(self, log_path: Path, recording_bus) -> None:
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config(), event_bus=recording_bus)
        await monitor.start()

        await asyncio.sleep(0.03)
        log_path.write_text("[SUCCESS]\n")
        event = await monitor.wait(timeout=2)

        assert event.kind is OutcomeKind.SUCCESS
        changes = recording_bus.of_type(StateChange)
        assert [(c.previous, c.current) for c in changes] == [
            (MonitorState.IDLE, MonitorState.WAITING_FOR_FILE),
            (MonitorState.WAITING_FOR_FILE, MonitorState.TAILING),
            (MonitorState.TAILING, MonitorState.DONE),
        ]
        assert all(c.path == log_path for c in changes)
        assert all(n.monitor == "install.log" for n in recording_bus.notifications)
        assert isinstance(recording_bus.notifications[-1], OutcomeReported)

    @pytest.mark.asyncio
    async def test_lines_arrive_in_chunks_while_running(self, log_path: Path) -> None:
        """Test that lines written piecemeal reach the classifier whole, in order, once each."""
        classifier = RecordingClassifier()
        monitor = TailMonitor(WatchTarget(log_path), classifier, fast_config())
        chunks = ["Extract", "ing files\nRegis", "tering\r", "\nDone copy", "ing\n[SUCC", "ESS]\n"]

        await monitor.start()
        for chunk in chunks:
            append_text(log_path, chunk)
            await asyncio.sleep(0.02)
        event = await monitor.wait(timeout=2)

        assert event.kind is OutcomeKind.SUCCESS
        assert classifier.seen == ["Extracting files", "Registering", "Done copying", "[SUCCESS]"]

    @pytest.mark.asyncio
    async def test_stop_before_outcome(self, log_path: Path, recording_bus) -> None:
        monitor = TailMonitor(
            WatchTarget(log_path),
            config=fast_config(max_wait_seconds=None),
            event_bus=recording_bus,
        )
        await monitor.start()
        assert monitor.is_running()

        await monitor.stop()

        assert monitor.state is MonitorState.DONE
        assert not monitor.is_running()
        with pytest.raises(MonitorStoppedError):
            await monitor.wait()

        log_path.write_text("[SUCCESS]\n")
        await asyncio.sleep(0.03)
        assert recording_bus.outcomes() == []
        assert monitor.event is None

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, log_path: Path) -> None:
        log_path.write_text("[SUCCESS]\n")
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config())

        event = await monitor.run()
        await monitor.stop()
        await monitor.stop()

        assert await monitor.wait() is event

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, log_path: Path) -> None:
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config())
        await monitor.start()

        with pytest.raises(RuntimeError, match="already running"):
            await monitor.start()

        await monitor.stop()

    @pytest.mark.asyncio
    async def test_wait_before_start(self, log_path: Path) -> None:
        monitor = TailMonitor(WatchTarget(log_path))

        with pytest.raises(RuntimeError, match="has not been started"):
            await monitor.wait()

    @pytest.mark.asyncio
    async def test_wait_timeout_keeps_monitor_running(self, log_path: Path) -> None:
        monitor = TailMonitor(WatchTarget(log_path), config=fast_config(max_wait_seconds=None))
        await monitor.start()

        with pytest.raises(TimeoutError):
            await monitor.wait(timeout=0.03)

        assert monitor.is_running()
        log_path.write_text("[SUCCESS]\n")
        event = await monitor.wait(timeout=2)
        assert event.kind is OutcomeKind.SUCCESS

    @pytest.mark.asyncio
    async def test_async_context_manager(self, log_path: Path) -> None:
        log_path.write_text("[FAILED] exit code 1603\n")

        async with TailMonitor(WatchTarget(log_path), config=fast_config()) as monitor:
            event = await monitor.wait(timeout=2)

        assert event.kind is OutcomeKind.FAILURE
        assert event.detail == "exit code 1603"
        assert not monitor.is_running()

    @pytest.mark.asyncio
    async def test_unexpected_error_surfaces_from_wait(self, log_path: Path) -> None:
        log_path.write_text("anything\n")
        monitor = TailMonitor(WatchTarget(log_path), ExplodingClassifier(), fast_config())
        await monitor.start()

        with pytest.raises(RuntimeError, match="classifier bug"):
            await monitor.wait(timeout=2)

        assert monitor.state is MonitorState.DONE
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_monitors_run_concurrently(self, tmp_path: Path) -> None:
        """Test two independent monitors, one of them reading a UTF-16 log."""
        vs_log = tmp_path / "build-tools.log"
        msi_log = tmp_path / "python.log"
        vs_log.write_text("[SUCCESS] installed at C:\\BuildTools\n")
        msi_log.write_bytes(b"\xff\xfe" + "[SUCCESS] installed at C:\\Python27\r\n".encode("utf-16-le"))

        first = TailMonitor(WatchTarget(vs_log), config=fast_config())
        second = TailMonitor(WatchTarget(msi_log, "ucs2"), config=fast_config())

        events = await asyncio.gather(first.run(), second.run())

        assert [e.detail for e in events] == ["C:\\BuildTools", "C:\\Python27"]
        assert [e.monitor for e in events] == ["build-tools.log", "python.log"]
