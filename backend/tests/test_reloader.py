"""
Tests for the Debounced Reloader.

Requires Python 3.11+.
"""

import threading
import time
from collections.abc import Callable, Generator

import pytest

from watcher.pending import PendingChangeFlag
from watcher.reloader import DebouncedReloader, ReloaderState

SETTLE_DELAY_MS = 200


class RecordingReload:
    """Reload operation recording when it was called."""

    def __init__(self, failures: int = 0) -> None:
        self.calls: list[float] = []
        self._failures = failures

    def __call__(self) -> None:
        self.calls.append(time.monotonic())
        if len(self.calls) <= self._failures:
            raise RuntimeError("certificate set incomplete")


@pytest.fixture
def pending() -> PendingChangeFlag:
    return PendingChangeFlag()


@pytest.fixture
def reload() -> RecordingReload:
    return RecordingReload()


@pytest.fixture
def reloader(
    pending: PendingChangeFlag, reload: RecordingReload
) -> Generator[DebouncedReloader, None, None]:
    """Running reloader with a short settle delay."""
    instance = DebouncedReloader(pending, reload, settle_delay_ms=SETTLE_DELAY_MS)
    instance.start()
    yield instance
    instance.stop()


class TestDebouncedReloaderCycle:
    """Single cycles driven through run_once."""

    def test_run_once_reloads_and_clears(self, pending: PendingChangeFlag, reload: RecordingReload):
        """One pending change produces one reload and clears the flag."""
        instance = DebouncedReloader(pending, reload, settle_delay_ms=0)
        pending.set()

        assert instance.run_once() is True
        assert len(reload.calls) == 1
        assert not pending.is_set
        assert instance.state == ReloaderState.IDLE

    def test_run_once_returns_false_when_closed(self, pending: PendingChangeFlag, reload: RecordingReload):
        """A closed flag ends the cycle without reloading."""
        instance = DebouncedReloader(pending, reload, settle_delay_ms=0)
        pending.close()

        assert instance.run_once() is False
        assert reload.calls == []

    def test_failed_reload_still_clears_flag(self, pending: PendingChangeFlag):
        """A raising reload is logged, counted and the flag cleared."""
        instance = DebouncedReloader(pending, RecordingReload(failures=1), settle_delay_ms=0)
        pending.set()

        assert instance.run_once() is True
        assert not pending.is_set

        stats = instance.stats
        assert stats.attempts == 1
        assert stats.failures == 1
        assert stats.successes == 0
        assert stats.last_error == "certificate set incomplete"

    def test_false_result_counts_as_failure(self, pending: PendingChangeFlag):
        """A reload returning False is treated as failed."""
        instance = DebouncedReloader(pending, lambda: False, settle_delay_ms=0)
        pending.set()

        instance.run_once()

        assert instance.stats.failures == 1
        assert not pending.is_set

    def test_change_during_reload_is_dropped(self, pending: PendingChangeFlag):
        """A change signalled while the reload runs is cleared with it."""
        calls: list[int] = []

        def reload_while_files_change() -> None:
            calls.append(1)
            pending.set()

        instance = DebouncedReloader(pending, reload_while_files_change, settle_delay_ms=0)
        pending.set()
        instance.run_once()

        assert len(calls) == 1
        assert not pending.is_set

    def test_reload_now_leaves_flag_untouched(self, pending: PendingChangeFlag, reload: RecordingReload):
        """Manual reloads bypass the debounce and do not consume changes."""
        instance = DebouncedReloader(pending, reload, settle_delay_ms=0)
        pending.set()

        assert instance.reload_now() is True
        assert len(reload.calls) == 1
        assert pending.is_set

    def test_stats_readable_during_reload(self, pending: PendingChangeFlag):
        """A snapshot taken mid-reload is consistent and does not wait for it."""
        started = threading.Event()
        release = threading.Event()

        def slow_reload() -> None:
            started.set()
            release.wait(5)

        instance = DebouncedReloader(pending, slow_reload, settle_delay_ms=0)
        pending.set()
        worker = threading.Thread(target=instance.run_once)
        worker.start()
        try:
            assert started.wait(5)

            stats = instance.stats
            assert stats.attempts == 1
            assert stats.successes == 0
            assert stats.failures == 0
            assert instance.state == ReloaderState.RELOADING
        finally:
            release.set()
            worker.join(5)

        assert instance.stats.successes == 1


class TestDebouncedReloaderThread:
    """Timing behaviour of the running reloader."""

    def test_single_change_reloads_once_after_delay(
        self,
        reloader: DebouncedReloader,
        pending: PendingChangeFlag,
        reload: RecordingReload,
        wait_until: Callable[..., bool],
    ):
        """A single event reloads once, no sooner than the settle delay."""
        started = time.monotonic()
        pending.set()

        assert wait_until(lambda: len(reload.calls) == 1)
        assert reload.calls[0] - started >= SETTLE_DELAY_MS / 1000 - 0.01

        time.sleep(SETTLE_DELAY_MS / 1000 * 2)
        assert len(reload.calls) == 1
        assert not pending.is_set

    def test_burst_within_window_reloads_once(
        self,
        reloader: DebouncedReloader,
        pending: PendingChangeFlag,
        reload: RecordingReload,
        wait_until: Callable[..., bool],
    ):
        """Events landing during the settle delay fold into one reload."""
        started = time.monotonic()
        pending.set()
        time.sleep(0.05)
        pending.set()
        time.sleep(0.1)
        pending.set()

        assert wait_until(lambda: len(reload.calls) == 1)
        time.sleep(SETTLE_DELAY_MS / 1000 * 2)

        assert len(reload.calls) == 1
        assert reload.calls[0] - started >= SETTLE_DELAY_MS / 1000 - 0.01

    def test_separate_bursts_reload_twice(
        self,
        reloader: DebouncedReloader,
        pending: PendingChangeFlag,
        reload: RecordingReload,
        wait_until: Callable[..., bool],
    ):
        """Bursts further apart than the settle delay each reload."""
        pending.set()
        assert wait_until(lambda: len(reload.calls) == 1)
        assert wait_until(lambda: reloader.state == ReloaderState.IDLE)

        time.sleep(0.05)
        pending.set()
        assert wait_until(lambda: len(reload.calls) == 2)

        assert reload.calls[1] - reload.calls[0] >= SETTLE_DELAY_MS / 1000

    def test_no_reload_without_change(self, reloader: DebouncedReloader, reload: RecordingReload):
        """An idle reloader never calls reload on its own."""
        time.sleep(SETTLE_DELAY_MS / 1000 * 2)

        assert reload.calls == []
        assert reloader.state == ReloaderState.IDLE
        assert reloader.is_running

    def test_failure_then_later_change_retries(
        self,
        pending: PendingChangeFlag,
        wait_until: Callable[..., bool],
    ):
        """A failed reload waits for the next change and then succeeds."""
        reload = RecordingReload(failures=1)
        instance = DebouncedReloader(pending, reload, settle_delay_ms=50)
        instance.start()
        try:
            pending.set()
            assert wait_until(lambda: instance.stats.failures == 1)
            assert wait_until(lambda: not pending.is_set)

            # No retry without a new change
            time.sleep(0.2)
            assert len(reload.calls) == 1

            pending.set()
            assert wait_until(lambda: instance.stats.successes == 1)
            assert instance.stats.attempts == 2
            assert instance.stats.last_error is None
        finally:
            instance.stop()

    def test_stop_during_settle_skips_reload(
        self,
        pending: PendingChangeFlag,
        reload: RecordingReload,
        wait_until: Callable[..., bool],
    ):
        """Stopping while settling ends the loop without reloading."""
        instance = DebouncedReloader(pending, reload, settle_delay_ms=5000)
        instance.start()
        pending.set()
        assert wait_until(lambda: instance.state == ReloaderState.SETTLING)

        instance.stop()

        assert not instance.is_running
        assert reload.calls == []
