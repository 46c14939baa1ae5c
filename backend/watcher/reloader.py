"""
CertReload Debounced Reloader.

Turns a burst of pending-change signals into a single reload call.
Requires Python 3.11+.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from utils.logger import LoggerMixin
from watcher.pending import PendingChangeFlag


class ReloaderState(str, Enum):
    """Phases of the reload cycle."""

    IDLE = "idle"
    SETTLING = "settling"
    RELOADING = "reloading"


@dataclass
class ReloadStats:
    """Counters describing past reload attempts."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    last_attempt_at: float | None = None
    last_success_at: float | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "last_attempt_at": self.last_attempt_at,
            "last_success_at": self.last_success_at,
            "last_error": self.last_error,
        }


class DebouncedReloader(LoggerMixin):
    """
    Waits for pending changes and reloads once per burst.

    After waking it sleeps for the settle delay so the rest of a
    multi-file write can land, then calls the reload operation exactly
    once and clears the flag whatever the outcome.

    The flag is cleared after the reload call returns without being
    re-checked. A change that lands while the reload is running is
    therefore lost until another change arrives; keep the settle delay
    above the gap between files written by the certificate issuer.
    """

    def __init__(
        self,
        pending: PendingChangeFlag,
        reload: Callable[[], Any],
        settle_delay_ms: int = 3000,
    ) -> None:
        """
        Initialize the reloader.

        Args:
            pending: Flag shared with the directory watcher
            reload: Operation re-applying the certificate set; failure is
                signalled by raising or by returning False
            settle_delay_ms: Delay between wake-up and reload in milliseconds
        """
        self._pending = pending
        self._reload = reload
        self._settle_delay_ms = settle_delay_ms
        self._state = ReloaderState.IDLE
        self._stats = ReloadStats()
        self._stopping = threading.Event()
        self._reload_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the reload loop on a daemon thread."""
        if self._thread is not None:
            return

        self._thread = threading.Thread(
            target=self.run,
            name="certificate-reloader",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the reload loop after any in-flight reload finishes."""
        self._stopping.set()
        self._pending.close()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def run(self) -> None:
        """Reload loop; returns only when stopped."""
        while not self._stopping.is_set():
            try:
                self.run_once()
            except Exception as e:
                self.log.error("reloader_cycle_failed", error=str(e), exc_info=True)

    def run_once(self) -> bool:
        """
        Run one wait/settle/reload cycle.

        Returns:
            True if a reload was attempted, False if stopped before that
        """
        self._state = ReloaderState.IDLE
        self.log.debug("listening_for_certificate_changes")
        if not self._pending.wait():
            return False

        self._state = ReloaderState.SETTLING
        self.log.debug(
            "certificate_change_received",
            settle_delay_ms=self._settle_delay_ms,
        )
        if self._stopping.wait(self._settle_delay_ms / 1000):
            return False

        self._state = ReloaderState.RELOADING
        try:
            with self._reload_lock:
                self._attempt_reload(trigger="watcher")
        finally:
            self._pending.clear()
            self._state = ReloaderState.IDLE
        return True

    def reload_now(self) -> bool:
        """
        Reload immediately, bypassing the settle delay.

        Never runs concurrently with a watcher-triggered reload and leaves
        the pending flag untouched.

        Returns:
            True if the reload succeeded
        """
        with self._reload_lock:
            return self._attempt_reload(trigger="manual")

    def _attempt_reload(self, trigger: str) -> bool:
        with self._stats_lock:
            self._stats.attempts += 1
            self._stats.last_attempt_at = time.time()
            attempt = self._stats.attempts
        self.log.info("reloading_certificates", attempt=attempt, trigger=trigger)
        try:
            result = self._reload()
        except Exception as e:
            self._record_failure(str(e))
            self.log.error(
                "certificate_reload_failed",
                error=str(e),
                exc_info=True,
            )
            return False

        if result is False:
            error = "Reload operation reported failure"
            self._record_failure(error)
            self.log.error("certificate_reload_failed", error=error)
            return False

        with self._stats_lock:
            self._stats.successes += 1
            self._stats.last_success_at = time.time()
            self._stats.last_error = None
            successes = self._stats.successes
        self.log.info("certificates_reloaded", successes=successes)
        return True

    def _record_failure(self, error: str) -> None:
        with self._stats_lock:
            self._stats.failures += 1
            self._stats.last_error = error

    @property
    def state(self) -> ReloaderState:
        return self._state

    @property
    def stats(self) -> ReloadStats:
        """Snapshot of the reload counters."""
        with self._stats_lock:
            return replace(self._stats)

    @property
    def settle_delay_ms(self) -> int:
        return self._settle_delay_ms

    @property
    def is_running(self) -> bool:
        """Check if the reload loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()
