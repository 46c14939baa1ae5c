"""
CertReload Reload Service.

Startup hook wiring the directory watcher and debounced reloader
around one shared pending-change flag.
Requires Python 3.11+.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

from tlshost.endpoint import TLSEndpoint
from utils.config import get_settings
from utils.logger import LoggerMixin
from watcher.directory_watcher import DirectoryWatcher
from watcher.pending import PendingChangeFlag
from watcher.reloader import DebouncedReloader, ReloaderState, ReloadStats


class CertificateReloadService(LoggerMixin):
    """
    Live certificate reload for a TLS host.

    Owns the two worker threads for the lifetime of the host process.
    """

    def __init__(
        self,
        host: TLSEndpoint,
        settle_delay_ms: int,
        reload: Callable[[], Any] | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            host: TLS host whose certificate directory is watched
            settle_delay_ms: Delay between first change and reload
            reload: Reload operation, defaults to reloading the host's contexts
        """
        self._pending = PendingChangeFlag()
        self._watcher = DirectoryWatcher(host, self._pending)
        self._reloader = DebouncedReloader(
            self._pending,
            reload or host.reload_ssl_host_configs,
            settle_delay_ms=settle_delay_ms,
        )
        self._started = False

    def start(self) -> None:
        """Spawn both workers and return immediately."""
        if self._started:
            return

        self._reloader.start()
        self._watcher.start()
        self._started = True
        self.log.info(
            "certificate_reload_started",
            settle_delay_ms=self._reloader.settle_delay_ms,
        )

    def stop(self) -> None:
        """Stop both workers."""
        if not self._started:
            return

        self._watcher.stop()
        self._reloader.stop()
        self._started = False
        self.log.info("certificate_reload_stopped")

    def reload_now(self) -> bool:
        """Reload immediately without waiting for a file change."""
        return self._reloader.reload_now()

    def wait_until_watching(self, timeout: float | None = None) -> bool:
        """
        Block until the watcher has finished setting up.

        Returns:
            True if the directory is being watched, False if setup failed,
            found nothing to watch or did not finish within the timeout
        """
        self._watcher.wait_for_setup(timeout)
        return self.is_watching

    @property
    def watch_target(self) -> Path | None:
        return self._watcher.watch_target

    @property
    def is_watching(self) -> bool:
        """Check if the watcher is subscribed and its thread alive."""
        return self._watcher.is_registered and self._watcher.is_running

    @property
    def setup_error(self) -> Exception | None:
        return self._watcher.setup_error

    @property
    def reloader_state(self) -> ReloaderState:
        return self._reloader.state

    @property
    def stats(self) -> ReloadStats:
        return self._reloader.stats

    @property
    def settle_delay_ms(self) -> int:
        return self._reloader.settle_delay_ms

    @property
    def is_running(self) -> bool:
        return self._started


def start_watching_and_reloading(
    host: TLSEndpoint,
    settle_delay_ms: int | None = None,
    reload: Callable[[], Any] | None = None,
) -> CertificateReloadService:
    """
    Start live certificate reload for an initialized TLS host.

    Call once after the host is otherwise fully set up. Returns without
    blocking; the workers run on daemon threads.

    Args:
        host: TLS host to watch and reload
        settle_delay_ms: Settle delay, defaults to WATCHER_SETTLE_DELAY_MS
        reload: Reload operation, defaults to the host's own reload

    Returns:
        The running service
    """
    if settle_delay_ms is None:
        settle_delay_ms = get_settings().watcher.settle_delay_ms

    service = CertificateReloadService(host, settle_delay_ms, reload=reload)
    service.start()
    return service
