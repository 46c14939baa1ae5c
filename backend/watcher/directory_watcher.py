"""
CertReload Directory Watcher.

Watches the certificate directory using watchdog and raises the
pending-change flag for every burst of file system events.
Requires Python 3.11+.
"""

import os
import queue
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from tlshost.endpoint import TLSEndpoint
from utils.logger import LoggerMixin
from watcher.pending import PendingChangeFlag

# Open/close notifications are excluded: loading the certificates during a
# reload opens every file in the directory and would trigger another reload.
WATCHED_EVENT_TYPES = frozenset(
    {
        EVENT_TYPE_CREATED,
        EVENT_TYPE_DELETED,
        EVENT_TYPE_MODIFIED,
        EVENT_TYPE_MOVED,
    }
)


class WatchSetupError(Exception):
    """Raised when the certificate directory cannot be registered for watching."""

    def __init__(self, path: Path, cause: Exception) -> None:
        super().__init__(f"Cannot watch {path}: {cause}")
        self.path = path


class CertificateDirectoryHandler(FileSystemEventHandler):
    """Queues create, delete, modify and move events for the watcher loop."""

    def __init__(self, events: "queue.Queue[FileSystemEvent | None]") -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in WATCHED_EVENT_TYPES:
            self._events.put(event)


class DirectoryWatcher(LoggerMixin):
    """
    Watches the directory of the active certificate file.

    The directory is the parent of the first certificate of the first
    host config, resolved with the host's own path rule. Events are not
    interpreted: any burst simply sets the shared pending flag. Watching
    is non-recursive.
    """

    def __init__(
        self,
        host: TLSEndpoint,
        pending: PendingChangeFlag,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        """
        Initialize the directory watcher.

        Args:
            host: TLS host providing the certificate configuration
            pending: Flag shared with the reloader
            observer_factory: Creates the watchdog observer
        """
        self._host = host
        self._pending = pending
        self._observer_factory = observer_factory
        self._events: queue.Queue[FileSystemEvent | None] = queue.Queue()
        self._handler = CertificateDirectoryHandler(self._events)
        self._observer: BaseObserver | None = None
        self._watch_target: Path | None = None
        self._setup_error: Exception | None = None
        self._stopping = threading.Event()
        self._setup_done = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Resolve, register and watch on a daemon thread."""
        if self._thread is not None:
            return

        self._thread = threading.Thread(
            target=self.run,
            name="certificate-directory-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop watching and wait for the worker thread to exit."""
        self._stopping.set()
        self._events.put(None)

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=timeout)
            self._observer = None

        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def run(self) -> None:
        """
        Thread body.

        Configuration and registration failures end the thread after
        logging; the host keeps serving without live reload.
        """
        try:
            path = self.resolve_watch_target()
            if path is None:
                return

            try:
                self.register(path)
            except WatchSetupError as e:
                self._setup_error = e
                return
        finally:
            self._setup_done.set()

        self.watch()

    def wait_for_setup(self, timeout: float | None = None) -> bool:
        """
        Block until the thread has registered the directory or given up.

        Returns:
            True if setup finished within the timeout
        """
        return self._setup_done.wait(timeout)

    def resolve_watch_target(self) -> Path | None:
        """
        Find the directory holding the active certificate file.

        Returns:
            The directory to watch, or None if nothing is configured
        """
        host_configs = self._host.find_ssl_host_configs()
        if not host_configs:
            self.log.error("no_ssl_host_config", reason="Can't watch for changes")
            return None

        # Only the first host's first certificate decides the directory
        certificates = host_configs[0].certificates
        if not certificates:
            self.log.error(
                "no_certificate_in_ssl_host_config",
                host=host_configs[0].host_name,
                reason="Can't watch for changes",
            )
            return None

        certificate_file = certificates[0].certificate_file
        if certificate_file is None:
            self.log.error(
                "certificate_file_not_set",
                host=host_configs[0].host_name,
                reason="Can't watch for changes",
            )
            return None

        self._watch_target = self._host.resolve_path(certificate_file).parent
        self.log.info("watching_certificate_directory", path=str(self._watch_target))
        return self._watch_target

    def register(self, path: Path) -> None:
        """
        Subscribe to events for the directory.

        Raises:
            WatchSetupError: If the observer cannot watch the directory
        """
        observer = self._observer_factory()
        try:
            observer.schedule(self._handler, str(path), recursive=False)
            observer.start()
        except OSError as e:
            self.log.error(
                "certificate_watch_setup_failed",
                path=str(path),
                error=str(e),
                exc_info=True,
            )
            raise WatchSetupError(path, e) from e

        self._observer = observer
        if self._stopping.is_set():
            # stop() ran before the observer was published and could not stop it
            observer.stop()
            observer.join()
            self._observer = None

    def watch(self) -> None:
        """Turn queued event bursts into pending changes until stopped."""
        while not self._stopping.is_set():
            try:
                events = self._take_events()
            except Exception as e:
                self.log.error(
                    "certificate_watch_interrupted",
                    error=str(e),
                    reason="Retrying",
                    exc_info=True,
                )
                continue

            if not events:
                continue

            for event in events:
                self.log.debug(
                    "certificate_directory_event",
                    kind=event.event_type,
                    file=os.path.basename(os.fsdecode(event.src_path)),
                )

            # Reloading here would read a half-written certificate set; the
            # reloader waits for the burst to settle first
            self._pending.set()

    def _take_events(self) -> list[FileSystemEvent]:
        """Block for one event, then drain everything already queued."""
        batch = [self._events.get()]
        while True:
            try:
                batch.append(self._events.get_nowait())
            except queue.Empty:
                break
        return [event for event in batch if event is not None]

    @property
    def watch_target(self) -> Path | None:
        """Directory being watched, once resolved."""
        return self._watch_target

    @property
    def is_registered(self) -> bool:
        """Check if the observer is subscribed to the directory."""
        return self._observer is not None

    @property
    def setup_error(self) -> Exception | None:
        return self._setup_error

    @property
    def is_running(self) -> bool:
        """Check if the watcher thread is alive."""
        return self._thread is not None and self._thread.is_alive()
