"""
CertReload Certificate Watcher Package.

File system monitoring and debounced TLS certificate reload.
Requires Python 3.11+.
"""

from watcher.directory_watcher import DirectoryWatcher, WatchSetupError
from watcher.pending import PendingChangeFlag
from watcher.reloader import DebouncedReloader, ReloaderState, ReloadStats
from watcher.service import CertificateReloadService, start_watching_and_reloading

__all__ = [
    "DirectoryWatcher",
    "WatchSetupError",
    "PendingChangeFlag",
    "DebouncedReloader",
    "ReloaderState",
    "ReloadStats",
    "CertificateReloadService",
    "start_watching_and_reloading",
]
