"""
CertReload Pending Change Flag.

Coalesced "something changed" signal shared by the watcher and reloader.
Requires Python 3.11+.
"""

import threading


class PendingChangeFlag:
    """
    A boolean guarded by a condition variable.

    The directory watcher sets it on every observed event; the reloader
    waits for it and clears it after a reload attempt. Setting it while
    already set is a no-op, so bursts of events collapse into one pending
    change.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._changed = False
        self._closed = False

    def set(self) -> None:
        """Mark a change as pending and wake all waiters."""
        with self._condition:
            self._changed = True
            self._condition.notify_all()

    def clear(self) -> None:
        """Mark all pending changes as handled."""
        with self._condition:
            self._changed = False

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until a change is pending.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            True if a change is pending, False on timeout or after close()
        """
        with self._condition:
            self._condition.wait_for(lambda: self._changed or self._closed, timeout)
            return self._changed and not self._closed

    def close(self) -> None:
        """Release all current and future waiters."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def is_set(self) -> bool:
        with self._condition:
            return self._changed

    @property
    def is_closed(self) -> bool:
        with self._condition:
            return self._closed
