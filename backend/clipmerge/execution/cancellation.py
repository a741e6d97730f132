"""
Cooperative cancellation handle.

The caller keeps the token and calls cancel(); the executor polls it
between process waits and terminates the active process. There is no
other way to kill a running merge from outside the executor.
"""

import threading


class CancellationToken:
    """
    One-shot cancellation flag shared between caller and executor.

    A token can be reused across the jobs of one batch: once cancelled,
    every later run() resolves CANCELLED immediately.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Block up to timeout seconds; True if cancellation was requested."""
        return self._event.wait(timeout)
