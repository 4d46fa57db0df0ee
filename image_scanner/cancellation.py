import threading

from .exceptions import ScanCancelled


class CancellationToken:
    """
    Cooperative cancellation signal handed to every component of a run.
    Safe to cancel from a signal handler or another thread.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise ScanCancelled("Operation cancelled")
