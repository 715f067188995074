"""
Cancellation tokens for resolve and registry operations.
"""
import threading
import time
from typing import Optional

from .errors import OperationCancelledError


class CancellationToken:
    """
    Caller-owned cancellation flag with an optional deadline.

    The token is checked at the suspension points of an operation (before
    store access, before the audit write). A token whose timeout has elapsed
    behaves exactly like one that was cancelled explicitly.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self, operation: str = "operation"):
        if self.cancelled:
            raise OperationCancelledError(f"{operation} cancelled")


def check_cancelled(token: Optional[CancellationToken], operation: str):
    """Raise OperationCancelledError when a token is given and has fired."""
    if token is not None:
        token.raise_if_cancelled(operation)
