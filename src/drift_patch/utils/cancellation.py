"""
Cooperative cancellation for long-running batch computations.
"""
import threading

from .exceptions import OperationCancelledError


class CancellationToken:
    """Flag checked between per-feature iterations of detection and synthesis."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        if self._event.is_set():
            raise OperationCancelledError(
                f"{operation} cancelled",
                details={"operation": operation}
            )


def check_cancelled(token, operation: str = "operation") -> None:
    """Raise OperationCancelledError when token is set. A None token is never cancelled."""
    if token is not None:
        token.raise_if_cancelled(operation)
