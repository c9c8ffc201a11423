"""Cooperative cancellation for long running walks."""

import threading
import time
from typing import Optional

from gitforensics.errors import CancellationError


class CancellationToken:
    """Signals that the current build has been interrupted.

    Long running loops call :meth:`raise_if_cancelled` between iterations.
    The token is set explicitly via :meth:`cancel` or implicitly when the
    optional timeout has elapsed.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        """Initialize the token.

        Args:
            timeout: Seconds after which the token counts as cancelled (optional)
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        """Cancel all operations polling this token."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self) -> None:
        """Raise CancellationError if the token has been cancelled.

        Raises:
            CancellationError: If cancelled or timed out
        """
        if self.cancelled:
            if self._event.is_set():
                raise CancellationError("Operation has been cancelled")
            raise CancellationError("Operation timed out")
