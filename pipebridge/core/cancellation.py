"""
Cancellation Token

A one-shot flag shared between the thread that requests a stop and the
thread doing blocking work.

Author: pipebridge developers
Version: 1.0.0
"""

import threading
from typing import Optional


class CancellationToken:
    """
    Cooperative cancellation signal.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Sleep until cancelled or until ``timeout`` elapses.

        Returns:
            True if the token was cancelled
        """
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
