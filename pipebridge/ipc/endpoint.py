"""
FIFO Endpoint Module

Opens the OS side of a named pipe. A plain ``open()`` on a FIFO blocks
until a peer opens the opposite end; this module adds a deadline and
cancellation on top of that rendezvous.

Write end: opened with O_NONBLOCK and retried while the kernel reports
ENXIO (no reader yet), then switched back to blocking mode.

Read end: a non-blocking open would succeed immediately and report EOF
until a writer arrives, so the open is done in blocking mode while a
watchdog thread waits for the deadline or cancellation. When either
fires, the watchdog briefly opens the write end itself, which releases
the blocked open. A released descriptor is kept when a real writer is
still attached or has left data behind; otherwise it is closed and the
open is reported as timed out or cancelled.

Author: pipebridge developers
Version: 1.0.0
"""

import errno
import os
import select
import threading
import time
from enum import Enum
from typing import BinaryIO, Optional

from pipebridge.core.cancellation import CancellationToken
from pipebridge.exceptions import OpenError, OpenTimeoutError, OpenCancelledError
from pipebridge.logger import get_logger


class PipeEnd(Enum):
    """Which end of the FIFO the bridge holds."""
    READ = "read"
    WRITE = "write"


class FifoEndpoint:
    """
    Opens FIFO ends with an optional deadline and cancellation token.

    Example:
        >>> endpoint = FifoEndpoint()
        >>> stream = endpoint.open('/tmp/bridge0', PipeEnd.WRITE, timeout=5.0)
    """

    def __init__(self, poll_interval: float = 0.05):
        self._poll_interval = poll_interval
        self._logger = get_logger('endpoint')

    def open(
        self,
        path: str,
        end: PipeEnd,
        token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None
    ) -> BinaryIO:
        """
        Open one end of the FIFO at ``path``.

        Blocks the calling thread until a peer opens the other end, the
        deadline passes, or ``token`` is cancelled.

        Args:
            path: FIFO path
            end: End to open
            token: Cancellation token checked while waiting
            timeout: Seconds to wait for a peer, None for no limit

        Returns:
            Unbuffered binary stream over the opened descriptor

        Raises:
            OpenTimeoutError: No peer before the deadline
            OpenCancelledError: Token cancelled while waiting
            OpenError: Any other OS error
        """
        if token is not None and token.cancelled:
            raise OpenCancelledError(path)

        self._logger.debug(
            "Waiting for peer",
            context={'path': path, 'end': end.value, 'timeout': timeout}
        )

        if end is PipeEnd.WRITE:
            fd = self._open_write_end(path, token, timeout)
            return os.fdopen(fd, 'wb', buffering=0)

        fd = self._open_read_end(path, token, timeout)
        return os.fdopen(fd, 'rb', buffering=0)

    def _open_write_end(
        self,
        path: str,
        token: Optional[CancellationToken],
        timeout: Optional[float]
    ) -> int:
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            if token is not None and token.cancelled:
                raise OpenCancelledError(path)

            try:
                fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
            except OSError as e:
                if e.errno != errno.ENXIO:
                    raise OpenError(
                        f"Cannot open pipe for writing: {e.strerror}",
                        side="pipe",
                        path=path,
                        context={'errno': e.errno}
                    ) from e
            else:
                os.set_blocking(fd, True)
                return fd

            wait = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise OpenTimeoutError(path, timeout)
                wait = min(wait, remaining)

            if token is not None:
                token.wait(wait)
            else:
                time.sleep(wait)

    def _open_read_end(
        self,
        path: str,
        token: Optional[CancellationToken],
        timeout: Optional[float]
    ) -> int:
        if token is None and timeout is None:
            return self._blocking_open(path, os.O_RDONLY, "reading")

        opened = threading.Event()
        released = threading.Event()
        deadline = None if timeout is None else time.monotonic() + timeout

        def release_when_due() -> None:
            while not opened.is_set():
                expired = deadline is not None and time.monotonic() >= deadline
                if expired or (token is not None and token.cancelled):
                    try:
                        fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
                    except OSError as e:
                        if e.errno == errno.ENXIO:
                            # Reader has not reached open() yet
                            opened.wait(self._poll_interval)
                            continue
                        self._logger.warning(
                            "Cannot release blocked pipe open",
                            context={'path': path, 'errno': e.errno}
                        )
                        return
                    released.set()
                    os.close(fd)
                    return
                opened.wait(self._poll_interval)

        watchdog = threading.Thread(
            target=release_when_due,
            name="pipebridge-open-watchdog",
            daemon=True
        )
        watchdog.start()

        try:
            fd = self._blocking_open(path, os.O_RDONLY, "reading")
        finally:
            opened.set()
            watchdog.join()

        if not released.is_set():
            return fd

        # The watchdog's release open may have raced a real peer
        if token is not None and token.cancelled:
            os.close(fd)
            raise OpenCancelledError(path)
        if self._peer_attached(fd):
            self._logger.debug("Peer arrived at the deadline", context={'path': path})
            return fd
        os.close(fd)
        raise OpenTimeoutError(path, timeout)

    @staticmethod
    def _peer_attached(fd: int) -> bool:
        """
        True when a writer still holds the FIFO or left unread data.

        Only the watchdog's own writer has come and gone when the poll
        reports a hangup with nothing to read.
        """
        poller = select.poll()
        poller.register(fd, select.POLLIN)
        events = poller.poll(0)
        if not events:
            return True
        return bool(events[0][1] & select.POLLIN)

    @staticmethod
    def _blocking_open(path: str, flags: int, purpose: str) -> int:
        try:
            return os.open(path, flags)
        except OSError as e:
            raise OpenError(
                f"Cannot open pipe for {purpose}: {e.strerror}",
                side="pipe",
                path=path,
                context={'errno': e.errno}
            ) from e
