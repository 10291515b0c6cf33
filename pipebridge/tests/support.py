"""
Shared helpers for the pipebridge test suite.
"""

import io
import os
import threading
import time
import unittest
from typing import Callable, List, Optional


requires_fifo = unittest.skipUnless(hasattr(os, 'mkfifo'), "named pipes need a POSIX system")


class RecordingStream(io.BytesIO):
    """
    BytesIO that records flush/sync/close calls into a shared event list
    and can be told to fail.
    """

    def __init__(
        self,
        name: str,
        events: List[str],
        data: bytes = b'',
        durable: bool = False,
        fail_read_after: Optional[int] = None,
        fail_write_after: Optional[int] = None,
        fail_flush: bool = False
    ):
        super().__init__(data)
        self.name = name
        self.events = events
        self.durable = durable
        self.fail_read_after = fail_read_after
        self.fail_write_after = fail_write_after
        self.fail_flush = fail_flush
        self.close_calls = 0
        self._reads = 0
        self._writes = 0

    def read(self, size=-1):
        if self.fail_read_after is not None and self._reads >= self.fail_read_after:
            raise OSError(5, "Input/output error")
        self._reads += 1
        return super().read(size)

    def write(self, data):
        if self.fail_write_after is not None and self._writes >= self.fail_write_after:
            raise OSError(28, "No space left on device")
        self._writes += 1
        return super().write(data)

    def flush(self):
        if self.closed:
            return
        self.events.append(f"flush {self.name}")
        if self.fail_flush:
            raise OSError(5, "Input/output error")
        super().flush()

    def __getattr__(self, item):
        if item == 'sync' and self.__dict__.get('durable'):
            return self._sync
        raise AttributeError(item)

    def _sync(self):
        self.events.append(f"sync {self.name}")

    def close(self):
        if not self.closed:
            self.close_calls += 1
            self.events.append(f"close {self.name}")
            self.final_value = self.getvalue()
        super().close()


class ChunkedSource(io.RawIOBase):
    """Returns the given pieces one read at a time, then EOF."""

    def __init__(self, pieces: List[bytes]):
        super().__init__()
        self._pieces = list(pieces)

    def readable(self) -> bool:
        return True

    def read(self, size=-1):
        if not self._pieces:
            return b''
        piece = self._pieces.pop(0)
        if size is not None and 0 <= size < len(piece):
            self._pieces.insert(0, piece[size:])
            piece = piece[:size]
        return piece


class PeerThread(threading.Thread):
    """
    Plays the external application on the other side of a FIFO.

    ``mode='read'`` opens the FIFO for reading and collects everything;
    ``mode='write'`` opens it for writing and sends ``payload`` in pieces.
    """

    def __init__(
        self,
        path: str,
        mode: str,
        payload: bytes = b'',
        piece_size: int = 4096,
        delay: float = 0.0,
        before_close: Optional[Callable[[object], None]] = None
    ):
        super().__init__(daemon=True)
        self.path = path
        self.mode = mode
        self.payload = payload
        self.piece_size = piece_size
        self.delay = delay
        self.before_close = before_close
        self.received = b''
        self.error: Optional[Exception] = None

    def run(self):
        try:
            if self.delay:
                time.sleep(self.delay)
            wait_for_path(self.path)
            if self.mode == 'read':
                with open(self.path, 'rb') as f:
                    self.received = f.read()
            else:
                with open(self.path, 'wb') as f:
                    for start in range(0, len(self.payload), self.piece_size):
                        f.write(self.payload[start:start + self.piece_size])
                        f.flush()
                    if self.before_close is not None:
                        self.before_close(f)
        except Exception as e:
            self.error = e


def wait_for_path(path: str, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not os.path.exists(path):
        if time.monotonic() > deadline:
            raise TimeoutError(f"{path} was never created")
        time.sleep(0.01)


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
