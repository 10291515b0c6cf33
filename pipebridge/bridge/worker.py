"""
Transfer Worker Module

The copy loop between two open streams. The worker relays bytes
unchanged, one chunk at a time, and releases both streams exactly once
whatever way the loop ends.

Author: pipebridge developers
Version: 1.0.0
"""

import os
import stat
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Optional, Tuple

from pipebridge.core.cancellation import CancellationToken
from pipebridge.exceptions import FileSystemException, StateError, TransferError
from pipebridge.logger import get_logger


DEFAULT_CHUNK_SIZE = 8192

# Errors a stream may raise during I/O; anything else is a bug and propagates.
STREAM_ERRORS = (OSError, ValueError, FileSystemException)


@dataclass
class TransferResult:
    """Outcome of a finished copy loop."""
    bytes_copied: int = 0
    chunks: int = 0
    elapsed: float = 0.0
    cancelled: bool = False


def is_durable(stream: Any) -> bool:
    """
    Check whether closing ``stream`` should be preceded by a sync.

    Streams with their own ``sync()`` (virtual stores) and streams backed
    by a regular host file qualify. Pipes, sockets and in-memory buffers
    do not.
    """
    if callable(getattr(stream, 'sync', None)):
        return True
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError):
        return False
    try:
        return stat.S_ISREG(os.fstat(fd).st_mode)
    except OSError:
        return False


class TransferWorker:
    """
    Copies ``source`` into ``sink`` until EOF or cancellation.

    Release order on every exit path: flush sink, sync sink (if durable),
    close sink, close source. A worker runs once.

    Example:
        >>> worker = TransferWorker(io.BytesIO(b'abc'), sink)
        >>> worker.run().bytes_copied
        3
    """

    def __init__(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        session_id: Optional[int] = None
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._source = source
        self._sink = sink
        self._chunk_size = chunk_size
        self._token = token or CancellationToken()
        self._on_progress = on_progress
        self._session_id = session_id
        self._bytes = 0
        self._chunks = 0
        self._started = False
        self._released = False
        self._logger = get_logger('worker')

    @property
    def bytes_copied(self) -> int:
        return self._bytes

    @property
    def released(self) -> bool:
        return self._released

    def cancel(self) -> None:
        """Ask the loop to stop before its next read."""
        self._token.cancel()

    def run(self) -> TransferResult:
        """
        Run the copy loop on the calling thread.

        Returns:
            TransferResult describing the relayed data

        Raises:
            TransferError: On a read, write or finalization failure
            StateError: If the worker already ran
        """
        if self._started:
            raise StateError("run", current="finished", message="Transfer worker already ran")
        self._started = True
        started_at = time.monotonic()

        try:
            cancelled = self._copy()
        except BaseException as exc:
            step, cleanup_error = self._release()
            if cleanup_error is not None:
                self._logger.warning(
                    f"Cleanup after failed transfer: {step} failed: {cleanup_error}",
                    session=self._session_id,
                    context={'original': type(exc).__name__}
                )
            raise

        step, cleanup_error = self._release()
        if cleanup_error is not None:
            raise TransferError(
                f"Failed to {step}: {cleanup_error}",
                side="read" if step == "close source" else "write",
                bytes_copied=self._bytes
            ) from cleanup_error

        result = TransferResult(
            bytes_copied=self._bytes,
            chunks=self._chunks,
            elapsed=time.monotonic() - started_at,
            cancelled=cancelled
        )
        self._logger.debug(
            "Copy loop finished",
            session=self._session_id,
            context={'bytes': result.bytes_copied, 'chunks': result.chunks, 'cancelled': cancelled}
        )
        return result

    def _copy(self) -> bool:
        """Relay chunks. Returns True if stopped by cancellation."""
        while True:
            if self._token.cancelled:
                return True

            try:
                chunk = self._source.read(self._chunk_size)
            except STREAM_ERRORS as e:
                raise TransferError(
                    f"Read failed: {e}", side="read", bytes_copied=self._bytes
                ) from e

            if not chunk:
                return False

            try:
                self._write_all(chunk)
            except STREAM_ERRORS as e:
                raise TransferError(
                    f"Write failed: {e}", side="write", bytes_copied=self._bytes
                ) from e

            self._bytes += len(chunk)
            self._chunks += 1
            if self._on_progress is not None:
                self._on_progress(self._bytes)

    def _write_all(self, chunk: bytes) -> None:
        view = memoryview(chunk)
        while view:
            written = self._sink.write(view)
            if written is None:
                # Raw streams return None only in non-blocking mode
                raise BlockingIOError("Sink would block")
            view = view[written:]

    def _release(self) -> Tuple[Optional[str], Optional[BaseException]]:
        """
        Flush, sync and close the sink, then close the source.

        Every step is attempted. Returns the first failing step and its
        error, or (None, None).
        """
        if self._released:
            return None, None
        self._released = True

        steps: list[Tuple[str, Callable[[], None]]] = [
            ("flush sink", self._sink.flush),
            ("sync sink", self._sync_sink),
            ("close sink", self._sink.close),
            ("close source", self._source.close),
        ]

        first: Tuple[Optional[str], Optional[BaseException]] = (None, None)
        for name, step in steps:
            try:
                step()
            except STREAM_ERRORS as e:
                self._logger.debug(f"{name} failed: {e}", session=self._session_id)
                if first[1] is None:
                    first = (name, e)
        return first

    def _sync_sink(self) -> None:
        sync = getattr(self._sink, 'sync', None)
        if callable(sync):
            sync()
        elif is_durable(self._sink):
            os.fsync(self._sink.fileno())
