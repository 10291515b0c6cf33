"""
Bridge Session Module

A session relays one virtual file through one FIFO in one direction.

State transitions:
    IDLE -> PROVISIONING: start() dispatched the setup thread
    PROVISIONING -> OPENING: FIFO exists
    OPENING -> STREAMING: both ends open, worker created
    STREAMING -> CLOSED: source exhausted or close() honored
    PROVISIONING/OPENING/STREAMING -> FAILED: setup or transfer error
    IDLE/PROVISIONING/OPENING -> CLOSED: close() before streaming

CLOSED and FAILED are terminal; a new transfer needs a new session.

Author: pipebridge developers
Version: 1.0.0
"""

import itertools
import threading
from concurrent.futures import Future
from enum import Enum, auto
from typing import Any, BinaryIO, Callable, Optional, Tuple

from pipebridge.core.cancellation import CancellationToken
from pipebridge.exceptions import (
    BridgeException,
    ErrorKind,
    FileSystemException,
    OpenError,
    OpenCancelledError,
    StateError,
)
from pipebridge.filesystem.path_resolver import PathResolver
from pipebridge.filesystem.provider import VirtualFileProvider
from pipebridge.ipc.endpoint import FifoEndpoint, PipeEnd
from pipebridge.ipc.fifo import PipeProvisioner
from pipebridge.logger import get_logger
from .launcher import AsyncLauncher
from .worker import DEFAULT_CHUNK_SIZE, TransferResult, TransferWorker


class Direction(Enum):
    """Which way bytes flow through a session."""

    EXPORT = "export"
    """Virtual file -> pipe; an external process reads the pipe."""

    IMPORT = "import"
    """Pipe -> virtual file; an external process writes the pipe."""

    @property
    def pipe_end(self) -> PipeEnd:
        return PipeEnd.WRITE if self is Direction.EXPORT else PipeEnd.READ


class SessionState(Enum):
    """Lifecycle states of a bridge session."""
    IDLE = auto()
    PROVISIONING = auto()
    OPENING = auto()
    STREAMING = auto()
    CLOSED = auto()
    FAILED = auto()

    @property
    def terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.FAILED)


_TRANSITIONS = {
    SessionState.IDLE: {SessionState.PROVISIONING, SessionState.CLOSED},
    SessionState.PROVISIONING: {SessionState.OPENING, SessionState.CLOSED, SessionState.FAILED},
    SessionState.OPENING: {SessionState.STREAMING, SessionState.CLOSED, SessionState.FAILED},
    SessionState.STREAMING: {SessionState.CLOSED, SessionState.FAILED},
    SessionState.CLOSED: set(),
    SessionState.FAILED: set(),
}


class BridgeSession:
    """
    Binds a virtual path, a pipe path and a direction.

    ``start()`` returns at once; provisioning, the blocking FIFO open and
    the copy loop all run on a launcher thread. Outcomes are observed
    through ``state``, ``error``, ``wait()``, ``future`` or the
    ``on_complete`` callback (called on the session thread).

    Example:
        >>> session = BridgeSession('/secret.jpg', '/tmp/bridge0',
        ...                         Direction.EXPORT, provider)
        >>> session.start()
        >>> session.wait(timeout=10)
        <SessionState.CLOSED: 5>
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        virtual_path: str,
        pipe_path: str,
        direction: Direction,
        provider: VirtualFileProvider,
        provisioner: Optional[PipeProvisioner] = None,
        endpoint: Optional[FifoEndpoint] = None,
        launcher: Optional[AsyncLauncher] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        open_timeout: Optional[float] = None,
        pipe_mode: Optional[int] = None,
        on_complete: Optional[Callable[['BridgeSession'], None]] = None,
        on_progress: Optional[Callable[[int], None]] = None
    ):
        self._session_id = next(BridgeSession._ids)
        self._virtual_path = PathResolver.normalize(virtual_path)
        self._pipe_path = str(pipe_path)
        self._direction = direction
        self._provider = provider
        self._provisioner = provisioner or PipeProvisioner()
        self._endpoint = endpoint or FifoEndpoint()
        self._launcher = launcher or AsyncLauncher()
        self._chunk_size = chunk_size
        self._open_timeout = open_timeout
        self._pipe_mode = pipe_mode
        self._on_complete = on_complete
        self._on_progress = on_progress

        self._state = SessionState.IDLE
        self._error: Optional[BaseException] = None
        self._result: Optional[TransferResult] = None
        self._worker: Optional[TransferWorker] = None
        self._future: Optional[Future] = None
        self._token = CancellationToken()
        self._done = threading.Event()
        self._lock = threading.RLock()
        self._logger = get_logger('session')

    # Accessors

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def virtual_path(self) -> str:
        return self._virtual_path

    @property
    def pipe_path(self) -> str:
        return self._pipe_path

    @property
    def real_path(self) -> str:
        """The OS path an external application should open."""
        return self._pipe_path

    @property
    def direction(self) -> Direction:
        return self._direction

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def error(self) -> Optional[BaseException]:
        with self._lock:
            return self._error

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        error = self.error
        if error is None:
            return None
        return getattr(error, 'kind', ErrorKind.TRANSFER)

    @property
    def result(self) -> Optional[TransferResult]:
        with self._lock:
            return self._result

    @property
    def future(self) -> Optional[Future]:
        return self._future

    @property
    def worker(self) -> Optional[TransferWorker]:
        with self._lock:
            return self._worker

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    # Control

    def start(self) -> Future:
        """
        Dispatch the session to a background thread.

        Returns:
            Future resolved with the TransferResult or the failure

        Raises:
            StateError: If the session is not IDLE
        """
        with self._lock:
            if self._state is not SessionState.IDLE:
                raise StateError("start", current=self._state.name)
            self._transition(SessionState.PROVISIONING)
            self._future = self._launcher.launch(f"session-{self._session_id}", self._run)
            return self._future

    def close(self) -> None:
        """
        Request the session to stop.

        An IDLE session closes immediately. A running session is
        cancelled cooperatively: a pending FIFO open is released and the
        copy loop stops before its next read. Terminal sessions are left
        as they are. Use ``wait()`` to block until the session settles.
        """
        with self._lock:
            if self._state.terminal:
                return
            self._token.cancel()
            if self._state is SessionState.IDLE:
                self._result = TransferResult(cancelled=True)
                self._transition(SessionState.CLOSED)
                self._done.set()
                notify = True
            else:
                notify = False
        self._logger.debug("Close requested", session=self._session_id)
        if notify:
            self._notify()

    def wait(self, timeout: Optional[float] = None) -> SessionState:
        """Block until the session is terminal or ``timeout`` elapses."""
        self._done.wait(timeout)
        return self.state

    # Session thread

    def _run(self) -> TransferResult:
        try:
            self._provision()
            source, sink = self._open_streams()
            result = self._stream(source, sink)
        except OpenCancelledError:
            result = TransferResult(cancelled=True)
        except Exception as exc:
            self._fail(exc)
            self._notify()
            raise
        self._finish(result)
        self._notify()
        return result

    def _provision(self) -> None:
        self._provisioner.ensure(self._pipe_path, self._pipe_mode)
        if self._token.cancelled:
            raise OpenCancelledError(self._pipe_path)
        self._set_state(SessionState.OPENING)

    def _open_streams(self) -> Tuple[BinaryIO, BinaryIO]:
        """Open the virtual side, then the FIFO side. Returns (source, sink)."""
        try:
            self._provider.check_mounted(self._virtual_path)
            if self._direction is Direction.EXPORT:
                vfs_stream = self._provider.open_for_read(self._virtual_path)
            else:
                vfs_stream = self._provider.open_for_write(self._virtual_path)
        except (FileSystemException, OSError) as e:
            raise OpenError(
                f"Cannot open virtual file: {e}",
                side="virtual",
                path=self._virtual_path
            ) from e

        try:
            pipe_stream = self._endpoint.open(
                self._pipe_path,
                self._direction.pipe_end,
                token=self._token,
                timeout=self._open_timeout
            )
        except Exception:
            self._close_quietly(vfs_stream)
            raise

        if self._direction is Direction.EXPORT:
            return vfs_stream, pipe_stream
        return pipe_stream, vfs_stream

    def _stream(self, source: BinaryIO, sink: BinaryIO) -> TransferResult:
        with self._lock:
            if self._worker is not None:
                raise StateError("stream", current=self._state.name,
                                 message="Session already has a transfer worker")
            self._worker = TransferWorker(
                source,
                sink,
                chunk_size=self._chunk_size,
                token=self._token,
                on_progress=self._on_progress,
                session_id=self._session_id
            )
            self._transition(SessionState.STREAMING)
        return self._worker.run()

    def _finish(self, result: TransferResult) -> None:
        with self._lock:
            self._result = result
            self._transition(SessionState.CLOSED)
            self._done.set()
        self._logger.info(
            "Session closed",
            session=self._session_id,
            context={
                'direction': self._direction.value,
                'bytes': result.bytes_copied,
                'cancelled': result.cancelled,
            }
        )

    def _fail(self, exc: Exception) -> None:
        with self._lock:
            self._error = exc
            self._transition(SessionState.FAILED)
            self._done.set()
        if isinstance(exc, BridgeException):
            self._logger.error(
                f"Session failed: {exc}",
                session=self._session_id,
                context={'kind': exc.kind.value, 'pipe': self._pipe_path}
            )
        else:
            self._logger.exception("Session crashed", exc=exc, session=self._session_id)

    def _notify(self) -> None:
        if self._on_complete is None:
            return
        callback, self._on_complete = self._on_complete, None
        try:
            callback(self)
        except Exception as e:
            self._logger.exception("Completion callback raised", exc=e, session=self._session_id)

    def _close_quietly(self, stream: Any) -> None:
        try:
            stream.close()
        except (OSError, ValueError, FileSystemException) as e:
            self._logger.warning(f"Error closing virtual stream: {e}", session=self._session_id)

    # State bookkeeping

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            self._transition(state)

    def _transition(self, state: SessionState) -> None:
        """Apply a transition. Caller holds the lock."""
        if state not in _TRANSITIONS[self._state]:
            raise StateError(
                f"move to {state.name}",
                current=self._state.name,
                context={'session': self._session_id}
            )
        self._logger.debug(
            f"{self._state.name} -> {state.name}",
            session=self._session_id
        )
        self._state = state

    def describe(self) -> dict[str, Any]:
        """Snapshot of the session for listings."""
        with self._lock:
            return {
                'session': self._session_id,
                'virtual_path': self._virtual_path,
                'pipe_path': self._pipe_path,
                'direction': self._direction.value,
                'state': self._state.name,
                'error': str(self._error) if self._error else None,
                'error_kind': self.error_kind.value if self.error_kind else None,
                'bytes': self._worker.bytes_copied if self._worker else 0,
            }

    def __repr__(self) -> str:
        return (
            f"BridgeSession(id={self._session_id}, "
            f"virtual_path={self._virtual_path!r}, "
            f"pipe_path={self._pipe_path!r}, "
            f"direction={self._direction.name}, "
            f"state={self.state.name})"
        )
