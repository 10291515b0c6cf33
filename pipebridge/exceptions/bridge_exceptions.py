"""
Bridge Exceptions

Exceptions raised by pipe provisioning, session setup and the transfer
loop. Each one names an ``ErrorKind`` so a failed session can report
why it failed without the caller inspecting exception classes.

Author: pipebridge developers
Version: 1.0.0
"""

from enum import Enum
from typing import Optional, Any


class ErrorKind(Enum):
    """Category of a bridge failure, as reported by a failed session."""
    PROVISION = "provision"
    OPEN = "open"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    TRANSFER = "transfer"
    STATE = "state"
    CONFIG = "config"


class BridgeException(Exception):
    """
    Base exception for all bridge errors.

    Attributes:
        message: Human-readable error description
        error_code: Numeric error code for programmatic handling
        kind: Failure category
        context: Additional details (paths, errno, session id)
    """

    kind = ErrorKind.STATE

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or 7000
        self.context = context or {}

    def __str__(self) -> str:
        base = f"[Error {self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({context_str})"
        return base

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"kind={self.kind.value})"
        )


class ProvisionError(BridgeException):
    """
    A FIFO could not be created or removed.

    Raised for a missing parent directory, a read-only or non-writable
    filesystem, permission problems, or a non-FIFO file occupying the path.

    Example:
        >>> raise ProvisionError("Cannot create FIFO", path="/tmp/p0", errno=13)
    """

    kind = ErrorKind.PROVISION

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        errno: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if path is not None:
            ctx["path"] = path
        if errno is not None:
            ctx["errno"] = errno
        super().__init__(message=message, error_code=7001, context=ctx)
        self.path = path
        self.errno = errno


class OpenError(BridgeException):
    """
    One side of a session could not be opened.

    The failing side is either ``"virtual"`` (provider stream) or
    ``"pipe"`` (OS FIFO endpoint).
    """

    kind = ErrorKind.OPEN

    def __init__(
        self,
        message: str,
        side: Optional[str] = None,
        path: Optional[str] = None,
        error_code: int = 7002,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if side is not None:
            ctx["side"] = side
        if path is not None:
            ctx["path"] = path
        super().__init__(message=message, error_code=error_code, context=ctx)
        self.side = side
        self.path = path


class OpenTimeoutError(OpenError):
    """No peer opened the other end of the FIFO before the deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        path: str,
        timeout: float,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        ctx["timeout"] = timeout
        super().__init__(
            message=f"No peer opened the pipe within {timeout:g}s",
            side="pipe",
            path=path,
            error_code=7005,
            context=ctx
        )
        self.timeout = timeout


class OpenCancelledError(OpenError):
    """The session was closed while waiting for the FIFO peer."""

    kind = ErrorKind.CANCELLED

    def __init__(
        self,
        path: str,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message="Pipe open cancelled",
            side="pipe",
            path=path,
            error_code=7006,
            context=context
        )


class TransferError(BridgeException):
    """
    An I/O failure interrupted the copy loop.

    ``side`` is ``"read"`` when the source failed and ``"write"`` when the
    sink failed. ``bytes_copied`` is the size of the prefix that already
    reached the sink; it is not rolled back.
    """

    kind = ErrorKind.TRANSFER

    def __init__(
        self,
        message: str,
        side: str,
        bytes_copied: int = 0,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        ctx["side"] = side
        ctx["bytes_copied"] = bytes_copied
        super().__init__(message=message, error_code=7003, context=ctx)
        self.side = side
        self.bytes_copied = bytes_copied


class StateError(BridgeException):
    """
    An operation was requested in a state that does not allow it.

    Example:
        >>> raise StateError("start", current="STREAMING")
    """

    kind = ErrorKind.STATE

    def __init__(
        self,
        operation: str,
        current: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        ctx["operation"] = operation
        if current is not None:
            ctx["state"] = current
        super().__init__(
            message=message or f"Cannot {operation} in state {current}",
            error_code=7004,
            context=ctx
        )
        self.operation = operation
        self.current = current


class ConfigurationError(BridgeException):
    """A configuration file or value is invalid."""

    kind = ErrorKind.CONFIG

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if key is not None:
            ctx["key"] = key
        super().__init__(message=message, error_code=7010, context=ctx)
        self.key = key
