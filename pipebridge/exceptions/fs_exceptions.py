"""
Virtual Filesystem Exceptions

Exceptions raised by ``VirtualFileProvider`` implementations when a
virtual path cannot be opened.

Author: pipebridge developers
Version: 1.0.0
"""

from typing import Optional, Any


class FileSystemException(Exception):
    """
    Base exception for all virtual filesystem errors.

    Attributes:
        message: Human-readable error description
        path: Virtual path associated with the error (if applicable)
        error_code: Numeric error code for programmatic handling
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        error_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.error_code = error_code or 4000
        self.context = context or {}
        if path:
            self.context["path"] = path

    def __str__(self) -> str:
        base = f"[Error {self.error_code}] {self.message}"
        if self.path:
            base = f"{base} (path={self.path})"
        return base


class FileNotFoundError(FileSystemException):
    """
    The virtual path does not exist, or its parent directory does not.

    Example:
        >>> raise FileNotFoundError("/secret.jpg")
    """

    def __init__(
        self,
        path: str,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message=f"File not found: {path}",
            path=path,
            error_code=4001,
            context=context
        )


class PermissionDeniedError(FileSystemException):
    """
    The provider refuses the requested access.

    Example:
        >>> raise PermissionDeniedError("/readonly.txt", operation="write")
    """

    def __init__(
        self,
        path: str,
        operation: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if operation:
            ctx["operation"] = operation
        super().__init__(
            message=f"Permission denied: {path}",
            path=path,
            error_code=4003,
            context=ctx
        )
        self.operation = operation


class NotAFileError(FileSystemException):
    """The virtual path names a directory, not a regular file."""

    def __init__(
        self,
        path: str,
        actual_type: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        ctx = context or {}
        if actual_type:
            ctx["actual_type"] = actual_type
        super().__init__(
            message=f"Not a file: {path}",
            path=path,
            error_code=4009,
            context=ctx
        )
        self.actual_type = actual_type


class ProviderUnmountedError(FileSystemException):
    """The virtual filesystem is not mounted."""

    def __init__(
        self,
        path: Optional[str] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message="Virtual filesystem is not mounted",
            path=path,
            error_code=4020,
            context=context
        )
