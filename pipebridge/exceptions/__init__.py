"""
pipebridge Exception Hierarchy

Architecture:
    BridgeException (Base)
    ├── ProvisionError
    ├── OpenError
    │   ├── OpenTimeoutError
    │   └── OpenCancelledError
    ├── TransferError
    ├── StateError
    └── ConfigurationError
    FileSystemException (virtual filesystem providers)
    ├── FileNotFoundError
    ├── PermissionDeniedError
    ├── NotAFileError
    └── ProviderUnmountedError
"""

from .bridge_exceptions import (
    ErrorKind,
    BridgeException,
    ProvisionError,
    OpenError,
    OpenTimeoutError,
    OpenCancelledError,
    TransferError,
    StateError,
    ConfigurationError,
)

from .fs_exceptions import (
    FileSystemException,
    FileNotFoundError,
    PermissionDeniedError,
    NotAFileError,
    ProviderUnmountedError,
)

__all__ = [
    # Bridge exceptions
    "ErrorKind",
    "BridgeException",
    "ProvisionError",
    "OpenError",
    "OpenTimeoutError",
    "OpenCancelledError",
    "TransferError",
    "StateError",
    "ConfigurationError",
    # Filesystem exceptions
    "FileSystemException",
    "FileNotFoundError",
    "PermissionDeniedError",
    "NotAFileError",
    "ProviderUnmountedError",
]
