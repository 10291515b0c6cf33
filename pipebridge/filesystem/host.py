"""
Host Directory Provider

Serves virtual paths from a directory on the host filesystem. Useful when
the virtual store is already mounted somewhere (for example through FUSE)
or for running the bridge against plain files.

Author: pipebridge developers
Version: 1.0.0
"""

import builtins
import os
from pathlib import Path
from typing import BinaryIO, Union

from .path_resolver import PathResolver
from .provider import VirtualFileProvider
from pipebridge.exceptions import (
    FileSystemException,
    FileNotFoundError,
    PermissionDeniedError,
    NotAFileError,
    ProviderUnmountedError,
)
from pipebridge.logger import get_logger


class HostDirectoryProvider(VirtualFileProvider):
    """
    Maps ``/a/b`` inside the virtual filesystem to ``<root>/a/b``.

    Virtual paths are normalized first, so ``..`` can never escape the root.
    The provider counts as mounted while the root directory exists.
    """

    def __init__(self, root: Union[str, Path]):
        self._root = Path(root)
        self._logger = get_logger('hostfs')

    @property
    def root(self) -> Path:
        return self._root

    @property
    def is_mounted(self) -> bool:
        return self._root.is_dir()

    def host_path(self, virtual_path: str) -> Path:
        """Translate a virtual path to the backing host path."""
        return self._root.joinpath(*PathResolver.components(virtual_path))

    def open_for_read(self, virtual_path: str) -> BinaryIO:
        resolved = PathResolver.normalize(virtual_path)
        self.check_mounted(resolved)
        target = self.host_path(resolved)
        if target.is_dir():
            raise NotAFileError(resolved, actual_type="directory")
        try:
            stream = open(target, 'rb')
        except OSError as e:
            raise self._translate(e, resolved, "read") from e
        self._logger.debug("Opened for read", context={'path': resolved})
        return stream

    def open_for_write(self, virtual_path: str) -> BinaryIO:
        resolved = PathResolver.normalize(virtual_path)
        self.check_mounted(resolved)
        target = self.host_path(resolved)
        if target.is_dir():
            raise NotAFileError(resolved, actual_type="directory")
        try:
            stream = open(target, 'wb')
        except OSError as e:
            raise self._translate(e, resolved, "write") from e
        self._logger.debug("Opened for write", context={'path': resolved})
        return stream

    def _translate(self, error: OSError, path: str, operation: str) -> FileSystemException:
        if isinstance(error, builtins.FileNotFoundError):
            if not self.is_mounted:
                return ProviderUnmountedError(path)
            return FileNotFoundError(path)
        if isinstance(error, builtins.PermissionError):
            return PermissionDeniedError(path, operation=operation)
        if isinstance(error, builtins.IsADirectoryError):
            return NotAFileError(path, actual_type="directory")
        return FileSystemException(
            f"Cannot open for {operation}: {os.strerror(error.errno) if error.errno else error}",
            path=path,
            context={'errno': error.errno}
        )
