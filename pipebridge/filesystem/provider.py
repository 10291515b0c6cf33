"""
Virtual File Provider Interface

The bridge reaches the virtual filesystem only through this interface:
open a virtual path for reading or for writing and get back a binary
stream. Storage layout and encryption stay behind it.

Author: pipebridge developers
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from typing import BinaryIO

from pipebridge.exceptions import ProviderUnmountedError


class VirtualFileProvider(ABC):
    """
    Source of byte streams for paths inside a virtual filesystem.

    Implementations return objects with the usual binary file methods
    (``read``, ``write``, ``flush``, ``close``). A stream that also has a
    ``sync()`` method is treated as durable storage and is synced before
    it is closed.
    """

    @property
    def is_mounted(self) -> bool:
        """Whether the store is available. Always true unless overridden."""
        return True

    def check_mounted(self, path: str) -> None:
        """
        Raise if the store is not mounted.

        Raises:
            ProviderUnmountedError: If ``is_mounted`` is false
        """
        if not self.is_mounted:
            raise ProviderUnmountedError(path)

    @abstractmethod
    def open_for_read(self, virtual_path: str) -> BinaryIO:
        """
        Open an existing virtual file for reading.

        Raises:
            FileNotFoundError: If the path does not exist
            NotAFileError: If the path is a directory
        """

    @abstractmethod
    def open_for_write(self, virtual_path: str) -> BinaryIO:
        """
        Open a virtual file for writing, creating or truncating it.

        Raises:
            FileNotFoundError: If the parent directory does not exist
            PermissionDeniedError: If the file is not writable
        """
