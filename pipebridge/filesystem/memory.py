"""
In-Memory Virtual File Provider

A small virtual filesystem kept entirely in process memory:
- Hierarchical directories
- Per-file read-only flag
- Mount/unmount lifecycle
- Write streams that publish their content on flush, sync and close

Author: pipebridge developers
Version: 1.0.0
"""

import io
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, List

from .path_resolver import PathResolver
from .provider import VirtualFileProvider
from pipebridge.exceptions import (
    FileNotFoundError,
    PermissionDeniedError,
    NotAFileError,
)
from pipebridge.logger import get_logger


@dataclass
class MemoryEntry:
    """A regular file stored by ``MemoryFileProvider``."""
    data: bytes = b''
    read_only: bool = False
    mtime: float = field(default_factory=time.time)
    sync_count: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


class MemoryWriteStream(io.BytesIO):
    """
    Write stream for a ``MemoryFileProvider`` entry.

    Buffered bytes become visible to readers when the stream is flushed,
    synced or closed.
    """

    def __init__(self, provider: 'MemoryFileProvider', path: str):
        super().__init__()
        self._provider = provider
        self._path = path

    @property
    def name(self) -> str:
        return self._path

    def flush(self) -> None:
        super().flush()
        if not self.closed:
            self._provider._publish(self._path, self.getvalue())

    def sync(self) -> None:
        """Publish the buffer and count a durable commit."""
        self.flush()
        self._provider._mark_synced(self._path)

    def close(self) -> None:
        if not self.closed:
            self._provider._publish(self._path, self.getvalue())
        super().close()


class MemoryFileProvider(VirtualFileProvider):
    """
    Virtual filesystem held in a dictionary.

    Example:
        >>> vfs = MemoryFileProvider()
        >>> vfs.write_file('/secret.jpg', b'jpeg bytes')
        >>> vfs.open_for_read('/secret.jpg').read()
        b'jpeg bytes'
    """

    def __init__(self, mounted: bool = True):
        self._files: dict[str, MemoryEntry] = {}
        self._dirs: set[str] = {'/'}
        self._mounted = mounted
        self._lock = threading.Lock()
        self._logger = get_logger('memoryfs')

    # Lifecycle

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    def mount(self) -> None:
        self._mounted = True
        self._logger.debug("Mounted in-memory filesystem")

    def unmount(self) -> None:
        self._mounted = False
        self._logger.debug("Unmounted in-memory filesystem")

    # Directory and file management

    def mkdir(self, path: str, parents: bool = False) -> None:
        """
        Create a directory.

        Raises:
            FileNotFoundError: If the parent is missing and ``parents`` is false
            NotAFileError: If a file already occupies the path
        """
        resolved = PathResolver.normalize(path)
        with self._lock:
            if resolved in self._files:
                raise NotAFileError(resolved, actual_type="file")
            missing: List[str] = []
            current = resolved
            while current not in self._dirs:
                missing.append(current)
                current = PathResolver.dirname(current)
            if len(missing) > 1 and not parents:
                raise FileNotFoundError(PathResolver.dirname(resolved))
            self._dirs.update(missing)

    def write_file(self, path: str, data: bytes, read_only: bool = False) -> None:
        """Store a whole file, creating parent directories."""
        resolved = PathResolver.normalize(path)
        parent = PathResolver.dirname(resolved)
        if parent not in self._dirs:
            self.mkdir(parent, parents=True)
        with self._lock:
            self._files[resolved] = MemoryEntry(data=bytes(data), read_only=read_only)

    def read_file(self, path: str) -> bytes:
        resolved = PathResolver.normalize(path)
        with self._lock:
            entry = self._files.get(resolved)
        if entry is None:
            raise FileNotFoundError(resolved)
        return entry.data

    def stat(self, path: str) -> Optional[MemoryEntry]:
        with self._lock:
            return self._files.get(PathResolver.normalize(path))

    def exists(self, path: str) -> bool:
        resolved = PathResolver.normalize(path)
        with self._lock:
            return resolved in self._files or resolved in self._dirs

    def unlink(self, path: str) -> None:
        resolved = PathResolver.normalize(path)
        with self._lock:
            if resolved not in self._files:
                raise FileNotFoundError(resolved)
            del self._files[resolved]

    def list_files(self) -> List[str]:
        with self._lock:
            return sorted(self._files)

    # VirtualFileProvider

    def open_for_read(self, virtual_path: str) -> io.BytesIO:
        resolved = PathResolver.normalize(virtual_path)
        self.check_mounted(resolved)

        with self._lock:
            if resolved in self._dirs:
                raise NotAFileError(resolved, actual_type="directory")
            entry = self._files.get(resolved)
            if entry is None:
                raise FileNotFoundError(resolved)
            data = entry.data

        stream = io.BytesIO(data)
        self._logger.debug("Opened for read", context={'path': resolved, 'size': len(data)})
        return stream

    def open_for_write(self, virtual_path: str) -> MemoryWriteStream:
        resolved = PathResolver.normalize(virtual_path)
        self.check_mounted(resolved)

        with self._lock:
            if resolved in self._dirs:
                raise NotAFileError(resolved, actual_type="directory")
            if PathResolver.dirname(resolved) not in self._dirs:
                raise FileNotFoundError(resolved)
            entry = self._files.get(resolved)
            if entry is not None and entry.read_only:
                raise PermissionDeniedError(resolved, operation="write")
            # Truncate on open, like any file opened for writing
            self._files[resolved] = MemoryEntry(read_only=False)

        self._logger.debug("Opened for write", context={'path': resolved})
        return MemoryWriteStream(self, resolved)

    def _publish(self, path: str, data: bytes) -> None:
        with self._lock:
            entry = self._files.setdefault(path, MemoryEntry())
            entry.data = data
            entry.mtime = time.time()

    def _mark_synced(self, path: str) -> None:
        with self._lock:
            entry = self._files.get(path)
            if entry is not None:
                entry.sync_count += 1
