"""
FIFO Provisioning Module

Creates and removes the named pipes that external applications open:
- Idempotent and fresh-only creation with explicit permission bits
- Unique per-session path allocation in a private runtime directory
- A fixed pipe pool for applications that expect well-known paths

Author: pipebridge developers
Version: 1.0.0
"""

import errno
import itertools
import os
import secrets
import stat
import tempfile
import threading
from pathlib import Path
from typing import Optional, List, Union

from pipebridge.core.config_loader import LegacyConfig
from pipebridge.exceptions import ProvisionError
from pipebridge.logger import get_logger


PathLike = Union[str, Path]


def is_fifo(path: PathLike) -> bool:
    """Return True if ``path`` exists and is a named pipe (symlinks not followed)."""
    try:
        return stat.S_ISFIFO(os.lstat(path).st_mode)
    except OSError:
        return False


class PipeProvisioner:
    """
    Creates FIFO special files.

    The requested mode is applied with ``chmod`` after ``mkfifo`` so the
    process umask cannot narrow or widen it unnoticed.

    Example:
        >>> provisioner = PipeProvisioner()
        >>> provisioner.ensure('/tmp/bridge0')
        True
        >>> provisioner.ensure('/tmp/bridge0')
        False
    """

    def __init__(self, default_mode: int = 0o600):
        self._default_mode = default_mode
        self._lock = threading.Lock()
        self._logger = get_logger('fifo')

    @property
    def default_mode(self) -> int:
        return self._default_mode

    def ensure(self, path: PathLike, mode: Optional[int] = None) -> bool:
        """
        Make sure a FIFO exists at ``path``.

        An existing FIFO is left untouched, permissions included.

        Args:
            path: Filesystem path of the FIFO
            mode: Permission bits, defaults to the provisioner's mode

        Returns:
            True if the FIFO was created, False if it already existed

        Raises:
            ProvisionError: If creation fails or a non-FIFO occupies the path
        """
        path = str(path)
        with self._lock:
            try:
                self._create(path, self._default_mode if mode is None else mode)
            except FileExistsError:
                if not is_fifo(path):
                    raise ProvisionError(
                        "Path exists and is not a FIFO",
                        path=path,
                        errno=errno.EEXIST
                    ) from None
                self._logger.debug("FIFO already present", context={'path': path})
                return False
        return True

    def create_fresh(self, path: PathLike, mode: Optional[int] = None) -> None:
        """
        Create a FIFO that must not exist yet.

        Raises:
            ProvisionError: If anything exists at ``path`` or creation fails
        """
        path = str(path)
        with self._lock:
            try:
                self._create(path, self._default_mode if mode is None else mode)
            except FileExistsError:
                raise ProvisionError(
                    "Path already exists",
                    path=path,
                    errno=errno.EEXIST
                ) from None

    def remove(self, path: PathLike) -> bool:
        """
        Remove a FIFO.

        Returns:
            True if a FIFO was removed, False if nothing was there

        Raises:
            ProvisionError: If the path is not a FIFO or unlink fails
        """
        path = str(path)
        with self._lock:
            if not os.path.lexists(path):
                return False
            if not is_fifo(path):
                raise ProvisionError("Refusing to remove a non-FIFO", path=path)
            try:
                os.unlink(path)
            except FileNotFoundError:
                return False
            except OSError as e:
                raise ProvisionError(
                    f"Cannot remove FIFO: {e.strerror}",
                    path=path,
                    errno=e.errno
                ) from e
        self._logger.debug("Removed FIFO", context={'path': path})
        return True

    def _create(self, path: str, mode: int) -> None:
        """Create the FIFO. Lets FileExistsError through for the caller."""
        try:
            os.mkfifo(path, mode)
        except FileExistsError:
            raise
        except OSError as e:
            raise ProvisionError(
                f"Cannot create FIFO: {e.strerror}",
                path=path,
                errno=e.errno
            ) from e

        try:
            os.chmod(path, mode)
        except OSError as e:
            try:
                os.unlink(path)
            except OSError:
                self._logger.warning("Could not remove half-provisioned FIFO", context={'path': path})
            raise ProvisionError(
                f"Cannot set FIFO permissions: {e.strerror}",
                path=path,
                errno=e.errno
            ) from e

        self._logger.debug("Created FIFO", context={'path': path, 'mode': oct(mode)})


class PipePathAllocator:
    """
    Generates a unique FIFO path for each session.

    Paths live in a runtime directory private to the current user
    (mode 0700), and each name carries the process id, a counter and a
    random token, so concurrent sessions never share a pipe.
    """

    def __init__(
        self,
        runtime_dir: Optional[PathLike] = None,
        prefix: str = "bridge",
        suffix: str = ""
    ):
        if runtime_dir is None:
            runtime_dir = Path(tempfile.gettempdir()) / f"pipebridge-{os.getuid()}"
        self._runtime_dir = Path(runtime_dir)
        self._prefix = prefix
        self._suffix = suffix
        self._counter = itertools.count(1)
        self._allocated: set[str] = set()
        self._lock = threading.Lock()
        self._logger = get_logger('fifo')

    @property
    def runtime_dir(self) -> Path:
        return self._runtime_dir

    def prepare(self) -> Path:
        """
        Create the runtime directory if needed.

        Raises:
            ProvisionError: If the directory cannot be created
        """
        try:
            self._runtime_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise ProvisionError(
                f"Cannot create runtime directory: {e.strerror}",
                path=str(self._runtime_dir),
                errno=e.errno
            ) from e
        return self._runtime_dir

    def allocate(self, suffix: Optional[str] = None) -> str:
        """
        Reserve a new pipe path. The FIFO itself is not created.

        Args:
            suffix: File name suffix (e.g. '.jpg'); defaults to the
                allocator's configured suffix
        """
        self.prepare()
        with self._lock:
            name = (
                f"{self._prefix}-{os.getpid()}-{next(self._counter)}-"
                f"{secrets.token_hex(4)}{self._suffix if suffix is None else suffix}"
            )
            path = str(self._runtime_dir / name)
            self._allocated.add(path)
        return path

    def owns(self, path: PathLike) -> bool:
        with self._lock:
            return str(path) in self._allocated

    def release(self, path: PathLike) -> None:
        with self._lock:
            self._allocated.discard(str(path))

    def allocated(self) -> List[str]:
        with self._lock:
            return sorted(self._allocated)


class LegacyPipePool:
    """
    Fixed set of well-known pipe paths.

    Compatibility mode for applications configured with hard-coded paths:
    ``<pipe_dir>/<prefix>0`` .. ``<prefix>N-1`` plus an optional "photo"
    path. All pipes are provisioned up front with the legacy mode. Sessions
    bound to these paths still get exclusive ownership from the manager.
    """

    def __init__(self, provisioner: PipeProvisioner, config: LegacyConfig):
        self._provisioner = provisioner
        self._config = config
        self._logger = get_logger('fifo')

    @property
    def photo_path(self) -> Optional[str]:
        return self._config.photo_path or None

    def paths(self) -> List[str]:
        """All pool paths, numbered pipes first."""
        base = Path(self._config.pipe_dir)
        result = [
            str(base / f"{self._config.pipe_prefix}{index}")
            for index in range(self._config.pipe_count)
        ]
        if self.photo_path:
            result.append(self.photo_path)
        return result

    def provision(self) -> List[str]:
        """
        Ensure every pool FIFO exists.

        Returns:
            Paths that were newly created

        Raises:
            ProvisionError: On the first path that cannot be provisioned
        """
        created = []
        for path in self.paths():
            if self._provisioner.ensure(path, self._config.mode):
                created.append(path)
        self._logger.info(
            "Legacy pipe pool ready",
            context={'pipes': len(self.paths()), 'created': len(created)}
        )
        return created

    def remove_all(self) -> int:
        """Remove every pool FIFO. Returns how many were removed."""
        removed = 0
        for path in self.paths():
            if self._provisioner.remove(path):
                removed += 1
        return removed
