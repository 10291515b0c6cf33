"""
Async Launcher Module

Runs blocking routines on dedicated background threads and hands the
caller a ``Future`` instead of blocking it.

Author: pipebridge developers
Version: 1.0.0
"""

import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Optional

from pipebridge.logger import get_logger


class AsyncLauncher:
    """
    One daemon thread per launched routine.

    The routine's return value or exception resolves the returned future;
    nothing is raised on the caller's thread.

    Example:
        >>> launcher = AsyncLauncher()
        >>> future = launcher.launch('demo', sum, [1, 2, 3])
        >>> future.result(timeout=1)
        6
    """

    def __init__(self, name_prefix: str = "pipebridge"):
        self._name_prefix = name_prefix
        self._threads: set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._launched = 0
        self._logger = get_logger('launcher')

    def launch(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """
        Start ``fn(*args, **kwargs)`` on a new thread.

        Args:
            name: Thread name suffix (shown in logs and debuggers)
            fn: Routine to run

        Returns:
            Future resolved with the routine's outcome
        """
        future: Future = Future()

        def runner() -> None:
            try:
                if not future.set_running_or_notify_cancel():
                    return
                try:
                    result = fn(*args, **kwargs)
                except Exception as e:
                    future.set_exception(e)
                else:
                    future.set_result(result)
            finally:
                with self._lock:
                    self._threads.discard(thread)

        thread = threading.Thread(
            target=runner,
            name=f"{self._name_prefix}-{name}",
            daemon=True
        )
        with self._lock:
            self._threads.add(thread)
            self._launched += 1
        thread.start()

        self._logger.debug("Dispatched background task", context={'thread': thread.name})
        return future

    def active_count(self) -> int:
        with self._lock:
            return len(self._threads)

    def join_all(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every running routine to finish.

        Returns:
            True if all threads finished within ``timeout``
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                threads = list(self._threads)
            if not threads:
                return True
            for thread in threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                thread.join(remaining)
                if thread.is_alive():
                    return False

    def get_stats(self) -> dict[str, Any]:
        return {
            'launched': self._launched,
            'active': self.active_count(),
        }
