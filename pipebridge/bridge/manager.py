"""
Bridge Manager Module

Public entry point of the bridge:
- Export and import session creation
- Session handles, state queries and cancellation
- Exclusive pipe path ownership between live sessions
- Per-session FIFO allocation and removal
- Legacy fixed pipe pool

Author: pipebridge developers
Version: 1.0.0
"""

import os
import threading
from concurrent.futures import Future
from typing import Any, Callable, List, NewType, Optional, Union

from pipebridge.core.config_loader import Config, get_config
from pipebridge.core.subsystem import Subsystem, SubsystemState
from pipebridge.exceptions import ProvisionError, StateError
from pipebridge.filesystem.path_resolver import PathResolver
from pipebridge.filesystem.provider import VirtualFileProvider
from pipebridge.ipc.endpoint import FifoEndpoint
from pipebridge.ipc.fifo import LegacyPipePool, PipePathAllocator, PipeProvisioner
from .launcher import AsyncLauncher
from .session import BridgeSession, Direction, SessionState


SessionHandle = NewType('SessionHandle', int)


class BridgeManager(Subsystem):
    """
    Creates and tracks bridge sessions over one virtual file provider.

    Example:
        >>> manager = BridgeManager(provider)
        >>> manager.initialize()
        >>> handle = manager.create_export_session('/secret.jpg')
        >>> manager.session(handle).real_path
        '/tmp/pipebridge-1000/bridge-4242-1-1a2b3c4d.jpg'
        >>> manager.start(handle)
        >>> manager.wait(handle, timeout=30)
        <SessionState.CLOSED: 5>
    """

    def __init__(
        self,
        provider: VirtualFileProvider,
        config: Optional[Config] = None,
        provisioner: Optional[PipeProvisioner] = None,
        allocator: Optional[PipePathAllocator] = None,
        endpoint: Optional[FifoEndpoint] = None,
        launcher: Optional[AsyncLauncher] = None
    ):
        super().__init__('manager')
        self._provider = provider
        self._config = config
        self._provisioner = provisioner
        self._allocator = allocator
        self._endpoint = endpoint
        self._launcher = launcher
        self._legacy_pool: Optional[LegacyPipePool] = None

        self._sessions: dict[int, BridgeSession] = {}
        self._generated: set[int] = set()
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Build collaborators from configuration and provision the legacy pool."""
        config = self._config or get_config()
        self._config = config

        if self._provisioner is None:
            self._provisioner = PipeProvisioner(default_mode=config.pipes.mode)
        if self._allocator is None:
            self._allocator = PipePathAllocator(
                runtime_dir=config.pipes.runtime_dir,
                prefix=config.pipes.prefix,
                suffix=config.pipes.suffix
            )
        if self._endpoint is None:
            self._endpoint = FifoEndpoint(poll_interval=config.bridge.poll_interval)
        if self._launcher is None:
            self._launcher = AsyncLauncher()

        if config.legacy.enabled:
            self._legacy_pool = LegacyPipePool(self._provisioner, config.legacy)
            self._legacy_pool.provision()

        self.set_state(SubsystemState.INITIALIZED)
        self._logger.info(
            "Bridge manager initialized",
            context={'runtime_dir': self._allocator.runtime_dir, 'legacy': config.legacy.enabled}
        )

    def stop(self) -> None:
        """Cancel every live session and wait briefly for their threads."""
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.close()
        if self._launcher is not None and self._config is not None:
            if not self._launcher.join_all(self._config.bridge.join_timeout):
                self._logger.warning(
                    "Session threads still running after stop",
                    context={'active': self._launcher.active_count()}
                )
        self.set_state(SubsystemState.STOPPED)

    def cleanup(self) -> None:
        """Remove generated FIFOs of terminal sessions and forget them."""
        with self._lock:
            handles = [h for h, s in self._sessions.items() if s.state.terminal]
        for handle in handles:
            self.release(SessionHandle(handle))

    # Session creation

    @property
    def legacy_pool(self) -> Optional[LegacyPipePool]:
        return self._legacy_pool

    def create_export_session(
        self,
        virtual_path: str,
        pipe_path: Optional[str] = None,
        on_complete: Optional[Callable[[BridgeSession], None]] = None,
        on_progress: Optional[Callable[[int], None]] = None
    ) -> SessionHandle:
        """Create a session that streams a virtual file out through a FIFO."""
        return self.create_session(
            virtual_path, Direction.EXPORT, pipe_path, on_complete, on_progress
        )

    def create_import_session(
        self,
        virtual_path: str,
        pipe_path: Optional[str] = None,
        on_complete: Optional[Callable[[BridgeSession], None]] = None,
        on_progress: Optional[Callable[[int], None]] = None
    ) -> SessionHandle:
        """Create a session that stores bytes written to a FIFO in a virtual file."""
        return self.create_session(
            virtual_path, Direction.IMPORT, pipe_path, on_complete, on_progress
        )

    def create_session(
        self,
        virtual_path: str,
        direction: Direction,
        pipe_path: Optional[str] = None,
        on_complete: Optional[Callable[[BridgeSession], None]] = None,
        on_progress: Optional[Callable[[int], None]] = None
    ) -> SessionHandle:
        """
        Create an IDLE session.

        Args:
            virtual_path: File inside the virtual filesystem
            direction: EXPORT or IMPORT
            pipe_path: FIFO path; a unique one is generated when omitted
            on_complete: Called with the session once it is terminal
            on_progress: Called with the running byte count after each chunk

        Returns:
            Handle for the other manager operations

        Raises:
            StateError: If the manager is not initialized, the session
                limit is reached, or ``pipe_path`` is held by a live session
        """
        if self._state not in (SubsystemState.INITIALIZED, SubsystemState.RUNNING):
            raise StateError("create session", current=self._state.name)

        config = self._config
        generated = pipe_path is None

        with self._lock:
            live = [s for s in self._sessions.values() if not s.state.terminal]
            if len(live) >= config.bridge.max_sessions:
                raise StateError(
                    "create session",
                    message="Maximum sessions reached",
                    context={'max_sessions': config.bridge.max_sessions}
                )

            if generated:
                pipe_path = self._allocator.allocate(self._suffix_for(virtual_path))
            else:
                pipe_path = os.path.abspath(pipe_path)
                for other in live:
                    if other.pipe_path == pipe_path:
                        raise StateError(
                            "create session",
                            message="Pipe path is owned by another session",
                            context={'pipe_path': pipe_path, 'owner': other.session_id}
                        )

            session = BridgeSession(
                virtual_path,
                pipe_path,
                direction,
                self._provider,
                provisioner=self._provisioner,
                endpoint=self._endpoint,
                launcher=self._launcher,
                chunk_size=config.bridge.chunk_size,
                open_timeout=config.bridge.open_timeout,
                on_complete=on_complete,
                on_progress=on_progress
            )
            self._sessions[session.session_id] = session
            if generated:
                self._generated.add(session.session_id)

        self._logger.info(
            f"Created {direction.value} session",
            session=session.session_id,
            context={'virtual_path': session.virtual_path, 'pipe_path': pipe_path}
        )
        return SessionHandle(session.session_id)

    def _suffix_for(self, virtual_path: str) -> Optional[str]:
        """Keep the virtual file's extension unless a suffix is configured."""
        if self._config.pipes.suffix:
            return None
        _, extension = os.path.splitext(PathResolver.basename(virtual_path))
        return extension

    # Session control

    def session(self, handle: SessionHandle) -> BridgeSession:
        """
        Look up a session.

        Raises:
            KeyError: If the handle is unknown or released
        """
        with self._lock:
            if handle not in self._sessions:
                raise KeyError(f"Session {handle} not found")
            return self._sessions[handle]

    def start(self, handle: Optional[SessionHandle] = None) -> Optional[Future]:
        """
        Start a session, or the manager itself when called without a handle.

        Returns:
            The session future (None for the manager)

        Raises:
            StateError: If the session was already started
        """
        if handle is None:
            self.set_state(SubsystemState.RUNNING)
            return None
        return self.session(handle).start()

    def close(self, handle: SessionHandle) -> None:
        self.session(handle).close()

    def state(self, handle: Optional[SessionHandle] = None) -> Union[SessionState, SubsystemState]:
        """State of a session, or of the manager when called without a handle."""
        if handle is None:
            return self._state
        return self.session(handle).state

    def error(self, handle: SessionHandle) -> Optional[BaseException]:
        return self.session(handle).error

    def wait(self, handle: SessionHandle, timeout: Optional[float] = None) -> SessionState:
        return self.session(handle).wait(timeout)

    def release(self, handle: SessionHandle) -> None:
        """
        Forget a terminal session and remove its generated FIFO.

        Raises:
            StateError: If the session is still live
        """
        session = self.session(handle)
        if not session.state.terminal:
            raise StateError("release", current=session.state.name)

        with self._lock:
            self._sessions.pop(handle, None)
            generated = handle in self._generated
            self._generated.discard(handle)

        if generated:
            self._allocator.release(session.pipe_path)
            if self._config.pipes.remove_on_release:
                try:
                    self._provisioner.remove(session.pipe_path)
                except ProvisionError as e:
                    self._logger.warning(f"Could not remove FIFO: {e}", session=handle)

    def list_sessions(self) -> List[dict[str, Any]]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [session.describe() for session in sessions]

    def get_stats(self) -> dict[str, Any]:
        """Get bridge statistics."""
        with self._lock:
            sessions = list(self._sessions.values())
        by_state = {state.name: 0 for state in SessionState}
        for session in sessions:
            by_state[session.state.name] += 1
        return {
            'sessions': len(sessions),
            'by_state': by_state,
            'threads': self._launcher.active_count() if self._launcher else 0,
            'generated_pipes': len(self._generated),
        }
