"""
pipebridge Bridge Module

Sessions relaying bytes between virtual files and FIFOs:
- BridgeManager (public API)
- BridgeSession and its state machine
- TransferWorker copy loop
- AsyncLauncher background dispatch
"""

from .launcher import AsyncLauncher
from .worker import TransferWorker, TransferResult, DEFAULT_CHUNK_SIZE, is_durable
from .session import BridgeSession, Direction, SessionState
from .manager import BridgeManager, SessionHandle

__all__ = [
    'AsyncLauncher',
    'TransferWorker',
    'TransferResult',
    'DEFAULT_CHUNK_SIZE',
    'is_durable',
    'BridgeSession',
    'Direction',
    'SessionState',
    'BridgeManager',
    'SessionHandle',
]
