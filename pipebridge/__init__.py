"""
pipebridge - Named-pipe bridge into virtual filesystems

Lets applications that only understand ordinary file paths read from or
write to files that live inside a virtual (possibly encrypted) store. A
FIFO is the rendezvous point; a background session relays the bytes.
"""

__version__ = "1.0.0"
__author__ = "pipebridge developers"

from .bridge.manager import BridgeManager, SessionHandle
from .bridge.session import BridgeSession, Direction, SessionState
from .filesystem.provider import VirtualFileProvider
from .filesystem.memory import MemoryFileProvider
from .filesystem.host import HostDirectoryProvider

__all__ = [
    'BridgeManager',
    'SessionHandle',
    'BridgeSession',
    'Direction',
    'SessionState',
    'VirtualFileProvider',
    'MemoryFileProvider',
    'HostDirectoryProvider',
]
