"""
pipebridge IPC Module

OS-facing side of the bridge:
- FIFO provisioning and removal
- Per-session pipe path allocation
- Legacy fixed pipe pool
- Timed, cancellable FIFO endpoint opening
"""

from .fifo import PipeProvisioner, PipePathAllocator, LegacyPipePool, is_fifo
from .endpoint import FifoEndpoint, PipeEnd

__all__ = [
    'PipeProvisioner',
    'PipePathAllocator',
    'LegacyPipePool',
    'is_fifo',
    'FifoEndpoint',
    'PipeEnd',
]
