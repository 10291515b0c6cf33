"""
pipebridge Filesystem Module

Virtual filesystem access used by bridge sessions:
- VirtualFileProvider interface
- In-memory provider
- Host directory provider
- Path normalization
"""

from .provider import VirtualFileProvider
from .memory import MemoryFileProvider, MemoryEntry, MemoryWriteStream
from .host import HostDirectoryProvider
from .path_resolver import PathResolver, ParsedPath

__all__ = [
    'VirtualFileProvider',
    'MemoryFileProvider',
    'MemoryEntry',
    'MemoryWriteStream',
    'HostDirectoryProvider',
    'PathResolver',
    'ParsedPath',
]
