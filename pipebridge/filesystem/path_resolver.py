"""
Path Resolver Module

Normalizes virtual filesystem paths so that every session refers to a
file by one canonical string.

Author: pipebridge developers
Version: 1.0.0
"""

from dataclasses import dataclass
from typing import List, Tuple


@dataclass
class ParsedPath:
    """A parsed path with its components."""
    is_absolute: bool
    components: List[str]

    def __str__(self) -> str:
        if self.is_absolute:
            return '/' + '/'.join(self.components)
        return '/'.join(self.components) if self.components else '.'


class PathResolver:
    """
    Resolves and manipulates virtual paths.

    Handles:
    - Duplicate and trailing slashes
    - . and .. components (.. never climbs above the root)
    """

    @staticmethod
    def parse(path: str) -> ParsedPath:
        is_absolute = path.startswith('/')
        components = [c for c in path.split('/') if c and c != '.']
        return ParsedPath(is_absolute=is_absolute, components=components)

    @staticmethod
    def normalize(path: str) -> str:
        """
        Normalize a path to its rooted canonical form.

        Relative paths are taken relative to the virtual root, so
        ``"a//b/"`` and ``"/a/b"`` name the same file.
        """
        parsed = PathResolver.parse(path)

        result: List[str] = []
        for component in parsed.components:
            if component == '..':
                if result:
                    result.pop()
            else:
                result.append(component)

        return '/' + '/'.join(result)

    @staticmethod
    def components(path: str) -> List[str]:
        """Return the canonical components of a path, root excluded."""
        return [c for c in PathResolver.normalize(path).split('/') if c]

    @staticmethod
    def dirname(path: str) -> str:
        normalized = PathResolver.normalize(path)
        if normalized == '/':
            return '/'
        return normalized.rsplit('/', 1)[0] or '/'

    @staticmethod
    def basename(path: str) -> str:
        normalized = PathResolver.normalize(path)
        if normalized == '/':
            return '/'
        return normalized.rsplit('/', 1)[1]

    @staticmethod
    def split(path: str) -> Tuple[str, str]:
        """Split a path into (dirname, basename)."""
        return (PathResolver.dirname(path), PathResolver.basename(path))
