"""
The allowed-directory set and root updates.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from sandboxfs.filesystem.paths import canonicalize_directory, expand_home, normalize_path

logger = logging.getLogger(__name__)


class AllowedDirectories:
    """
    Shared handle on the sandbox roots.

    Read by every operation, replaced wholesale by whoever receives root
    updates from the client. The roots are held in an immutable tuple and
    replacement is a single reference swap, so readers never observe a
    half-updated set and never need a lock.
    """

    def __init__(self, directories: Iterable[Union[str, Path]] = ()):
        self._directories: tuple[str, ...] = self._canonicalize(directories)

    @classmethod
    def from_config(cls, config) -> "AllowedDirectories":
        """Create a handle seeded with a config's ``allowed_directories``."""
        return cls(config.allowed_directories)

    def get(self) -> tuple[str, ...]:
        """Current roots snapshot."""
        return self._directories

    def replace(self, directories: Iterable[Union[str, Path]]) -> None:
        """Atomically swap in a new set of roots."""
        new_directories = self._canonicalize(directories)
        self._directories = new_directories
        logger.info(f"Allowed directories updated: {', '.join(new_directories) or 'none'}")

    def __iter__(self) -> Iterator[str]:
        return iter(self._directories)

    def __len__(self) -> int:
        return len(self._directories)

    def __repr__(self) -> str:
        return f"AllowedDirectories({list(self._directories)!r})"

    @staticmethod
    def _canonicalize(directories: Iterable[Union[str, Path]]) -> tuple[str, ...]:
        seen: list[str] = []
        for directory in directories:
            canonical = canonicalize_directory(os.fspath(directory))
            if canonical not in seen:
                seen.append(canonical)
        return tuple(seen)


def _root_uri_to_path(uri: str) -> str:
    """Turn a ``file://`` URI (or a plain path) into an absolute path."""
    if uri.startswith("file://"):
        parsed = urlparse(uri)
        raw = url2pathname(unquote(parsed.path))
        if parsed.netloc and parsed.netloc != "localhost":
            raw = f"//{parsed.netloc}{raw}"
    else:
        raw = uri
    return os.path.abspath(expand_home(raw))


def _resolve_root(uri: str) -> Optional[str]:
    try:
        resolved = os.path.realpath(_root_uri_to_path(uri), strict=True)
    except (OSError, ValueError) as e:
        logger.warning(f"Skipping invalid root {uri}: {e}")
        return None

    if not os.path.isdir(resolved):
        logger.warning(f"Skipping root {uri}: not a directory")
        return None

    return normalize_path(resolved)


async def directories_from_roots(roots: Iterable[str]) -> list[str]:
    """
    Convert client-supplied roots into existing, real directories.

    Roots may be ``file://`` URIs or plain paths. Entries that do not
    exist, cannot be resolved, or are not directories are skipped.

    Args:
        roots: Root URIs or paths as sent by the client

    Returns:
        Canonical directory paths, in the order given
    """
    directories: list[str] = []
    for uri in roots:
        resolved = await asyncio.to_thread(_resolve_root, uri)
        if resolved is not None and resolved not in directories:
            directories.append(resolved)
    return directories
