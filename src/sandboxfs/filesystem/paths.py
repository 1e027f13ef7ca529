"""
Path canonicalization and sandbox containment checks.

Every operation that touches the filesystem first passes the requested
path through :class:`PathValidator`. Validation is never cached: the
filesystem can change between two calls, so each access re-validates.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Union

from sandboxfs.filesystem.exceptions import (
    FileAccessDeniedError,
    FileSystemError,
    InvalidPathError,
    ParentDirectoryMissingError,
    SymlinkEscapeError,
)

if TYPE_CHECKING:
    from sandboxfs.filesystem.roots import AllowedDirectories

logger = logging.getLogger(__name__)


def expand_home(path: str) -> str:
    """Expand a leading ``~`` or ``~/`` to the user's home directory."""
    if path == "~" or path.startswith("~/") or path.startswith("~" + os.sep):
        return os.path.expanduser(path)
    return path


def normalize_path(path: str) -> str:
    """
    Normalize separators and redundant segments without touching the disk.

    Symlinks are not resolved here. On Windows the drive letter is
    upper-cased so that ``c:\\x`` and ``C:\\x`` compare equal.
    """
    normalized = os.path.normpath(path)
    drive, rest = os.path.splitdrive(normalized)
    if drive and len(drive) == 2 and drive[1] == ":":
        normalized = drive.upper() + rest
    return normalized


def canonicalize_directory(directory: str) -> str:
    """Expand, absolutize and resolve a configured root directory."""
    absolute = os.path.abspath(expand_home(directory))
    return normalize_path(os.path.realpath(absolute))


def is_path_within_allowed_directories(
    path: str, allowed_directories: Iterable[str]
) -> bool:
    """
    Check whether ``path`` equals or is nested under one of the directories.

    Nesting requires a full path-segment boundary, so ``/allowed2`` is not
    inside ``/allowed``. Both sides are compared with the OS's case rules.
    """
    if not path or "\x00" in path:
        return False

    candidate = os.path.normcase(normalize_path(path))
    if not os.path.isabs(candidate):
        return False

    for directory in allowed_directories:
        if not directory or "\x00" in directory:
            continue
        root = os.path.normcase(normalize_path(directory))
        if candidate == root:
            return True
        prefix = root if root.endswith(os.sep) else root + os.sep
        if candidate.startswith(prefix):
            return True

    return False


class PathValidator:
    """
    Proves that a requested path stays inside the sandbox.

    The lexical check runs first and needs no filesystem access. The
    real path is then resolved and checked again, which catches symlinks
    planted inside a root that point outside of it. Paths that do not
    exist yet are accepted when their parent directory resolves inside
    the sandbox.

    Usage:
        allowed = AllowedDirectories(["/srv/workspace"])
        validator = PathValidator(allowed)

        real_path = await validator.validate("/srv/workspace/notes.txt")
    """

    def __init__(self, allowed_directories: "AllowedDirectories"):
        self.allowed_directories = allowed_directories

    async def validate(self, requested_path: Union[str, Path]) -> str:
        """
        Validate a path and return its canonical absolute form.

        Args:
            requested_path: Absolute, relative or ``~``-prefixed path

        Returns:
            The resolved real path, or the absolute path for a file that
            does not exist yet

        Raises:
            InvalidPathError: If the path contains a NUL byte
            FileAccessDeniedError: If the path (or its parent) is outside the sandbox
            SymlinkEscapeError: If the path resolves to a target outside the sandbox
            ParentDirectoryMissingError: If neither the path nor its parent exists
            OSError: Any other resolution error, unchanged
        """
        requested = os.fspath(requested_path)
        if "\x00" in requested:
            raise InvalidPathError(requested, "Path contains a null byte")

        absolute = os.path.abspath(expand_home(requested))
        allowed = self.allowed_directories.get()

        if not is_path_within_allowed_directories(normalize_path(absolute), allowed):
            logger.warning(f"Access denied to {absolute}: outside allowed directories")
            raise FileAccessDeniedError(
                absolute,
                "Access denied - path outside allowed directories "
                f"(allowed: {', '.join(allowed) or 'none'})",
            )

        try:
            real_path = await asyncio.to_thread(os.path.realpath, absolute, strict=True)
        except FileNotFoundError:
            return await self._validate_new_path(absolute, allowed)

        if not is_path_within_allowed_directories(normalize_path(real_path), allowed):
            logger.warning(f"Symlink escape blocked: {absolute} -> {real_path}")
            raise SymlinkEscapeError(absolute, real_path)

        return real_path

    async def is_allowed(self, requested_path: Union[str, Path]) -> bool:
        """Return True if ``validate`` would succeed for the path."""
        try:
            await self.validate(requested_path)
            return True
        except (FileSystemError, OSError):
            return False

    async def _validate_new_path(self, absolute: str, allowed: tuple[str, ...]) -> str:
        """Accept a not-yet-existing path whose parent resolves inside the sandbox."""
        parent = os.path.dirname(absolute)
        try:
            real_parent = await asyncio.to_thread(os.path.realpath, parent, strict=True)
        except OSError as e:
            raise ParentDirectoryMissingError(absolute, parent) from e

        if not is_path_within_allowed_directories(normalize_path(real_parent), allowed):
            logger.warning(f"Access denied to {absolute}: parent resolves to {real_parent}")
            raise FileAccessDeniedError(
                absolute,
                "Access denied - parent directory outside allowed directories",
            )

        return absolute
