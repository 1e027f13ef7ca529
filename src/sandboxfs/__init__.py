"""
sandboxfs - sandboxed filesystem access for automated clients.

This package confines file reads, writes, edits and searches to a set
of allowed directories, resolving symlinks so that nothing escapes them.
"""

__version__ = "0.1.0"

from sandboxfs.filesystem import (
    AllowedDirectories,
    FileAccessDeniedError,
    FileSystemAccessConfig,
    FileSystemError,
    GrepOptions,
    PathValidator,
    SandboxFileSystem,
    SandboxTools,
    SearchBackend,
)

__all__ = [
    # Version
    "__version__",
    # Config
    "FileSystemAccessConfig",
    "AllowedDirectories",
    # Core
    "PathValidator",
    "SandboxFileSystem",
    "SandboxTools",
    "GrepOptions",
    "SearchBackend",
    # Errors
    "FileSystemError",
    "FileAccessDeniedError",
]
