"""
Sandboxed filesystem interface.

This module provides path validation against a set of allowed
directories, atomic writes, whitespace-tolerant patching, bounded-memory
head/tail, and tiered filename and content search.
"""

from sandboxfs.filesystem.config import FileSystemAccessConfig
from sandboxfs.filesystem.exceptions import (
    FileAccessDeniedError,
    FileSystemError,
    InvalidPathError,
    InvalidPatternError,
    NoMatchFoundError,
    ParentDirectoryMissingError,
    PatchWriteError,
    SearchError,
    SymlinkEscapeError,
    ToolExecutionError,
    ToolNotInstalledError,
    ToolTimeoutError,
)
from sandboxfs.filesystem.grep import ContentGrepEngine, GrepFileReport, GrepMatch, GrepOptions
from sandboxfs.filesystem.intro import ProjectIntro, extract_project_intro
from sandboxfs.filesystem.patch import EditOperation, FuzzyPatchEngine, PatchResult
from sandboxfs.filesystem.paths import PathValidator
from sandboxfs.filesystem.reader import ChunkedLineReader, FileInfo, format_size
from sandboxfs.filesystem.roots import AllowedDirectories, directories_from_roots
from sandboxfs.filesystem.sandbox import SandboxFileSystem
from sandboxfs.filesystem.search import SearchBackend, SearchOrchestrator, SearchOutcome
from sandboxfs.filesystem.tools import SandboxTools
from sandboxfs.filesystem.writer import AtomicFileWriter

__all__ = [
    "FileSystemAccessConfig",
    "AllowedDirectories",
    "directories_from_roots",
    "PathValidator",
    "AtomicFileWriter",
    "ChunkedLineReader",
    "FileInfo",
    "format_size",
    "EditOperation",
    "FuzzyPatchEngine",
    "PatchResult",
    "SearchBackend",
    "SearchOrchestrator",
    "SearchOutcome",
    "ContentGrepEngine",
    "GrepOptions",
    "GrepMatch",
    "GrepFileReport",
    "ProjectIntro",
    "extract_project_intro",
    "SandboxFileSystem",
    "SandboxTools",
    "FileSystemError",
    "FileAccessDeniedError",
    "SymlinkEscapeError",
    "ParentDirectoryMissingError",
    "InvalidPathError",
    "NoMatchFoundError",
    "PatchWriteError",
    "SearchError",
    "InvalidPatternError",
    "ToolNotInstalledError",
    "ToolExecutionError",
    "ToolTimeoutError",
]
