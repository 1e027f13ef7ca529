"""
Exceptions for sandboxed filesystem operations.
"""

from typing import Optional


class FileSystemError(Exception):
    """Base exception for filesystem operations."""

    pass


class FileAccessDeniedError(FileSystemError):
    """Raised when a path lies outside the allowed directories."""

    def __init__(self, path: str, reason: str = "Access denied"):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class SymlinkEscapeError(FileAccessDeniedError):
    """Raised when a path resolves through a symlink to a target outside the sandbox."""

    def __init__(self, path: str, target: str):
        self.target = target
        super().__init__(
            path, f"Access denied - symlink target outside allowed directories ({target})"
        )


class ParentDirectoryMissingError(FileSystemError):
    """Raised when the parent of a not-yet-existing path cannot be resolved."""

    def __init__(self, path: str, parent: str):
        self.path = path
        self.parent = parent
        super().__init__(f"Parent directory does not exist: {parent}")


class InvalidPathError(FileSystemError):
    """Raised when a path is invalid or malformed."""

    def __init__(self, path: str, reason: str = "Invalid path"):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path!r}")


class NoMatchFoundError(FileSystemError):
    """Raised when an edit's old text cannot be located in the document."""

    def __init__(self, old_text: str):
        self.old_text = old_text
        super().__init__(f"Could not find exact match for edit:\n{old_text}")


class PatchWriteError(FileSystemError):
    """Raised when a patch was computed but could not be persisted."""

    def __init__(self, path: str, diff: str, cause: BaseException):
        self.path = path
        self.diff = diff
        self.cause = cause
        super().__init__(f"Failed to write patched file {path}: {cause}")


class SearchError(FileSystemError):
    """Raised when a search operation fails."""

    pass


class InvalidPatternError(SearchError):
    """Raised when the content-search expression is malformed."""

    def __init__(self, pattern: str, detail: str = ""):
        self.pattern = pattern
        self.detail = detail
        message = f"Invalid search pattern: {pattern}"
        if detail:
            message = f"{message}\n{detail}"
        super().__init__(message)


class ToolNotInstalledError(SearchError):
    """Raised when a required external tool is not installed."""

    def __init__(self, tool: str, hint: Optional[str] = None):
        self.tool = tool
        super().__init__(hint or f"{tool} is not installed")


class ToolExecutionError(SearchError):
    """Raised when an external tool exits with an unexpected status."""

    def __init__(self, tool: str, returncode: Optional[int], stderr: str = ""):
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"{tool} execution failed: {detail}")


class ToolTimeoutError(SearchError):
    """Raised when an external tool does not finish within its timeout."""

    def __init__(self, tool: str, timeout: float):
        self.tool = tool
        self.timeout = timeout
        super().__init__(f"{tool} timed out after {timeout} seconds")
