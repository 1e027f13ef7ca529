"""
Function-calling interface over the sandboxed filesystem.

Exposes SandboxFileSystem operations as OpenAI-style tool schemas and
executes tool calls, returning plain dicts.
"""

import logging
from typing import Any, Optional

from sandboxfs.filesystem.config import FileSystemAccessConfig
from sandboxfs.filesystem.exceptions import FileSystemError, NoMatchFoundError, PatchWriteError
from sandboxfs.filesystem.reader import format_size
from sandboxfs.filesystem.sandbox import SandboxFileSystem

logger = logging.getLogger(__name__)


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


_PATH = {"type": "string", "description": "Path inside one of the allowed directories"}
_LINES = {"type": "integer", "description": "Number of lines"}
_EXCLUDES = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Glob patterns (relative to the search root) to leave out",
}


class SandboxTools:
    """
    Tool-call dispatcher for a SandboxFileSystem.

    Usage:
        tools = SandboxTools(FileSystemAccessConfig(allowed_directories=["/srv/ws"]))

        schemas = tools.get_tool_schemas()
        result = await tools.execute_tool("head_file", {"path": "/srv/ws/app.log", "lines": 5})
    """

    def __init__(self, config: FileSystemAccessConfig, filesystem: Optional[SandboxFileSystem] = None):
        self.config = config
        self.filesystem = filesystem or SandboxFileSystem(config)

    def get_tool_schemas(self) -> list[dict[str, Any]]:
        """
        Get function calling schemas for all available tools.

        Returns:
            List of tool schemas in OpenAI format
        """
        return [
            _function(
                "read_file",
                "Read the complete contents of a file.",
                {"path": _PATH, "encoding": {"type": "string", "description": "Text encoding (default: utf-8)"}},
                ["path"],
            ),
            _function("head_file", "Read the first lines of a file.", {"path": _PATH, "lines": _LINES}, ["path", "lines"]),
            _function("tail_file", "Read the last lines of a file.", {"path": _PATH, "lines": _LINES}, ["path", "lines"]),
            _function(
                "get_file_info",
                "Get size, timestamps, type and permissions of a file or directory.",
                {"path": _PATH},
                ["path"],
            ),
            _function(
                "write_file",
                "Create a file or replace its contents completely.",
                {"path": _PATH, "content": {"type": "string", "description": "New file content"}},
                ["path", "content"],
            ),
            _function(
                "edit_file",
                "Replace text in a file. Each edit matches exactly, or line by line ignoring "
                "surrounding whitespace. Returns a unified diff.",
                {
                    "path": _PATH,
                    "edits": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "oldText": {"type": "string", "description": "Text to search for"},
                                "newText": {"type": "string", "description": "Text to replace it with"},
                            },
                            "required": ["oldText", "newText"],
                        },
                    },
                    "dry_run": {"type": "boolean", "description": "Only preview the diff (default: false)"},
                },
                ["path", "edits"],
            ),
            _function(
                "search_files",
                "Find files and directories whose path relative to the root matches a glob "
                "(e.g. '**/*.py').",
                {
                    "path": _PATH,
                    "pattern": {"type": "string", "description": "Glob pattern"},
                    "exclude_patterns": _EXCLUDES,
                },
                ["path", "pattern"],
            ),
            _function(
                "grep_files",
                "Search file contents for a regular expression (or literal text). "
                "Returns matching lines with line numbers.",
                {
                    "path": _PATH,
                    "pattern": {"type": "string", "description": "Regular expression or literal text"},
                    "ignore_case": {"type": "boolean", "description": "Case-insensitive match (default: false)"},
                    "fixed_strings": {"type": "boolean", "description": "Treat the pattern as literal text"},
                    "recursive": {"type": "boolean", "description": "Search subdirectories (default: true)"},
                    "file_pattern": {"type": "string", "description": "Glob of files to search (default: '*')"},
                    "exclude_patterns": _EXCLUDES,
                    "context": {"type": "integer", "description": "Context lines around each match"},
                    "max_results": {"type": "integer", "description": "Maximum matches over all files"},
                    "invert_match": {"type": "boolean", "description": "Return non-matching lines"},
                },
                ["path", "pattern"],
            ),
            _function(
                "get_project_intro",
                "Read a project's introductory documentation (CLAUDE.md, README.md and similar).",
                {
                    "path": _PATH,
                    "include_additional_files": {
                        "type": "boolean",
                        "description": "Also read CONTRIBUTING.md, docs/README.md, ... (default: true)",
                    },
                },
                ["path"],
            ),
            _function("list_allowed_directories", "List the directories this server may access.", {}, []),
        ]

    async def execute_tool(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Execute a tool call.

        Args:
            tool_name: Name of the tool to execute
            arguments: Tool arguments

        Returns:
            Tool execution result as a dict

        Raises:
            ValueError: If tool name is unknown
        """
        handlers = {
            "read_file": self._read_file,
            "head_file": self._head_file,
            "tail_file": self._tail_file,
            "get_file_info": self._get_file_info,
            "write_file": self._write_file,
            "edit_file": self._edit_file,
            "search_files": self._search_files,
            "grep_files": self._grep_files,
            "get_project_intro": self._get_project_intro,
            "list_allowed_directories": self._list_allowed_directories,
        }
        handler = handlers.get(tool_name)
        if handler is None:
            raise ValueError(f"Unknown tool: {tool_name}")

        try:
            return await handler(**arguments)
        except FileSystemError as e:
            logger.warning(f"Tool {tool_name} failed: {e}")
            result = {"success": False, "error": str(e), "error_type": type(e).__name__}
            if isinstance(e, PatchWriteError):
                result["diff"] = e.diff
            return result
        except OSError as e:
            logger.warning(f"Tool {tool_name} failed: {e}")
            return {"success": False, "error": str(e), "error_type": type(e).__name__}
        except Exception as e:
            logger.error(f"Tool {tool_name} unexpected error: {e}")
            return {"success": False, "error": f"Unexpected error: {e}", "error_type": "UnexpectedError"}

    async def _read_file(self, path: str, encoding: str = "utf-8") -> dict[str, Any]:
        content = await self.filesystem.read_content(path, encoding)
        return {"success": True, "path": path, "content": content, "size": len(content)}

    async def _head_file(self, path: str, lines: int) -> dict[str, Any]:
        return {"success": True, "path": path, "content": await self.filesystem.head(path, lines)}

    async def _tail_file(self, path: str, lines: int) -> dict[str, Any]:
        return {"success": True, "path": path, "content": await self.filesystem.tail(path, lines)}

    async def _get_file_info(self, path: str) -> dict[str, Any]:
        info = await self.filesystem.read_stats(path)
        return {
            "success": True,
            "path": path,
            "info": info.model_dump(mode="json"),
            "size_human": format_size(info.size),
        }

    async def _write_file(self, path: str, content: str) -> dict[str, Any]:
        await self.filesystem.write(path, content)
        return {"success": True, "path": path, "size": len(content), "message": "File written successfully"}

    async def _edit_file(self, path: str, edits: list[dict[str, str]], dry_run: bool = False) -> dict[str, Any]:
        try:
            result = await self.filesystem.apply_patch(path, edits, dry_run=dry_run)
        except NoMatchFoundError as e:
            return {
                "success": False,
                "path": path,
                "error": str(e),
                "error_type": type(e).__name__,
                "old_text": e.old_text,
            }
        return {"success": True, "path": path, "diff": result.diff, "written": result.written}

    async def _search_files(
        self, path: str, pattern: str, exclude_patterns: Optional[list[str]] = None
    ) -> dict[str, Any]:
        outcome = await self.filesystem.search(path, pattern, exclude_patterns)
        return {
            "success": True,
            "path": path,
            "pattern": pattern,
            "files": outcome.paths,
            "count": len(outcome.paths),
            "backend": outcome.backend.value,
        }

    async def _grep_files(self, path: str, pattern: str, **options: Any) -> dict[str, Any]:
        reports = await self.filesystem.search_content({"search_path": path, "pattern": pattern, **options})
        include_line_numbers = options.get("include_line_numbers", True)
        return {
            "success": True,
            "path": path,
            "pattern": pattern,
            "matches": [
                {"file": m.file, "line": m.line_number, "content": m.content}
                for report in reports
                for m in report.matches
            ],
            "count": sum(len(report.matches) for report in reports),
            "text": "\n\n".join(report.format(include_line_numbers) for report in reports),
        }

    async def _get_project_intro(self, path: str, include_additional_files: bool = True) -> dict[str, Any]:
        intro = await self.filesystem.project_intro(path, include_additional_files)
        return {"success": True, "path": path, **intro.model_dump()}

    async def _list_allowed_directories(self) -> dict[str, Any]:
        directories = self.filesystem.list_allowed_directories()
        return {"success": True, "directories": directories, "count": len(directories)}

    def get_summary(self) -> dict[str, Any]:
        """
        Get a summary of the filesystem access configuration.

        Returns:
            Dict with configuration summary
        """
        return {
            "allowed_directories": self.filesystem.list_allowed_directories(),
            "locate_database": str(self.config.locate_database),
            "external_walk_enabled": self.config.external_walk_enabled,
            "grep_command": self.config.grep_command,
            "grep_timeout_seconds": self.config.grep_timeout_seconds,
            "max_search_results": self.config.max_search_results,
            "chunk_size_bytes": self.config.chunk_size_bytes,
        }
