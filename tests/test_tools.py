"""
Tests for the function-calling tool interface.
"""

import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from sandboxfs.filesystem import FileSystemAccessConfig, SandboxTools
from sandboxfs.filesystem.process import ToolOutput


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def config(temp_dir):
    """Create a test filesystem configuration."""
    return FileSystemAccessConfig(
        allowed_directories=[temp_dir],
        locate_database=temp_dir / "missing.db",
        max_search_results=10,
    )


@pytest.fixture
def tools(config):
    """Create a SandboxTools instance."""
    return SandboxTools(config)


class TestSandboxTools:
    """Test SandboxTools."""

    def test_get_tool_schemas(self, tools):
        """Test getting tool schemas."""
        schemas = tools.get_tool_schemas()
        names = [s["function"]["name"] for s in schemas]

        assert names == [
            "read_file",
            "head_file",
            "tail_file",
            "get_file_info",
            "write_file",
            "edit_file",
            "search_files",
            "grep_files",
            "get_project_intro",
            "list_allowed_directories",
        ]
        for schema in schemas:
            assert schema["type"] == "function"
            assert schema["function"]["parameters"]["type"] == "object"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools):
        """Test that unknown tools raise ValueError."""
        with pytest.raises(ValueError, match="Unknown tool"):
            await tools.execute_tool("delete_everything", {})

    @pytest.mark.asyncio
    async def test_read_file(self, temp_dir, tools):
        """Test executing read_file."""
        (temp_dir / "test.py").write_text("print('hello')")

        result = await tools.execute_tool("read_file", {"path": str(temp_dir / "test.py")})

        assert result["success"] is True
        assert result["content"] == "print('hello')"

    @pytest.mark.asyncio
    async def test_read_file_denied(self, tools):
        """Test that access errors become failure results."""
        result = await tools.execute_tool("read_file", {"path": "/etc/passwd"})

        assert result["success"] is False
        assert result["error_type"] == "FileAccessDeniedError"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, temp_dir, tools):
        """Test that OS errors become failure results."""
        result = await tools.execute_tool("read_file", {"path": str(temp_dir / "missing.txt")})

        assert result["success"] is False
        assert result["error_type"] == "FileNotFoundError"

    @pytest.mark.asyncio
    async def test_head_and_tail(self, temp_dir, tools):
        """Test head_file and tail_file."""
        path = str(temp_dir / "log.txt")
        (temp_dir / "log.txt").write_text("1\n2\n3\n4\n")

        head = await tools.execute_tool("head_file", {"path": path, "lines": 2})
        tail = await tools.execute_tool("tail_file", {"path": path, "lines": 2})

        assert head["content"] == "1\n2"
        assert tail["content"] == "3\n4"

    @pytest.mark.asyncio
    async def test_get_file_info(self, temp_dir, tools):
        """Test get_file_info."""
        (temp_dir / "data.bin").write_bytes(b"x" * 2048)

        result = await tools.execute_tool("get_file_info", {"path": str(temp_dir / "data.bin")})

        assert result["success"] is True
        assert result["info"]["size"] == 2048
        assert result["size_human"] == "2.00 KB"

    @pytest.mark.asyncio
    async def test_write_and_edit(self, temp_dir, tools):
        """Test write_file followed by edit_file."""
        path = str(temp_dir / "app.py")

        written = await tools.execute_tool("write_file", {"path": path, "content": "debug = True\n"})
        assert written["success"] is True

        edited = await tools.execute_tool(
            "edit_file",
            {"path": path, "edits": [{"oldText": "debug = True", "newText": "debug = False"}]},
        )
        assert edited["success"] is True
        assert edited["written"] is True
        assert "+debug = False" in edited["diff"]
        assert (temp_dir / "app.py").read_text() == "debug = False\n"

    @pytest.mark.asyncio
    async def test_edit_no_match(self, temp_dir, tools):
        """Test that a failed edit reports the unmatched text."""
        (temp_dir / "app.py").write_text("a = 1\n")

        result = await tools.execute_tool(
            "edit_file",
            {"path": str(temp_dir / "app.py"), "edits": [{"oldText": "b = 2", "newText": "b = 3"}]},
        )

        assert result["success"] is False
        assert result["error_type"] == "NoMatchFoundError"
        assert result["old_text"] == "b = 2"

    @pytest.mark.asyncio
    async def test_search_files(self, temp_dir, tools):
        """Test search_files."""
        (temp_dir / "a.md").write_text("")
        (temp_dir / "b.txt").write_text("")

        result = await tools.execute_tool("search_files", {"path": str(temp_dir), "pattern": "*.md"})

        assert result["files"] == [str(temp_dir / "a.md")]
        assert result["backend"] == "in_process_walk"

    @pytest.mark.asyncio
    async def test_grep_files(self, temp_dir, tools):
        """Test grep_files with a stubbed ripgrep."""
        (temp_dir / "a.txt").write_text("alpha\n")
        stdout = f"{temp_dir / 'a.txt'}\x001:alpha\n"

        with patch(
            "sandboxfs.filesystem.grep.run_tool",
            AsyncMock(return_value=ToolOutput(0, stdout, "")),
        ):
            result = await tools.execute_tool(
                "grep_files", {"path": str(temp_dir), "pattern": "alpha", "ignore_case": True}
            )

        assert result["success"] is True
        assert result["count"] == 1
        assert result["matches"] == [{"file": str(temp_dir / "a.txt"), "line": 1, "content": "alpha"}]
        assert result["text"] == f"File: {temp_dir / 'a.txt'}\n  Line 1: alpha"

    @pytest.mark.asyncio
    async def test_grep_not_installed(self, temp_dir, tools):
        """Test that a missing rg is reported as a failure result."""
        with patch("sandboxfs.filesystem.grep.run_tool", AsyncMock(side_effect=FileNotFoundError())):
            result = await tools.execute_tool("grep_files", {"path": str(temp_dir), "pattern": "x"})

        assert result["success"] is False
        assert result["error_type"] == "ToolNotInstalledError"

    @pytest.mark.asyncio
    async def test_project_intro(self, temp_dir, tools):
        """Test get_project_intro."""
        (temp_dir / "README.md").write_text("Hello")

        result = await tools.execute_tool("get_project_intro", {"path": str(temp_dir)})

        assert result["success"] is True
        assert result["files_found"] == ["README.md"]
        assert result["content"] == "# README.md\n\nHello"

    @pytest.mark.asyncio
    async def test_list_allowed_directories(self, temp_dir, tools):
        """Test list_allowed_directories."""
        result = await tools.execute_tool("list_allowed_directories", {})

        assert result["directories"] == [str(temp_dir)]
        assert result["count"] == 1

    def test_get_summary(self, temp_dir, tools):
        """Test getting configuration summary."""
        summary = tools.get_summary()

        assert summary["allowed_directories"] == [str(temp_dir)]
        assert summary["max_search_results"] == 10
        assert summary["external_walk_enabled"] is False
        assert summary["grep_command"] == "rg"
