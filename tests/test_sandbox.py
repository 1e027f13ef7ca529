"""
Tests for the SandboxFileSystem facade.
"""

import tempfile
from pathlib import Path

import pytest

from sandboxfs.filesystem import (
    AllowedDirectories,
    FileAccessDeniedError,
    FileSystemAccessConfig,
    NoMatchFoundError,
    SandboxFileSystem,
    SearchBackend,
    SymlinkEscapeError,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def outside_dir():
    """A directory outside the sandbox."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def fs(temp_dir):
    """Create a SandboxFileSystem instance."""
    config = FileSystemAccessConfig(
        allowed_directories=[temp_dir],
        locate_database=temp_dir / "missing.db",
    )
    return SandboxFileSystem(config)


class TestSandboxFileSystem:
    """Test SandboxFileSystem."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, temp_dir, fs):
        """Test creating, replacing and reading a file."""
        path = temp_dir / "notes.txt"

        await fs.write(path, "first")
        await fs.write(path, "second")

        assert await fs.read_content(path) == "second"

    @pytest.mark.asyncio
    async def test_write_outside_denied(self, outside_dir, fs):
        """Test that writes outside the sandbox never happen."""
        with pytest.raises(FileAccessDeniedError):
            await fs.write(outside_dir / "evil.txt", "x")
        assert not (outside_dir / "evil.txt").exists()

    @pytest.mark.asyncio
    async def test_read_through_escaping_symlink(self, temp_dir, outside_dir, fs):
        """Test that reads through a planted symlink are refused."""
        (outside_dir / "secret.txt").write_text("secret")
        (temp_dir / "link.txt").symlink_to(outside_dir / "secret.txt")

        with pytest.raises(SymlinkEscapeError):
            await fs.read_content(temp_dir / "link.txt")
        with pytest.raises(SymlinkEscapeError):
            await fs.tail(temp_dir / "link.txt", 1)

    @pytest.mark.asyncio
    async def test_head_tail_and_stats(self, temp_dir, fs):
        """Test the read operations."""
        path = temp_dir / "lines.txt"
        path.write_text("a\nb\nc\nd\ne")

        assert await fs.head(path, 2) == "a\nb"
        assert await fs.tail(path, 3) == "c\nd\ne"
        assert (await fs.read_stats(path)).size == 9

    @pytest.mark.asyncio
    async def test_apply_patch(self, temp_dir, fs):
        """Test patching through the facade."""
        path = temp_dir / "code.py"
        path.write_text("x = 1\n")

        preview = await fs.apply_patch(path, [{"oldText": "x = 1", "newText": "x = 2"}], dry_run=True)
        assert preview.written is False
        assert path.read_text() == "x = 1\n"

        result = await fs.apply_patch(path, [{"oldText": "x = 1", "newText": "x = 2"}])
        assert result.written is True
        assert path.read_text() == "x = 2\n"

        with pytest.raises(NoMatchFoundError):
            await fs.apply_patch(path, [{"oldText": "y", "newText": "z"}])

    @pytest.mark.asyncio
    async def test_search(self, temp_dir, fs):
        """Test filename search through the facade."""
        (temp_dir / "pkg").mkdir()
        (temp_dir / "pkg" / "mod.py").write_text("")

        outcome = await fs.search(temp_dir, "**/*.py")

        assert outcome.paths == [str(temp_dir / "pkg" / "mod.py")]
        assert outcome.backend == SearchBackend.IN_PROCESS_WALK
        assert await fs.search_paths(temp_dir, "**/*.py") == outcome.paths

    @pytest.mark.asyncio
    async def test_update_roots(self, temp_dir, outside_dir, fs):
        """Test replacing the roots at runtime."""
        (outside_dir / "file.txt").write_text("now allowed")

        directories = await fs.update_roots([outside_dir.as_uri()])

        assert directories == [str(outside_dir)]
        assert await fs.read_content(outside_dir / "file.txt") == "now allowed"
        with pytest.raises(FileAccessDeniedError):
            await fs.validate(temp_dir)

    @pytest.mark.asyncio
    async def test_update_roots_all_invalid_keeps_current(self, temp_dir, fs):
        """Test that an unusable root list leaves the sandbox as it was."""
        directories = await fs.update_roots([str(temp_dir / "missing")])

        assert directories == [str(temp_dir)]
        assert fs.list_allowed_directories() == [str(temp_dir)]

    @pytest.mark.asyncio
    async def test_shared_roots_handle_starting_empty(self, temp_dir):
        """Test that an empty shared roots handle is kept and sees later replacements."""
        shared = AllowedDirectories([])
        fs = SandboxFileSystem(
            FileSystemAccessConfig(locate_database=temp_dir / "missing.db"), shared
        )
        (temp_dir / "file.txt").write_text("content")

        assert fs.allowed_directories is shared
        with pytest.raises(FileAccessDeniedError):
            await fs.validate(temp_dir / "file.txt")

        shared.replace([temp_dir])

        assert fs.list_allowed_directories() == [str(temp_dir)]
        assert await fs.read_content(temp_dir / "file.txt") == "content"
