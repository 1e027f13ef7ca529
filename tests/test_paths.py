"""
Tests for path validation.
"""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from sandboxfs.filesystem import (
    AllowedDirectories,
    FileAccessDeniedError,
    InvalidPathError,
    ParentDirectoryMissingError,
    PathValidator,
    SymlinkEscapeError,
)
from sandboxfs.filesystem.paths import (
    canonicalize_directory,
    expand_home,
    is_path_within_allowed_directories,
    normalize_path,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def outside_dir():
    """A second temporary directory that is never allowed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def allowed(temp_dir):
    """Allowed directories containing only the temp directory."""
    return AllowedDirectories([temp_dir])


@pytest.fixture
def validator(allowed):
    """Create a PathValidator instance."""
    return PathValidator(allowed)


class TestPathHelpers:
    """Test the lexical path helpers."""

    def test_expand_home(self, monkeypatch, temp_dir):
        """Test that only a leading ~ is expanded."""
        monkeypatch.setenv("HOME", str(temp_dir))
        assert expand_home("~") == str(temp_dir)
        assert expand_home("~/notes.txt") == os.path.join(str(temp_dir), "notes.txt")
        assert expand_home("/srv/~/notes.txt") == "/srv/~/notes.txt"
        assert expand_home("~user") == "~user"

    def test_normalize_path(self):
        """Test that redundant segments are removed."""
        assert normalize_path("/srv//ws/./a/../b") == os.path.normpath("/srv/ws/b")

    def test_canonicalize_directory_resolves_symlinks(self, temp_dir):
        """Test that configured roots are resolved to their real path."""
        real = temp_dir / "real"
        real.mkdir()
        link = temp_dir / "link"
        link.symlink_to(real)

        assert canonicalize_directory(str(link)) == str(real)


class TestContainment:
    """Test is_path_within_allowed_directories."""

    def test_equal_to_root(self):
        """Test that a root itself is inside."""
        assert is_path_within_allowed_directories("/srv/allowed", ["/srv/allowed"])

    def test_nested_under_root(self):
        """Test that nested paths are inside."""
        assert is_path_within_allowed_directories("/srv/allowed/a/b.txt", ["/srv/allowed"])

    def test_sibling_with_common_prefix(self):
        """Test that /allowed2 does not match root /allowed."""
        assert not is_path_within_allowed_directories("/srv/allowed2", ["/srv/allowed"])
        assert not is_path_within_allowed_directories("/srv/allowed2/x", ["/srv/allowed"])

    def test_relative_path_rejected(self):
        """Test that relative paths are never inside."""
        assert not is_path_within_allowed_directories("allowed/x", ["/srv/allowed"])

    def test_null_byte_rejected(self):
        """Test that NUL bytes are never inside."""
        assert not is_path_within_allowed_directories("/srv/allowed/\x00x", ["/srv/allowed"])

    def test_traversal_normalized(self):
        """Test that .. segments cannot climb out of a root."""
        assert not is_path_within_allowed_directories("/srv/allowed/../etc", ["/srv/allowed"])

    def test_no_roots(self):
        """Test that nothing is inside an empty set."""
        assert not is_path_within_allowed_directories("/srv/allowed", [])


class TestPathValidator:
    """Test PathValidator."""

    @pytest.mark.asyncio
    async def test_existing_file(self, temp_dir, validator):
        """Test that an existing file validates to its real path."""
        test_file = temp_dir / "test.txt"
        test_file.write_text("content")

        assert await validator.validate(test_file) == str(test_file)

    @pytest.mark.asyncio
    async def test_outside_denied_without_filesystem_access(self, outside_dir, validator):
        """Test that paths outside the sandbox fail before any resolution."""
        with patch("sandboxfs.filesystem.paths.os.path.realpath") as realpath:
            with pytest.raises(FileAccessDeniedError):
                await validator.validate(outside_dir / "secret.txt")
            realpath.assert_not_called()

    @pytest.mark.asyncio
    async def test_traversal_denied(self, temp_dir, validator):
        """Test that ../ cannot leave the sandbox."""
        with pytest.raises(FileAccessDeniedError):
            await validator.validate(f"{temp_dir}/../../etc/passwd")

    @pytest.mark.asyncio
    async def test_symlink_escape(self, temp_dir, outside_dir, validator):
        """Test that a symlink pointing outside the sandbox is rejected."""
        target = outside_dir / "secret.txt"
        target.write_text("secret")
        link = temp_dir / "innocent.txt"
        link.symlink_to(target)

        with pytest.raises(SymlinkEscapeError) as exc_info:
            await validator.validate(link)
        assert isinstance(exc_info.value, FileAccessDeniedError)
        assert exc_info.value.target == str(target)

    @pytest.mark.asyncio
    async def test_symlink_inside_sandbox(self, temp_dir, validator):
        """Test that a symlink within the sandbox resolves to its target."""
        target = temp_dir / "real.txt"
        target.write_text("content")
        link = temp_dir / "alias.txt"
        link.symlink_to(target)

        assert await validator.validate(link) == str(target)

    @pytest.mark.asyncio
    async def test_new_file_in_allowed_directory(self, temp_dir, validator):
        """Test that a not-yet-existing file with an allowed parent validates."""
        new_file = temp_dir / "newfile.txt"

        assert await validator.validate(new_file) == str(new_file)

    @pytest.mark.asyncio
    async def test_new_file_parent_missing(self, temp_dir, validator):
        """Test that a new file under a missing directory is rejected."""
        with pytest.raises(ParentDirectoryMissingError) as exc_info:
            await validator.validate(temp_dir / "missing" / "newfile.txt")
        assert exc_info.value.parent == str(temp_dir / "missing")

    @pytest.mark.asyncio
    async def test_new_file_parent_escapes(self, temp_dir, outside_dir, validator):
        """Test that a new file under a symlinked directory pointing outside is denied."""
        (temp_dir / "escape").symlink_to(outside_dir, target_is_directory=True)

        with pytest.raises(FileAccessDeniedError):
            await validator.validate(temp_dir / "escape" / "newfile.txt")
        assert not (outside_dir / "newfile.txt").exists()

    @pytest.mark.asyncio
    async def test_sibling_prefix_denied(self, temp_dir):
        """Test that a sibling directory sharing the root's prefix is denied."""
        (temp_dir / "allowed").mkdir()
        (temp_dir / "allowed2").mkdir()
        (temp_dir / "allowed2" / "file.txt").write_text("x")
        validator = PathValidator(AllowedDirectories([temp_dir / "allowed"]))

        with pytest.raises(FileAccessDeniedError):
            await validator.validate(temp_dir / "allowed2" / "file.txt")

    @pytest.mark.asyncio
    async def test_null_byte(self, temp_dir, validator):
        """Test that NUL bytes are rejected as invalid."""
        with pytest.raises(InvalidPathError):
            await validator.validate(f"{temp_dir}/a\x00b")

    @pytest.mark.asyncio
    async def test_relative_path(self, monkeypatch, temp_dir, validator):
        """Test that relative paths resolve against the working directory."""
        (temp_dir / "file.txt").write_text("content")
        monkeypatch.chdir(temp_dir)

        assert await validator.validate("file.txt") == str(temp_dir / "file.txt")

    @pytest.mark.asyncio
    async def test_home_expansion(self, monkeypatch, temp_dir, validator):
        """Test that ~ expands to the home directory."""
        (temp_dir / "file.txt").write_text("content")
        monkeypatch.setenv("HOME", str(temp_dir))

        assert await validator.validate("~/file.txt") == str(temp_dir / "file.txt")

    @pytest.mark.asyncio
    async def test_roots_replacement_is_seen(self, temp_dir, outside_dir, allowed, validator):
        """Test that the validator always reads the current roots."""
        test_file = outside_dir / "file.txt"
        test_file.write_text("content")

        with pytest.raises(FileAccessDeniedError):
            await validator.validate(test_file)

        allowed.replace([outside_dir])
        assert await validator.validate(test_file) == str(test_file)

        with pytest.raises(FileAccessDeniedError):
            await validator.validate(temp_dir)

    @pytest.mark.asyncio
    async def test_no_roots_denies_everything(self, temp_dir):
        """Test that an empty allow-list denies every path."""
        validator = PathValidator(AllowedDirectories())

        with pytest.raises(FileAccessDeniedError):
            await validator.validate(temp_dir)

    @pytest.mark.asyncio
    async def test_is_allowed(self, temp_dir, outside_dir, validator):
        """Test the boolean convenience check."""
        assert await validator.is_allowed(temp_dir) is True
        assert await validator.is_allowed(outside_dir) is False
        assert await validator.is_allowed(temp_dir / "missing" / "x") is False
