"""
SandboxFileSystem: every sandboxed file operation behind one object.

Each operation validates its path(s) immediately before touching the
filesystem; nothing is cached between calls.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from sandboxfs.filesystem.config import FileSystemAccessConfig
from sandboxfs.filesystem.grep import ContentGrepEngine, GrepFileReport, GrepOptions
from sandboxfs.filesystem.intro import ProjectIntro, extract_project_intro
from sandboxfs.filesystem.patch import EditOperation, FuzzyPatchEngine, PatchResult
from sandboxfs.filesystem.paths import PathValidator
from sandboxfs.filesystem.reader import ChunkedLineReader, FileInfo, get_file_info, read_file_content
from sandboxfs.filesystem.roots import AllowedDirectories, directories_from_roots
from sandboxfs.filesystem.search import SearchOrchestrator, SearchOutcome
from sandboxfs.filesystem.writer import AtomicFileWriter

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class SandboxFileSystem:
    """
    Sandboxed filesystem operations.

    Usage:
        config = FileSystemAccessConfig(allowed_directories=["/srv/workspace"])
        fs = SandboxFileSystem(config)

        head = await fs.head("/srv/workspace/app.log", 20)
        result = await fs.apply_patch(
            "/srv/workspace/main.py",
            [{"oldText": "print('hi')", "newText": "print('hello')"}],
            dry_run=True,
        )
    """

    def __init__(
        self,
        config: FileSystemAccessConfig,
        allowed_directories: Optional[AllowedDirectories] = None,
    ):
        """
        Args:
            config: Filesystem access configuration
            allowed_directories: Shared roots handle; created from ``config``
                when not given
        """
        self.config = config
        if allowed_directories is None:
            allowed_directories = AllowedDirectories.from_config(config)
        self.allowed_directories = allowed_directories
        self.validator = PathValidator(self.allowed_directories)
        self.writer = AtomicFileWriter()
        self.patcher = FuzzyPatchEngine(self.writer)
        self.reader = ChunkedLineReader(chunk_size=config.chunk_size_bytes)
        self.searcher = SearchOrchestrator(config, self.validator)
        self.grepper = ContentGrepEngine(config, self.validator)

    async def validate(self, path: PathLike) -> str:
        return await self.validator.validate(path)

    async def read_stats(self, path: PathLike) -> FileInfo:
        return await get_file_info(await self.validator.validate(path))

    async def read_content(self, path: PathLike, encoding: str = "utf-8") -> str:
        return await read_file_content(await self.validator.validate(path), encoding)

    async def write(self, path: PathLike, content: str) -> None:
        """Create ``path`` or atomically replace its content."""
        validated = await self.validator.validate(path)
        await self.writer.write(validated, content)
        logger.info(f"Wrote {len(content)} characters to {validated}")

    async def apply_patch(
        self,
        path: PathLike,
        edits: Iterable[Union[EditOperation, dict]],
        dry_run: bool = False,
    ) -> PatchResult:
        return await self.patcher.apply(await self.validator.validate(path), edits, dry_run)

    async def tail(self, path: PathLike, num_lines: int) -> str:
        return await self.reader.tail(await self.validator.validate(path), num_lines)

    async def head(self, path: PathLike, num_lines: int) -> str:
        return await self.reader.head(await self.validator.validate(path), num_lines)

    async def search(
        self,
        root: PathLike,
        pattern: str,
        exclude_patterns: Optional[Iterable[str]] = None,
    ) -> SearchOutcome:
        """Filename search reporting which backend answered."""
        return await self.searcher.search(root, pattern, exclude_patterns)

    async def search_paths(
        self,
        root: PathLike,
        pattern: str,
        exclude_patterns: Optional[Iterable[str]] = None,
    ) -> list[str]:
        return await self.searcher.search_paths(root, pattern, exclude_patterns)

    async def search_content(self, options: Union[GrepOptions, dict]) -> list[GrepFileReport]:
        if not isinstance(options, GrepOptions):
            options = GrepOptions.model_validate(options)
        return await self.grepper.grep(options)

    async def project_intro(
        self, path: PathLike, include_additional_files: bool = True
    ) -> ProjectIntro:
        return await extract_project_intro(self.validator, path, include_additional_files)

    def list_allowed_directories(self) -> list[str]:
        return list(self.allowed_directories.get())

    async def update_roots(self, roots: Iterable[str]) -> list[str]:
        """
        Replace the allowed directories with client-supplied roots.

        Invalid roots are skipped. If none is usable the current set is
        kept.

        Returns:
            The allowed directories in effect afterwards
        """
        directories = await directories_from_roots(roots)
        if directories:
            self.allowed_directories.replace(directories)
        else:
            logger.warning("No valid roots supplied, keeping current allowed directories")
        return self.list_allowed_directories()
