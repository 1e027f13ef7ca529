"""
Filename search with a tiered fallback chain.

Tiers are tried in order until one gives a definitive answer:

1. ``IndexSearchStrategy``: queries a prebuilt location index (plocate).
2. ``ExternalWalkStrategy``: lists the tree with an external walker
   (``find``) and filters in-process. Disabled unless configured.
3. ``InProcessWalkStrategy``: walks the tree itself.

A strategy returns a list (possibly empty) when its answer is final, or
``None`` to hand over to the next tier.
"""

import asyncio
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from pydantic import BaseModel, Field
from wcmatch import glob

from sandboxfs.filesystem.config import FileSystemAccessConfig
from sandboxfs.filesystem.exceptions import FileSystemError, SearchError, ToolTimeoutError
from sandboxfs.filesystem.paths import PathValidator, is_path_within_allowed_directories
from sandboxfs.filesystem.process import run_tool

logger = logging.getLogger(__name__)

GLOB_FLAGS = (
    glob.GLOBSTAR | glob.DOTGLOB | glob.BRACE | glob.EXTGLOB | glob.NEGATE | glob.NEGATEALL
)

# Syntax the index tool cannot express once recursive wildcards are gone
_UNSUPPORTED_INDEX_SYNTAX = ("**", "{", "!(", "?(", "*(", "+(", "@(", "\\")


def glob_match(relative_path: str, pattern: str) -> bool:
    """Full glob match of a root-relative path (``**``, braces, dotfiles)."""
    return glob.globmatch(relative_path, pattern, flags=GLOB_FLAGS)


def prepare_index_pattern(pattern: str) -> Optional[str]:
    """
    Translate a glob for the index tool, or return None if it can't be.

    The index tool matches recursively on its own, so ``**`` segments are
    dropped. Anything it cannot express (alternation, extended globs,
    escapes, negation) makes the pattern unsupported.
    """
    converted = re.sub(r"^\*\*/+", "", pattern)
    converted = re.sub(r"/+\*\*$", "", converted)
    converted = re.sub(r"\*\*/+", "", converted)
    converted = re.sub(r"/+\*\*", "", converted)

    if converted in ("", "/") or converted.startswith("!"):
        return None
    if any(token in converted for token in _UNSUPPORTED_INDEX_SYNTAX):
        return None
    return converted


class SearchBackend(str, Enum):
    """Which tier produced a search result."""

    INDEX = "index"
    EXTERNAL_TOOL_WALK = "external_tool_walk"
    IN_PROCESS_WALK = "in_process_walk"


class SearchOutcome(BaseModel):
    """Paths found by a search and the tier that found them."""

    paths: list[str] = Field(default_factory=list, description="Matching paths")
    backend: SearchBackend = Field(description="Tier that produced the result")


@dataclass
class SearchRequest:
    """A filename search against an already validated root."""

    root: str
    pattern: str
    exclude_patterns: list[str] = field(default_factory=list)

    def relative(self, path: str) -> str:
        return os.path.relpath(path, self.root)

    def is_excluded(self, relative_path: str) -> bool:
        return any(glob_match(relative_path, exclude) for exclude in self.exclude_patterns)


class SearchStrategy(ABC):
    """One tier of the search chain."""

    backend: SearchBackend

    def __init__(self, validator: PathValidator):
        self.validator = validator

    @abstractmethod
    async def search(self, request: SearchRequest) -> Optional[list[str]]:
        """Return matching paths, or None to fall through to the next tier."""
        ...

    async def _admit(self, path: str, request: SearchRequest, match_pattern: bool) -> bool:
        """Validate, apply excludes and (optionally) the search pattern."""
        try:
            await self.validator.validate(path)
        except (FileSystemError, OSError) as e:
            logger.debug(f"Skipping {path}: {e}")
            return False

        relative_path = request.relative(path)
        if request.is_excluded(relative_path):
            return False
        if match_pattern and not glob_match(relative_path, request.pattern):
            return False
        return True


class IndexSearchStrategy(SearchStrategy):
    """Tier 1: query a plocate database."""

    backend = SearchBackend.INDEX

    def __init__(self, config: FileSystemAccessConfig, validator: PathValidator):
        super().__init__(validator)
        self.config = config

    async def is_available(self) -> bool:
        """The database exists and the query tool runs."""
        database = self.config.locate_database
        if not await asyncio.to_thread(os.path.exists, database):
            return False

        try:
            output = await run_tool(
                [self.config.locate_command, "--version"],
                timeout=self.config.locate_probe_timeout_seconds,
            )
        except (OSError, ToolTimeoutError):
            return False
        return output.returncode == 0

    async def search(self, request: SearchRequest) -> Optional[list[str]]:
        if not await self.is_available():
            logger.debug("Location index not available")
            return None

        index_pattern = prepare_index_pattern(request.pattern)
        if index_pattern is None:
            logger.debug(f"Pattern {request.pattern!r} not supported by the location index")
            return None

        cmd = [
            self.config.locate_command,
            "--database",
            str(self.config.locate_database),
            "--limit",
            str(self.config.locate_result_limit),
            "--",
            index_pattern,
        ]

        try:
            output = await run_tool(cmd, timeout=self.config.locate_timeout_seconds)
        except FileNotFoundError:
            logger.warning(f"{self.config.locate_command} not found, falling back to directory walk")
            return None
        except ToolTimeoutError:
            logger.warning(
                f"Location index search timed out for pattern {index_pattern!r}, "
                f"falling back to directory walk"
            )
            return None
        except OSError as e:
            logger.warning(f"Location index search failed ({e}), falling back to directory walk")
            return None

        if output.returncode == 1:
            return []
        if output.returncode != 0:
            if "database" in output.stderr.lower():
                logger.warning(
                    f"Location index database error: {output.stderr.strip()}, "
                    f"falling back to directory walk"
                )
            else:
                logger.warning(
                    f"Location index search failed (exit {output.returncode}) for "
                    f"pattern {index_pattern!r} under {request.root}, falling back to directory walk"
                )
            return None

        results = []
        for line in output.stdout.splitlines():
            path = line.strip()
            if not path:
                continue
            if not is_path_within_allowed_directories(path, [request.root]):
                continue
            # Deleted since the index was built
            if not await asyncio.to_thread(os.path.lexists, path):
                continue
            # The translated pattern is equivalent, so it is not re-matched here
            if await self._admit(path, request, match_pattern=False):
                results.append(path)
        return results


class ExternalWalkStrategy(SearchStrategy):
    """Tier 2: list the tree with ``find`` and filter like the in-process walk."""

    backend = SearchBackend.EXTERNAL_TOOL_WALK

    def __init__(self, config: FileSystemAccessConfig, validator: PathValidator):
        super().__init__(validator)
        self.config = config

    async def search(self, request: SearchRequest) -> Optional[list[str]]:
        cmd = [self.config.external_walk_command, request.root, "-mindepth", "1", "-print0"]

        try:
            output = await run_tool(cmd, timeout=self.config.external_walk_timeout_seconds)
        except (OSError, ToolTimeoutError) as e:
            logger.warning(f"External walk failed ({e}), falling back to in-process walk")
            return None

        if output.returncode != 0:
            if not output.stdout:
                logger.warning(
                    f"External walk exited with {output.returncode}, "
                    f"falling back to in-process walk"
                )
                return None
            # Unreadable subdirectories are reported but the rest is usable
            logger.debug(f"External walk reported errors: {output.stderr.strip()}")

        results = []
        excluded_dirs: list[str] = []
        for path in output.stdout.split("\0"):
            if not path:
                continue
            if any(path.startswith(excluded + os.sep) for excluded in excluded_dirs):
                continue
            if await self._admit(path, request, match_pattern=False):
                if glob_match(request.relative(path), request.pattern):
                    results.append(path)
            elif await asyncio.to_thread(os.path.isdir, path):
                # Rejected directories are not descended, as in the in-process walk
                excluded_dirs.append(path)
        return results


class InProcessWalkStrategy(SearchStrategy):
    """
    Tier 3: depth-first walk of the tree.

    Uses an explicit stack of directory iterators rather than recursion.
    Symlinked directories are listed but not descended, and every
    directory's identity is recorded so a cycle is never walked twice.
    """

    backend = SearchBackend.IN_PROCESS_WALK

    async def search(self, request: SearchRequest) -> Optional[list[str]]:
        results: list[str] = []
        visited: set[tuple[int, int]] = set()

        root_stat = await asyncio.to_thread(os.stat, request.root)
        visited.add((root_stat.st_dev, root_stat.st_ino))
        pending = [iter(await self._list(request.root))]

        while pending:
            entry = next(pending[-1], None)
            if entry is None:
                pending.pop()
                continue

            if not await self._admit(entry.path, request, match_pattern=False):
                continue

            if glob_match(request.relative(entry.path), request.pattern):
                results.append(entry.path)

            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                entry_stat = entry.stat(follow_symlinks=False)
                identity = (entry_stat.st_dev, entry_stat.st_ino)
                if identity in visited:
                    continue
                visited.add(identity)
                pending.append(iter(await self._list(entry.path)))
            except OSError as e:
                logger.debug(f"Skipping directory {entry.path}: {e}")

        return results

    @staticmethod
    async def _list(directory: str) -> list[os.DirEntry]:
        def scan() -> list[os.DirEntry]:
            with os.scandir(directory) as entries:
                return list(entries)

        return await asyncio.to_thread(scan)


class SearchOrchestrator:
    """
    Resolves a filename glob to sandboxed paths through the tier chain.

    Usage:
        orchestrator = SearchOrchestrator(config, validator)
        outcome = await orchestrator.search("/srv/workspace", "**/*.py", ["**/.venv/**"])
        print(outcome.backend, outcome.paths)
    """

    def __init__(
        self,
        config: FileSystemAccessConfig,
        validator: PathValidator,
        strategies: Optional[Sequence[SearchStrategy]] = None,
    ):
        self.config = config
        self.validator = validator
        if strategies is None:
            strategies = self._default_strategies()
        self.strategies = list(strategies)

    def _default_strategies(self) -> list[SearchStrategy]:
        strategies: list[SearchStrategy] = [IndexSearchStrategy(self.config, self.validator)]
        if self.config.external_walk_enabled:
            strategies.append(ExternalWalkStrategy(self.config, self.validator))
        strategies.append(InProcessWalkStrategy(self.validator))
        return strategies

    async def search(
        self,
        root: Union[str, Path],
        pattern: str,
        exclude_patterns: Optional[Iterable[str]] = None,
    ) -> SearchOutcome:
        """
        Find paths under ``root`` whose root-relative path matches ``pattern``.

        Args:
            root: Directory to search (validated here)
            pattern: Glob pattern, e.g. ``"**/*.py"``
            exclude_patterns: Globs for root-relative paths to leave out

        Returns:
            SearchOutcome with the paths and the tier that produced them

        Raises:
            FileAccessDeniedError: If ``root`` is outside the sandbox
            SearchError: If no tier produced a result
        """
        validated_root = await self.validator.validate(root)
        request = SearchRequest(
            root=validated_root,
            pattern=pattern,
            exclude_patterns=list(exclude_patterns or []),
        )

        for strategy in self.strategies:
            paths = await strategy.search(request)
            if paths is not None:
                logger.info(
                    f"Search for {pattern!r} under {validated_root} found "
                    f"{len(paths)} path(s) via {strategy.backend.value}"
                )
                return SearchOutcome(paths=paths, backend=strategy.backend)

        raise SearchError(f"No search backend could handle pattern {pattern!r}")

    async def search_paths(
        self,
        root: Union[str, Path],
        pattern: str,
        exclude_patterns: Optional[Iterable[str]] = None,
    ) -> list[str]:
        """Like :meth:`search`, returning only the paths."""
        outcome = await self.search(root, pattern, exclude_patterns)
        return outcome.paths
