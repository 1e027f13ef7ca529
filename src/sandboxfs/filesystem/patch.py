"""
Whitespace-tolerant, line-based patching.

Edits are applied in order against the evolving document. Each edit
first tries an exact substring match; failing that, a window of lines
is matched ignoring leading and trailing whitespace, and the replacement
is re-indented to fit the matched location.

When two regions have identical trimmed content the first one wins.
This is a known limitation of the window match, not a bug.
"""

import difflib
import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from sandboxfs.filesystem.exceptions import NoMatchFoundError, PatchWriteError
from sandboxfs.filesystem.reader import read_file_content
from sandboxfs.filesystem.writer import AtomicFileWriter

logger = logging.getLogger(__name__)


class EditOperation(BaseModel):
    """A single replacement of ``old_text`` with ``new_text``."""

    model_config = ConfigDict(populate_by_name=True)

    old_text: str = Field(alias="oldText", description="Text to search for")
    new_text: str = Field(alias="newText", description="Text to replace it with")


class PatchResult(BaseModel):
    """Outcome of applying a list of edits."""

    diff: str = Field(description="Unified diff wrapped in a backtick fence")
    written: bool = Field(description="Whether the new content was persisted")


def normalize_line_endings(text: str) -> str:
    """Convert CRLF line endings to LF."""
    return text.replace("\r\n", "\n")


def create_unified_diff(original: str, modified: str, filepath: str = "file") -> str:
    """
    Unified diff between two texts, with line endings normalized.

    The ``---``/``+++`` headers are always present, even when the texts
    are identical. A last line without a newline gets the usual
    ``\\ No newline at end of file`` marker.
    """
    original_lines = normalize_line_endings(original).splitlines(keepends=True)
    modified_lines = normalize_line_endings(modified).splitlines(keepends=True)

    diff_lines = list(
        difflib.unified_diff(
            original_lines,
            modified_lines,
            fromfile=filepath,
            tofile=filepath,
            fromfiledate="original",
            tofiledate="modified",
        )
    )
    if not diff_lines:
        diff_lines = [f"--- {filepath}\toriginal\n", f"+++ {filepath}\tmodified\n"]

    output = []
    for line in diff_lines:
        if line.endswith("\n"):
            output.append(line)
        else:
            output.append(line + "\n\\ No newline at end of file\n")
    return "".join(output)


def fence_diff(diff: str, delimiter: str = "`") -> str:
    """Wrap a diff in a fence longer than any delimiter run inside it."""
    length = 3
    while delimiter * length in diff:
        length += 1
    fence = delimiter * length
    if not diff.endswith("\n"):
        diff += "\n"
    return f"{fence}diff\n{diff}{fence}\n\n"


def _leading_whitespace(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _reindent(
    new_lines: list[str], old_lines: list[str], original_indent: str
) -> list[str]:
    """Fit replacement lines to the indentation found in the document."""
    result = []
    for index, line in enumerate(new_lines):
        if index == 0:
            result.append(original_indent + line.lstrip())
            continue

        old_indent = _leading_whitespace(old_lines[index]) if index < len(old_lines) else ""
        new_indent = _leading_whitespace(line)
        if old_indent and new_indent:
            relative = len(new_indent) - len(old_indent)
            result.append(original_indent + " " * max(0, relative) + line.lstrip())
        else:
            result.append(line)
    return result


def apply_edit(content: str, edit: EditOperation) -> str:
    """
    Apply one edit to already-normalized content.

    Raises:
        NoMatchFoundError: If ``old_text`` matches neither exactly nor
            line-by-line ignoring surrounding whitespace
    """
    old_text = normalize_line_endings(edit.old_text)
    new_text = normalize_line_endings(edit.new_text)

    if old_text in content:
        return content.replace(old_text, new_text, 1)

    old_lines = old_text.split("\n")
    content_lines = content.split("\n")
    stripped_old = [line.strip() for line in old_lines]

    for start in range(len(content_lines) - len(old_lines) + 1):
        window = content_lines[start : start + len(old_lines)]
        if all(line.strip() == expected for line, expected in zip(window, stripped_old)):
            original_indent = _leading_whitespace(content_lines[start])
            replacement = _reindent(new_text.split("\n"), old_lines, original_indent)
            content_lines[start : start + len(old_lines)] = replacement
            logger.debug(f"Applied whitespace-tolerant match at line {start + 1}")
            return "\n".join(content_lines)

    raise NoMatchFoundError(edit.old_text)


def apply_edits(content: str, edits: Iterable[EditOperation]) -> str:
    """Apply edits in order; any miss aborts the whole list."""
    modified = normalize_line_endings(content)
    for edit in edits:
        modified = apply_edit(modified, edit)
    return modified


class FuzzyPatchEngine:
    """
    Applies edit lists to files and reports a fenced unified diff.

    Usage:
        engine = FuzzyPatchEngine(AtomicFileWriter())
        result = await engine.apply(
            validated_path,
            [EditOperation(old_text="foo()", new_text="bar()")],
            dry_run=True,
        )
        print(result.diff)
    """

    def __init__(self, writer: Optional[AtomicFileWriter] = None, encoding: str = "utf-8"):
        self.writer = writer or AtomicFileWriter(encoding=encoding)
        self.encoding = encoding

    async def apply(
        self,
        path: Union[str, Path],
        edits: Iterable[Union[EditOperation, dict]],
        dry_run: bool = False,
    ) -> PatchResult:
        """
        Apply ``edits`` to the file at a validated ``path``.

        Args:
            path: Validated file path
            edits: Edits to apply, in order
            dry_run: Only compute the diff, leave the file untouched

        Returns:
            PatchResult with the fenced diff

        Raises:
            NoMatchFoundError: If any edit fails to match (nothing is written)
            PatchWriteError: If the patched content could not be persisted;
                the diff is available on the exception
        """
        path = os.fspath(path)
        operations = [
            edit if isinstance(edit, EditOperation) else EditOperation.model_validate(edit)
            for edit in edits
        ]

        original = normalize_line_endings(await read_file_content(path, self.encoding))
        modified = apply_edits(original, operations)
        diff = fence_diff(create_unified_diff(original, modified, path))

        if dry_run:
            logger.info(f"Dry run: {len(operations)} edit(s) computed for {path}")
            return PatchResult(diff=diff, written=False)

        try:
            await self.writer.write(path, modified)
        except (OSError, UnicodeError) as e:
            logger.error(f"Failed to write patched file {path}: {e}")
            raise PatchWriteError(path, diff, e) from e

        logger.info(f"Applied {len(operations)} edit(s) to {path}")
        return PatchResult(diff=diff, written=True)
