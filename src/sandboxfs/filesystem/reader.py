"""
File reading for sandboxed paths: whole-file reads, stats, and
bounded-memory head/tail.
"""

import asyncio
import logging
import os
import stat
from datetime import datetime
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_size(size: float) -> str:
    """Format a byte count for humans (``1536`` -> ``"1.50 KB"``)."""
    if size == 0:
        return "0 B"
    if size < 1024:
        return f"{size} B"

    value = size
    unit_index = 0
    while value >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit_index += 1
    return f"{value:.2f} {_SIZE_UNITS[unit_index]}"


class FileInfo(BaseModel):
    """Metadata about a file or directory."""

    size: int = Field(description="Size in bytes")
    created: datetime = Field(description="Creation time (birth time where available)")
    modified: datetime = Field(description="Last modification time")
    accessed: datetime = Field(description="Last access time")
    is_directory: bool = Field(description="Whether the path is a directory")
    is_file: bool = Field(description="Whether the path is a regular file")
    permissions: str = Field(description="Permission bits as three octal digits")

    def format(self) -> str:
        return "\n".join(
            f"{name}: {value.isoformat() if isinstance(value, datetime) else value}"
            for name, value in self.model_dump().items()
        )


def _stat_to_info(st: os.stat_result) -> FileInfo:
    created = getattr(st, "st_birthtime", None) or st.st_ctime
    return FileInfo(
        size=st.st_size,
        created=datetime.fromtimestamp(created),
        modified=datetime.fromtimestamp(st.st_mtime),
        accessed=datetime.fromtimestamp(st.st_atime),
        is_directory=stat.S_ISDIR(st.st_mode),
        is_file=stat.S_ISREG(st.st_mode),
        permissions=oct(st.st_mode)[-3:],
    )


async def get_file_info(path: Union[str, Path]) -> FileInfo:
    """Stat a validated path."""
    st = await asyncio.to_thread(os.stat, path)
    return _stat_to_info(st)


def _read_text(path: Union[str, Path], encoding: str) -> str:
    with open(path, "r", encoding=encoding, newline="") as f:
        return f.read()


async def read_file_content(path: Union[str, Path], encoding: str = "utf-8") -> str:
    """Read a validated file as text, without newline translation."""
    return await asyncio.to_thread(_read_text, path, encoding)


def _decode_line(line: bytes, encoding: str) -> str:
    if line.endswith(b"\r"):
        line = line[:-1]
    return line.decode(encoding, errors="replace")


class ChunkedLineReader:
    """
    Reads the first or last N lines of a file in fixed-size chunks.

    Memory use is bounded by the chunk size and the lines kept, never by
    the file size. Lines are split on raw bytes before decoding, so a
    multi-byte character straddling a chunk boundary is not mangled.
    A single line terminator at the very end of the file ends the last
    line; it does not start an extra empty one.

    Usage:
        reader = ChunkedLineReader(chunk_size=4096)
        last_lines = await reader.tail(validated_path, 20)
    """

    def __init__(self, chunk_size: int = 1024, encoding: str = "utf-8"):
        self.chunk_size = chunk_size
        self.encoding = encoding

    async def tail(self, path: Union[str, Path], num_lines: int) -> str:
        """Return the last ``num_lines`` lines, joined with ``\\n``."""
        if num_lines <= 0:
            return ""

        st = await asyncio.to_thread(os.stat, path)
        if st.st_size == 0:
            return ""

        return await asyncio.to_thread(self._tail_sync, path, st.st_size, num_lines)

    async def head(self, path: Union[str, Path], num_lines: int) -> str:
        """Return the first ``num_lines`` lines, joined with ``\\n``."""
        if num_lines <= 0:
            return ""
        return await asyncio.to_thread(self._head_sync, path, num_lines)

    def _tail_sync(self, path: Union[str, Path], file_size: int, num_lines: int) -> str:
        lines: list[bytes] = []
        position = file_size
        remainder = b""
        at_end_of_file = True

        with open(path, "rb") as f:
            while position > 0 and len(lines) < num_lines:
                size = min(self.chunk_size, position)
                position -= size
                f.seek(position)
                chunk = f.read(size)
                if not chunk:
                    break

                parts = (chunk + remainder).split(b"\n")

                if at_end_of_file:
                    at_end_of_file = False
                    if parts[-1] == b"":
                        parts.pop()

                # The first part may continue in the previous chunk
                if position > 0 and parts:
                    remainder = parts.pop(0)
                else:
                    remainder = b""

                for part in reversed(parts):
                    if len(lines) >= num_lines:
                        break
                    lines.append(part)

        lines.reverse()
        logger.debug(f"Read last {len(lines)} line(s) of {path} (stopped at offset {position})")
        return "\n".join(_decode_line(line, self.encoding) for line in lines)

    def _head_sync(self, path: Union[str, Path], num_lines: int) -> str:
        lines: list[bytes] = []
        buffer = b""

        with open(path, "rb") as f:
            while len(lines) < num_lines:
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                buffer += chunk

                newline_index = buffer.rfind(b"\n")
                if newline_index == -1:
                    continue

                complete = buffer[:newline_index].split(b"\n")
                buffer = buffer[newline_index + 1 :]
                for line in complete:
                    lines.append(line)
                    if len(lines) >= num_lines:
                        break

        # Trailing content without a newline is the final line
        if buffer and len(lines) < num_lines:
            lines.append(buffer)

        logger.debug(f"Read first {len(lines)} line(s) of {path}")

        return "\n".join(_decode_line(line, self.encoding) for line in lines)
