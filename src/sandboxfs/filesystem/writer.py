"""
Atomic file writes for sandboxed paths.
"""

import asyncio
import logging
import os
import secrets
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class AtomicFileWriter:
    """
    Writes file content without ever exposing a partial file.

    New files are created exclusively, which fails on anything already
    present at the target, including a planted symlink. Existing files
    are replaced by writing a randomly named sibling temp file and
    renaming it over the target: readers see either the old or the new
    content in full, and the rename replaces a symlink at the target
    instead of writing through it.

    Callers must pass a path that has already been validated.

    Usage:
        writer = AtomicFileWriter()
        await writer.write(validated_path, "new content\n")
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def write(self, path: Union[str, Path], content: str) -> None:
        """
        Write ``content`` to ``path``.

        Raises:
            OSError: If neither the exclusive create nor the
                temp-file-and-rename path succeeds
            UnicodeEncodeError: If ``content`` cannot be encoded; nothing
                is created in that case
        """
        await asyncio.to_thread(self._write_sync, os.fspath(path), content)

    def _write_sync(self, path: str, content: str) -> None:
        # Encoding errors surface before anything is created
        data = content.encode(self.encoding)

        try:
            self._write_exclusive(path, data)
            logger.debug(f"Created file: {path}")
            return
        except FileExistsError:
            pass

        temp_path = f"{path}.{secrets.token_hex(16)}.tmp"
        try:
            self._write_exclusive(temp_path, data)
            os.replace(temp_path, path)
        except BaseException:
            self._discard(temp_path)
            raise

        logger.debug(f"Replaced file atomically: {path}")

    def _write_exclusive(self, path: str, data: bytes) -> None:
        with open(path, "xb") as f:
            f.write(data)

    @staticmethod
    def _discard(temp_path: str) -> None:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove temp file {temp_path}: {e}")
