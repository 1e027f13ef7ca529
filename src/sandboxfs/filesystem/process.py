"""
Running external search tools.

Commands are always executed from an argument list, never through a
shell, so nothing in a pattern or path can be interpreted as shell
syntax.
"""

import asyncio
import logging
import shlex
from dataclasses import dataclass

from sandboxfs.filesystem.exceptions import ToolTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class ToolOutput:
    """Exit status and decoded output of a finished tool."""

    returncode: int
    stdout: str
    stderr: str


async def run_tool(cmd: list[str], timeout: float) -> ToolOutput:
    """
    Run ``cmd`` and wait for it to finish.

    Args:
        cmd: Program followed by its arguments
        timeout: Seconds to wait before killing the process

    Returns:
        ToolOutput with the exit status and output

    Raises:
        FileNotFoundError: If the program is not installed
        ToolTimeoutError: If the process did not finish in time (it is killed)
    """
    logger.debug(f"Running: {shlex.join(cmd)}")

    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.error(f"{cmd[0]} timed out after {timeout}s")
        raise ToolTimeoutError(cmd[0], timeout)

    return ToolOutput(
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
