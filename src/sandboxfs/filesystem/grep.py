"""
Content search delegated to ripgrep.

The engine validates the search path, translates GrepOptions into an rg
argument list, parses rg's output per file and enforces a single result
cap across all files.
"""

import logging
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from sandboxfs.filesystem.config import FileSystemAccessConfig
from sandboxfs.filesystem.exceptions import (
    FileSystemError,
    InvalidPatternError,
    ToolExecutionError,
    ToolNotInstalledError,
)
from sandboxfs.filesystem.paths import PathValidator
from sandboxfs.filesystem.process import run_tool

logger = logging.getLogger(__name__)

RG_NOT_INSTALLED = "ripgrep (rg) is not installed. Please install ripgrep to use this feature."

# "<line number><':' for a match, '-' for context><content>", after the NUL-terminated path
_LINE_RE = re.compile(r"^(\d+)([:-])(.*)$", re.DOTALL)


class GrepOptions(BaseModel):
    """Parameters of a content search."""

    model_config = ConfigDict(populate_by_name=True)

    search_path: str = Field(alias="searchPath", description="File or directory to search")
    pattern: str = Field(description="Regular expression, or literal text with fixed_strings")
    ignore_case: bool = Field(default=False, alias="ignoreCase")
    recursive: bool = Field(default=True, description="Descend into subdirectories")
    max_results: Optional[int] = Field(
        default=None,
        alias="maxResults",
        ge=1,
        description="Cap on matches across all files (defaults to the configured limit)",
    )
    context: int = Field(default=0, ge=0, description="Lines of context on both sides")
    before_context: Optional[int] = Field(default=None, alias="beforeContext", ge=0)
    after_context: Optional[int] = Field(default=None, alias="afterContext", ge=0)
    file_pattern: str = Field(default="*", alias="filePattern", description="Glob of files to include")
    include_line_numbers: bool = Field(default=True, alias="includeLineNumbers")
    exclude_patterns: list[str] = Field(default_factory=list, alias="excludePatterns")
    invert_match: bool = Field(default=False, alias="invertMatch")
    fixed_strings: bool = Field(default=False, alias="fixedStrings")

    def effective_context(self) -> tuple[int, int]:
        """(before, after) radii; a positive shared radius wins over both."""
        if self.context > 0:
            return self.context, self.context
        return self.before_context or 0, self.after_context or 0


class GrepMatch(BaseModel):
    """A matching line and the context rg reported around it."""

    file: str
    line_number: int
    content: str
    context_before: list[str] = Field(default_factory=list)
    context_after: list[str] = Field(default_factory=list)


class GrepFileReport(BaseModel):
    """All reported matches within one file."""

    file: str
    matches: list[GrepMatch] = Field(default_factory=list)

    def format(self, include_line_numbers: bool = True) -> str:
        lines = [f"File: {self.file}"]
        for match in self.matches:
            lines.extend(f"    {line}" for line in match.context_before)
            if include_line_numbers:
                lines.append(f"  Line {match.line_number}: {match.content}")
            else:
                lines.append(f"  {match.content}")
            lines.extend(f"    {line}" for line in match.context_after)
        return "\n".join(lines)


def build_rg_args(options: GrepOptions, validated_path: str) -> list[str]:
    """Translate options into rg arguments (program name excluded)."""
    args = []
    if options.fixed_strings:
        args.append("--fixed-strings")
    if options.ignore_case:
        args.append("--ignore-case")
    if not options.recursive:
        args.extend(["--max-depth", "1"])

    before, after = options.effective_context()
    if before > 0 or after > 0:
        if before == after:
            args.extend(["--context", str(before)])
        else:
            if before > 0:
                args.extend(["--before-context", str(before)])
            if after > 0:
                args.extend(["--after-context", str(after)])

    if options.invert_match:
        args.append("--invert-match")
    if options.file_pattern != "*":
        args.extend(["--glob", options.file_pattern])
    for exclude in options.exclude_patterns:
        args.extend(["--glob", f"!{exclude}"])

    args.extend([
        "--line-number",
        "--with-filename",
        "--no-heading",
        "--no-column",
        "--null",
        "--color",
        "never",
        "--regexp",
        options.pattern,
        "--",
        validated_path,
    ])
    return args


def parse_rg_output(stdout: str, before: int = 0, after: int = 0) -> list[GrepFileReport]:
    """
    Parse ``--null`` formatted rg output into per-file reports.

    Context lines are attached to the matches within ``before``/``after``
    lines of them. Block separators are dropped.
    """
    matches: dict[str, list[tuple[int, str]]] = {}
    context: dict[str, dict[int, str]] = {}

    for raw in stdout.split("\n"):
        path, sep, rest = raw.partition("\0")
        if not sep:
            continue
        parsed = _LINE_RE.match(rest)
        if not parsed:
            continue
        number, kind, content = int(parsed.group(1)), parsed.group(2), parsed.group(3)
        if content.endswith("\r"):
            content = content[:-1]

        matches.setdefault(path, [])
        if kind == ":":
            matches[path].append((number, content))
        else:
            context.setdefault(path, {})[number] = content

    reports = []
    for path, file_matches in matches.items():
        if not file_matches:
            continue
        file_context = context.get(path, {})
        report = GrepFileReport(file=path)
        for number, content in file_matches:
            report.matches.append(
                GrepMatch(
                    file=path,
                    line_number=number,
                    content=content,
                    context_before=[
                        file_context[n] for n in range(number - before, number) if n in file_context
                    ],
                    context_after=[
                        file_context[n]
                        for n in range(number + 1, number + after + 1)
                        if n in file_context
                    ],
                )
            )
        reports.append(report)
    return reports


def cap_reports(reports: list[GrepFileReport], max_results: int) -> list[GrepFileReport]:
    """Keep at most ``max_results`` matches in total, in file order."""
    capped = []
    remaining = max_results
    for report in reports:
        if remaining <= 0:
            break
        kept = report.matches[:remaining]
        remaining -= len(kept)
        capped.append(GrepFileReport(file=report.file, matches=kept))
    return capped


class ContentGrepEngine:
    """
    Line-level content search through ripgrep.

    Usage:
        engine = ContentGrepEngine(config, validator)
        reports = await engine.grep(GrepOptions(search_path="/srv/ws", pattern="TODO"))
        for report in reports:
            print(report.format())
    """

    def __init__(self, config: FileSystemAccessConfig, validator: PathValidator):
        self.config = config
        self.validator = validator

    async def grep(self, options: GrepOptions) -> list[GrepFileReport]:
        """
        Run a content search.

        Returns:
            Per-file reports in rg's output order, capped across all files

        Raises:
            FileAccessDeniedError: If the search path is outside the sandbox
            ToolNotInstalledError: If rg is not installed
            InvalidPatternError: If rg rejects the pattern
            ToolExecutionError: On any other rg failure
            ToolTimeoutError: If rg does not finish in time
        """
        validated_path = await self.validator.validate(options.search_path)
        cmd = [self.config.grep_command, *build_rg_args(options, validated_path)]

        try:
            output = await run_tool(cmd, timeout=self.config.grep_timeout_seconds)
        except FileNotFoundError:
            logger.error(f"{self.config.grep_command} not found")
            raise ToolNotInstalledError(self.config.grep_command, RG_NOT_INSTALLED)

        if output.returncode == 1:
            return []
        if output.returncode != 0:
            if "regex parse error" in output.stderr:
                raise InvalidPatternError(options.pattern, output.stderr.strip())
            if output.returncode != 2 or not output.stdout:
                logger.error(f"rg exited with {output.returncode}: {output.stderr.strip()}")
                raise ToolExecutionError("ripgrep", output.returncode, output.stderr)
            # Exit 2 with output: some files could not be read, the rest matched
            logger.warning(f"rg reported errors, returning partial results: {output.stderr.strip()}")

        before, after = options.effective_context()
        reports = []
        for report in parse_rg_output(output.stdout, before, after):
            try:
                await self.validator.validate(report.file)
            except (FileSystemError, OSError) as e:
                logger.debug(f"Dropping grep results for {report.file}: {e}")
                continue
            reports.append(report)

        max_results = options.max_results or self.config.max_search_results
        capped = cap_reports(reports, max_results)
        total = sum(len(r.matches) for r in reports)
        if total > max_results:
            logger.warning(f"Grep results truncated to {max_results} of {total} matches")
        logger.info(
            f"Grep for {options.pattern!r} in {validated_path} matched "
            f"{min(total, max_results)} line(s) in {len(capped)} file(s)"
        )
        return capped
