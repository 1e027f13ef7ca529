"""
Project introduction extraction.

Collects the documentation files that usually describe a project
(CLAUDE.md, README.md, contributor and design notes) into one document.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field

from sandboxfs.filesystem.exceptions import FileSystemError
from sandboxfs.filesystem.paths import PathValidator
from sandboxfs.filesystem.reader import read_file_content

logger = logging.getLogger(__name__)

PRIORITY_FILES = ["CLAUDE.md", "README.md"]

# Most common first
ADDITIONAL_FILES = [
    "CONTRIBUTING.md",
    "CHANGELOG.md",
    "SECURITY.md",
    "CODE_OF_CONDUCT.md",
    "ARCHITECTURE.md",
    "DESIGN.md",
    "OVERVIEW.md",
    "INTRO.md",
    "ABOUT.md",
    "GETTING_STARTED.md",
    "QUICKSTART.md",
    "docs/README.md",
    "docs/INTRO.md",
    "docs/OVERVIEW.md",
    "docs/GETTING_STARTED.md",
    ".github/README.md",
    ".github/CONTRIBUTING.md",
]

SECTION_SEPARATOR = "\n\n---\n\n"
ADDITIONAL_HEADER = "\n---\n\n## Additional Documentation\n"


class ProjectIntro(BaseModel):
    """Combined project documentation."""

    content: str = Field(default="", description="Combined markdown, empty if nothing was found")
    files_found: list[str] = Field(default_factory=list, description="Relative paths that were read")
    files_checked: list[str] = Field(default_factory=list, description="Relative paths that were tried")


async def extract_project_intro(
    validator: PathValidator,
    project_path: Union[str, Path],
    include_additional_files: bool = True,
) -> ProjectIntro:
    """
    Read the introduction documents of a project.

    Args:
        validator: Validator guarding every file access
        project_path: Project root directory
        include_additional_files: Also read the secondary documentation files

    Returns:
        ProjectIntro; priority files come first under ``# name`` headings,
        additional files follow under an "Additional Documentation" section
    """
    root = await validator.validate(project_path)
    additional = list(ADDITIONAL_FILES) if include_additional_files else []
    candidates = PRIORITY_FILES + additional

    found: dict[str, str] = {}
    for name in candidates:
        try:
            file_path = await validator.validate(os.path.join(root, name))
            if not await asyncio.to_thread(os.path.isfile, file_path):
                continue
            found[name] = await read_file_content(file_path)
        except (FileSystemError, OSError, UnicodeDecodeError) as e:
            logger.debug(f"Skipping {name}: {e}")

    if not found:
        return ProjectIntro(files_checked=candidates)

    sections = [f"# {name}\n\n{found[name]}" for name in PRIORITY_FILES if name in found]
    additional_found = [name for name in additional if name in found]
    if additional_found:
        sections.append(ADDITIONAL_HEADER)
        sections.extend(f"### {name}\n\n{found[name]}" for name in additional_found)

    logger.info(f"Project introduction for {root} built from {len(found)} file(s)")
    return ProjectIntro(
        content=SECTION_SEPARATOR.join(sections),
        files_found=list(found),
        files_checked=candidates,
    )
