"""
Configuration for sandboxed filesystem access.
"""

import json
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sandboxfs.filesystem.paths import canonicalize_directory


class FileSystemAccessConfig(BaseSettings):
    """
    Configuration for the sandboxed filesystem.

    Defines the directories an automated client may touch, plus the
    external tools used for searching and their limits. Values can be
    passed directly, loaded from a YAML/JSON file, or taken from
    ``SANDBOXFS_*`` environment variables.

    Example:
        ```python
        config = FileSystemAccessConfig(
            allowed_directories=["~/projects"],
            grep_timeout_seconds=10,
        )

        # Load from file
        config = FileSystemAccessConfig.from_file("~/.sandboxfs.yaml")
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="SANDBOXFS_",
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    allowed_directories: list[Path] = Field(
        default_factory=list,
        description="Sandbox roots (expanded, absolute, symlinks resolved)",
    )

    # Location index (tier 1)
    locate_command: str = Field(
        default="plocate",
        description="Index query tool",
    )
    locate_database: Path = Field(
        default=Path("/var/lib/plocate/plocate.db"),
        validation_alias=AliasChoices("SANDBOXFS_LOCATE_DATABASE", "PLOCATE_DB"),
        description="Prebuilt location index database",
    )
    locate_result_limit: int = Field(
        default=10_000,
        ge=1,
        description="Maximum number of paths requested from the index tool",
    )
    locate_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Timeout for an index query (seconds)",
    )
    locate_probe_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60.0,
        description="Timeout for checking that the index tool runs (seconds)",
    )

    # External walk (tier 2)
    external_walk_enabled: bool = Field(
        default=False,
        description="Try an external directory walk before the in-process walk",
    )
    external_walk_command: str = Field(
        default="find",
        description="Tool used for the external directory walk",
    )
    external_walk_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Timeout for the external directory walk (seconds)",
    )

    # Content search
    grep_command: str = Field(
        default="rg",
        description="Line-search tool (ripgrep compatible)",
    )
    grep_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Timeout for content searches (seconds)",
    )
    max_search_results: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Default cap on content-search matches across all files",
    )

    chunk_size_bytes: int = Field(
        default=1024,
        ge=16,
        description="Chunk size used when reading the head or tail of a file",
    )

    @field_validator("allowed_directories", mode="before")
    @classmethod
    def resolve_directories(cls, v):
        """Canonicalize every root the same way requested paths are."""
        if not v:
            return []
        if isinstance(v, (str, Path)):
            v = [v]
        return [Path(canonicalize_directory(str(p))) for p in v]

    @field_validator("locate_database", mode="before")
    @classmethod
    def expand_database(cls, v):
        """Expand ``~`` in the index database path."""
        return Path(v).expanduser()

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FileSystemAccessConfig":
        """
        Load configuration from a YAML or JSON file.

        File format (YAML):
            ```yaml
            allowed_directories:
              - ~/projects
              - /srv/data
            locate_database: /var/lib/plocate/plocate.db
            grep_timeout_seconds: 10
            max_search_results: 200
            ```

        Args:
            path: Path to configuration file

        Returns:
            Loaded FileSystemAccessConfig instance

        Raises:
            FileNotFoundError: If the config file doesn't exist
        """
        path = Path(path).expanduser().resolve()

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text()

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            # Try YAML first, then JSON
            try:
                data = yaml.safe_load(content)
            except yaml.YAMLError:
                data = json.loads(content)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileSystemAccessConfig":
        """Create configuration from a dictionary."""
        return cls(**data)

    def with_overrides(self, **overrides: Any) -> "FileSystemAccessConfig":
        """Return a copy with the given fields replaced (and re-validated)."""
        data = self.model_dump()
        data.update(overrides)
        return type(self)(**data)

    def __repr__(self) -> str:
        return (
            f"FileSystemAccessConfig("
            f"allowed_dirs={len(self.allowed_directories)}, "
            f"locate={self.locate_command!r}, "
            f"grep={self.grep_command!r})"
        )
