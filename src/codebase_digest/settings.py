"""Per-run settings, merged from defaults, a JSON or YAML config file and CLI overrides."""

from __future__ import annotations

import json
import math
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from codebase_digest.config import (
    BINARY_FILE_EXTENSIONS,
    CPU_COUNT,
    DEFAULT_IGNORE_PATTERNS,
    TEXT_FILE_EXTENSIONS,
)
from codebase_digest.exceptions import ConfigFileError
from codebase_digest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_FILE = find_dotenv(usecwd=True)
CONFIG_ENV_VAR = "CODEBASE_DIGEST_CONFIG"


class Settings(BaseModel):
    """Configuration settings for one digest run.

    Every field has a default, so any partial mapping (snake_case or the
    camelCase keys used in JSON config files) is a valid override.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # Output
    output_format: str = Field(default="text", description="Output format.")
    output_file: str | None = Field(default=None, description="Output file, stdout if unset.")
    output_encoding: str = Field(default="utf8", description="Output file encoding.")
    max_output_size: int = Field(default=0, ge=0, description="Output size cap in bytes, 0 for none.")
    compress: bool = Field(default=False, description="Gzip the rendered output.")

    # File selection
    include_patterns: list[str] = Field(default_factory=lambda: ["**/*"], description="Include globs.")
    exclude_patterns: list[str] = Field(default_factory=list, description="Exclude globs.")
    ignore_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS),
        description="Built-in ignore list (gitignore syntax).",
    )
    respect_gitignore: bool = Field(default=True, description="Honor .gitignore.")
    respect_npmignore: bool = Field(default=True, description="Honor .npmignore.")
    respect_dockerignore: bool = Field(default=True, description="Honor .dockerignore.")
    max_file_size: int = Field(default=1024 * 1024, ge=0, description="Largest accepted file.")
    min_file_size: int = Field(default=0, ge=0, description="Smallest accepted file.")
    include_hidden: bool = Field(default=True, description="Match dotfiles.")
    follow_symlinks: bool = Field(default=False, description="Traverse symlinked directories.")
    max_depth: int | None = Field(default=None, ge=1, description="Maximum path depth, None for unbounded.")
    file_order: list[str] = Field(default_factory=list, description="Files listed first.")
    directory_order: list[str] = Field(default_factory=list, description="Directories listed first.")
    skip_empty_files: bool = Field(default=False, description="Reject empty files.")

    # Content processing
    encoding: str = Field(default="auto", description="Text encoding or 'auto'.")
    detect_encoding: bool = Field(default=True, description="Sniff encoding when 'auto'.")
    binary_files_action: str = Field(default="skip", description="skip, include or hexdump.")
    detect_binary: bool = Field(default=True, description="Classify binary files.")
    skip_binary_files: bool = Field(default=True, description="Reject binary files.")
    binary_file_extensions: list[str] = Field(default_factory=lambda: list(BINARY_FILE_EXTENSIONS))
    text_file_extensions: list[str] = Field(default_factory=lambda: list(TEXT_FILE_EXTENSIONS))
    truncate_line_length: int = Field(default=0, ge=0, description="Cut longer lines.")
    file_content_preview: int = Field(default=0, ge=0, description="Keep the first N lines.")
    file_content_tail: int = Field(default=0, ge=0, description="Append the last N lines.")
    comment_stripping: bool = Field(default=False, description="Remove comments heuristically.")
    strip_whitespace: bool = Field(default=False, description="Trim lines, collapse blank runs.")

    # Formatting
    include_file_header: bool = Field(default=True)
    include_file_separator: bool = Field(default=True)
    include_line_numbers: bool = Field(default=False)
    include_byte_size: bool = Field(default=False)
    include_mime_type: bool = Field(default=False)
    include_last_modified: bool = Field(default=False)
    include_file_hash: bool = Field(default=False)
    hash_algorithm: str = Field(default="md5", description="md5, sha1, sha256, sha384 or sha512.")
    include_metadata: bool = Field(default=False, description="Add metadata to JSON records.")
    exclude_content: bool = Field(default=False, description="Drop content from JSON records.")
    code_statistics: bool = Field(default=False, description="Add a summary section.")
    sort_by: str = Field(default="path", description="path, size, extension or modified.")
    sort_direction: str = Field(default="asc", description="asc or desc.")
    file_grouping: str = Field(default="none", description="none, extension, directory or language.")
    file_grouping_depth: int = Field(default=1, ge=1)

    # Resilience
    timeout: int = Field(default=3_600_000, gt=0, description="Pipeline deadline in milliseconds.")
    retry_count: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=1000, ge=0, description="Milliseconds between attempts.")
    continue_on_error: bool = Field(default=True, description="Turn file failures into error records.")

    # Concurrency
    parallel: bool = Field(default=True)
    max_parallel_processes: int = Field(default=max(1, CPU_COUNT - 1), ge=1)

    # Logging
    verbose: bool = Field(default=False)
    silent: bool = Field(default=False)
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("max_depth", mode="before")
    @classmethod
    def _parse_max_depth(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, float) and math.isinf(value):
            return None
        return value

    @field_validator("binary_file_extensions", "text_file_extensions", mode="after")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        return [ext.removeprefix(".").lower() for ext in value]

    def with_overrides(self, overrides: Mapping[str, Any]) -> Settings:
        """Return a copy of these settings with `overrides` merged on top.

        Args:
            overrides: Partial configuration, keyed by field name or camelCase alias.

        Returns:
            Settings: A new, validated settings object.
        """
        merged = self.model_dump()
        merged.update(_normalize_keys(overrides))
        return type(self).model_validate(merged)


def _normalize_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    by_alias = {field.alias or name: name for name, field in Settings.model_fields.items()}
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = by_alias.get(key, key)
        if name in Settings.model_fields:
            out[name] = value
    return out


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a JSON (or YAML) configuration file.

    Args:
        path (str | Path): Path to the configuration file.

    Raises:
        ConfigFileError: If the file is missing, unreadable or not a mapping.

    Returns:
        dict[str, Any]: The raw configuration mapping.
    """
    resolved = Path(path).expanduser().resolve()
    if not resolved.is_file():
        raise ConfigFileError(message=f"Config file not found: {resolved}", file=resolved)
    logger.info("loading_config", path=str(resolved))
    try:
        text = resolved.read_text(encoding="utf-8")
        if resolved.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigFileError(message=f"Error parsing config file: {e}", file=resolved) from e
    if not isinstance(data, dict):
        raise ConfigFileError(message=f"Config file must contain an object: {resolved}", file=resolved)
    return data


def default_config_path() -> str | None:
    """Look up the default config file named by the environment or a `.env` file.

    Returns:
        str | None: The configured path, or None when unset.
    """
    value = os.environ.get(CONFIG_ENV_VAR)
    if value:
        return value
    if ENV_FILE:
        return dotenv_values(ENV_FILE).get(CONFIG_ENV_VAR) or None
    return None


def build_settings(
    overrides: Mapping[str, Any] | None = None,
    *,
    config_file: str | Path | None = None,
) -> Settings:
    """Build settings from defaults, an optional config file and explicit overrides.

    Args:
        overrides: Values that take precedence over the config file.
        config_file: Optional JSON/YAML configuration file.

    Raises:
        ConfigFileError: If the config file cannot be loaded or holds invalid values.

    Returns:
        Settings: The merged settings.
    """
    settings = Settings()
    try:
        if config_file:
            settings = settings.with_overrides(load_config_file(config_file))
        if overrides:
            settings = settings.with_overrides(overrides)
    except ValidationError as e:
        raise ConfigFileError(message=f"Invalid configuration: {e}") from e
    return settings
