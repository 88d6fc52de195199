"""Merge built-in, ignore-file and explicit patterns into one predicate."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pathspec

from codebase_digest.file_manipulation import normalize_globs
from codebase_digest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from codebase_digest.settings import Settings

    IgnorePredicate = Callable[[str], bool]

IGNORE_FILES: tuple[tuple[str, str], ...] = (
    (".gitignore", "respect_gitignore"),
    (".npmignore", "respect_npmignore"),
    (".dockerignore", "respect_dockerignore"),
)


def compile_patterns(lines: Sequence[str]) -> pathspec.GitIgnoreSpec:
    """Compile gitignore-style lines into a path spec.

    Args:
        lines (Sequence[str]): pattern lines, comments and blanks allowed

    Returns:
        pathspec.GitIgnoreSpec: the compiled spec
    """
    return pathspec.GitIgnoreSpec.from_lines(lines)


def read_ignore_file(root: Path, name: str) -> list[str]:
    """Read the patterns of an ignore file at the root of the scanned directory.

    Missing files yield no patterns. Unreadable or malformed files are logged
    as a warning and also yield no patterns.

    Args:
        root (Path): the scanned directory
        name (str): the ignore file name, e.g. ".gitignore"

    Returns:
        list[str]: the pattern lines of the file
    """
    path = root / name
    if not path.is_file():
        return []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
        compile_patterns(lines)
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.warning("ignore_file_skipped", path=str(path), error=str(e))
        return []
    logger.debug("ignore_file_loaded", path=str(path), patterns=len(lines))
    return lines


def collect_ignore_lines(root: Path, settings: Settings) -> list[str]:
    """Collect ignore patterns in merge order.

    Built-in list, then `.gitignore`, `.npmignore`, `.dockerignore` (each
    only when respected), then the explicit exclude patterns.

    Args:
        root (Path): the scanned directory
        settings (Settings): the run configuration

    Returns:
        list[str]: all pattern lines, in precedence order
    """
    lines: list[str] = list(settings.ignore_patterns)
    for name, flag in IGNORE_FILES:
        if getattr(settings, flag):
            lines.extend(read_ignore_file(root, name))
    lines.extend(normalize_globs(settings.exclude_patterns))
    return lines


def build_ignore_predicate(root: Path, settings: Settings) -> IgnorePredicate:
    """Build the "is this relative path ignored?" predicate for a run.

    Later patterns only re-include a path through gitignore negation (`!pattern`).

    Args:
        root (Path): the scanned directory
        settings (Settings): the run configuration

    Returns:
        IgnorePredicate: a function of a slash-separated relative path
    """
    lines = collect_ignore_lines(root, settings)
    try:
        spec = compile_patterns(lines)
    except ValueError as e:
        logger.warning("ignore_patterns_invalid", error=str(e))
        spec = _compile_valid_lines(lines)
    logger.debug("ignore_predicate_built", patterns=len(spec.patterns))

    def is_ignored(rel: str) -> bool:
        return spec.match_file(rel.replace("\\", "/"))

    return is_ignored


def _compile_valid_lines(lines: Sequence[str]) -> pathspec.GitIgnoreSpec:
    valid: list[str] = []
    for line in lines:
        try:
            compile_patterns([line])
        except ValueError as e:
            logger.warning("ignore_pattern_skipped", pattern=line, error=str(e))
            continue
        valid.append(line)
    return compile_patterns(valid)
