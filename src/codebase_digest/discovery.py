"""Expand include patterns over the scanned tree, then filter and order the matches."""

from __future__ import annotations

import glob
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from codebase_digest.config import SortDirection, SortKey
from codebase_digest.file_manipulation import file_extension, normalize_globs, relpath
from codebase_digest.ignore import compile_patterns
from codebase_digest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from codebase_digest.settings import Settings


def walk_files(root: Path, settings: Settings) -> list[str]:
    """List every regular file under `root` as a slash-separated relative path.

    Dotfiles and dot-directories are skipped unless `include_hidden`.
    Symlinked directories are entered only when `follow_symlinks`, and a
    directory whose real path is already on the current branch is never
    entered again, so link loops end.

    Args:
        root (Path): the scanned directory
        settings (Settings): the run configuration

    Returns:
        list[str]: relative paths, directory by directory in name order
    """

    def on_error(err: OSError) -> None:
        logger.warning("walk_failed", path=str(err.filename), error=str(err))

    branches: dict[str, frozenset[str]] = {str(root): frozenset({os.path.realpath(root)})}
    out: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=settings.follow_symlinks):
        branch = branches.pop(dirpath, frozenset())
        keep: list[str] = []
        for name in sorted(dirnames):
            if not settings.include_hidden and name.startswith("."):
                continue
            sub = os.path.join(dirpath, name)
            if os.path.islink(sub) and not settings.follow_symlinks:
                continue
            real = os.path.realpath(sub)
            if real in branch:
                logger.warning("symlink_loop_skipped", path=relpath(Path(sub), root))
                continue
            branches[sub] = branch | {real}
            keep.append(name)
        dirnames[:] = keep

        for name in sorted(filenames):
            if not settings.include_hidden and name.startswith("."):
                continue
            path = Path(dirpath) / name
            if path.is_file():
                out.append(relpath(path, root))
    return out


def expand_pattern(files: Sequence[str], pattern: str) -> list[str]:
    """Match one include glob against the walked files.

    Matching follows `glob` semantics anchored at the scanned root: `*` stays
    within one path segment and `**` matches any number of directories.

    Args:
        files (Sequence[str]): relative paths from `walk_files`
        pattern (str): the glob pattern

    Raises:
        re.error: if the pattern cannot be compiled.

    Returns:
        list[str]: the matching relative paths, in walk order
    """
    regex = re.compile(glob.translate(pattern.lstrip("/"), recursive=True, include_hidden=True))
    return [rel for rel in files if regex.match(rel)]


def glob_files(root: Path, settings: Settings) -> list[str]:
    """Expand all include patterns, minus exclude patterns, without duplicates.

    A pattern that fails to expand is logged and contributes no matches.

    Args:
        root (Path): the scanned directory
        settings (Settings): the run configuration

    Returns:
        list[str]: unique relative paths, in first-seen order
    """
    excludes = normalize_globs(settings.exclude_patterns)
    try:
        exclude_spec = compile_patterns(excludes) if excludes else None
    except ValueError as e:
        logger.error("exclude_patterns_invalid", error=str(e))
        exclude_spec = None

    files = walk_files(root, settings)
    logger.debug("files_walked", count=len(files))

    seen: dict[str, None] = {}
    for pattern in normalize_globs(settings.include_patterns):
        try:
            matches = expand_pattern(files, pattern)
        except (ValueError, re.error) as e:
            logger.error("glob_pattern_failed", pattern=pattern, error=str(e))
            continue
        if exclude_spec is not None:
            matches = [m for m in matches if not exclude_spec.match_file(m)]
        logger.debug("glob_pattern_matched", pattern=pattern, matches=len(matches))
        seen.update(dict.fromkeys(matches))
    return list(seen)


def path_depth(rel: str) -> int:
    return len(rel.split("/"))


def _stat_or_zero(root: Path, rel: str, attr: str) -> float:
    try:
        return getattr((root / rel).stat(), attr)
    except OSError as e:
        logger.warning("sort_stat_failed", path=rel, error=str(e))
        return 0


def sort_files(files: Sequence[str], root: Path, settings: Settings) -> list[str]:
    """Sort files by the configured key and direction, then apply priority lists.

    Sorting is stable: files with equal keys keep their relative order.

    Args:
        files (Sequence[str]): relative paths to order
        root (Path): the scanned directory, used to stat files
        settings (Settings): the run configuration

    Returns:
        list[str]: the ordered relative paths
    """
    try:
        sort_by = SortKey(settings.sort_by.lower())
    except ValueError:
        logger.warning("unknown_sort_key", sort_by=settings.sort_by, fallback="path")
        sort_by = SortKey.PATH
    try:
        direction = SortDirection(settings.sort_direction.lower())
    except ValueError:
        logger.warning("unknown_sort_direction", sort_direction=settings.sort_direction, fallback="asc")
        direction = SortDirection.ASC

    keys: dict[SortKey, Callable[[str], float | str]] = {
        SortKey.PATH: lambda rel: rel,
        SortKey.SIZE: lambda rel: _stat_or_zero(root, rel, "st_size"),
        SortKey.EXTENSION: lambda rel: file_extension(rel),
        SortKey.MODIFIED: lambda rel: _stat_or_zero(root, rel, "st_mtime"),
    }
    logger.debug("sorting_files", sort_by=sort_by.value, direction=direction.value)
    ordered = sorted(files, key=keys[sort_by], reverse=direction is SortDirection.DESC)

    if settings.file_order:
        ordered = prioritize_files(ordered, settings.file_order)
    if settings.directory_order:
        ordered = prioritize_directories(ordered, settings.directory_order)
    return ordered


def prioritize_files(files: Sequence[str], file_order: Sequence[str]) -> list[str]:
    """Move files listed in `file_order` to the front, in listed order.

    Args:
        files (Sequence[str]): relative paths in their current order
        file_order (Sequence[str]): relative paths to put first

    Returns:
        list[str]: listed files first, then the others in their prior order
    """
    rank: dict[str, int] = {}
    for idx, name in enumerate(normalize_globs(file_order)):
        rank.setdefault(name, idx)
    listed = sorted((f for f in files if f in rank), key=rank.__getitem__)
    rest = [f for f in files if f not in rank]
    return [*listed, *rest]


def prioritize_directories(files: Sequence[str], directory_order: Sequence[str]) -> list[str]:
    """Stable re-partition of files by the first listed directory they fall under.

    Files under the Nth listed directory come before files under the N+1th;
    files under no listed directory come last.

    Args:
        files (Sequence[str]): relative paths in their current order
        directory_order (Sequence[str]): directory prefixes, highest priority first

    Returns:
        list[str]: the re-partitioned paths
    """
    prefixes = [d.strip("/") + "/" for d in normalize_globs(directory_order)]

    def priority(rel: str) -> int:
        for idx, prefix in enumerate(prefixes):
            if rel.startswith(prefix):
                return idx
        return len(prefixes)

    return sorted(files, key=priority)


def discover_files(root: Path, is_ignored: Callable[[str], bool], settings: Settings) -> list[str]:
    """Find, filter and order the files to process.

    Args:
        root (Path): the scanned directory
        is_ignored (Callable[[str], bool]): the ignore predicate
        settings (Settings): the run configuration

    Returns:
        list[str]: slash-separated relative paths in processing order
    """
    files = glob_files(root, settings)
    logger.debug("files_globbed", count=len(files))

    kept: list[str] = []
    for rel in files:
        if is_ignored(rel):
            logger.debug("file_ignored", path=rel)
            continue
        if settings.max_depth is not None and path_depth(rel) > settings.max_depth:
            logger.debug("file_too_deep", path=rel, max_depth=settings.max_depth)
            continue
        kept.append(rel)
    logger.debug("files_filtered", count=len(kept))
    return sort_files(kept, root, settings)
