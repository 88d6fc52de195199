"""Run the digest pipeline: resolve ignores, discover, read, group and render."""

from __future__ import annotations

import asyncio
import math
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from codebase_digest.config import GroupingMode, guess_language
from codebase_digest.content import process_file
from codebase_digest.discovery import discover_files
from codebase_digest.exceptions import ConfigurationError, DigestTimeoutError, InvalidDirectoryError
from codebase_digest.ignore import build_ignore_predicate
from codebase_digest.logging import logger
from codebase_digest.output_construction import compress_output, format_output

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from codebase_digest.config import FileRecord
    from codebase_digest.settings import Settings

    Pipeline = Callable[[Path, Settings], Awaitable[str | bytes]]


async def _process_chunk(root: Path, chunk: Sequence[str], settings: Settings) -> list[FileRecord]:
    out: list[FileRecord] = []
    for rel in chunk:
        rec = await asyncio.to_thread(process_file, root, rel, settings)
        if rec is not None:
            out.append(rec)
    return out


async def process_all(root: Path, paths: Sequence[str], settings: Settings) -> list[FileRecord]:
    """Process every discovered file, sequentially or in concurrent chunks.

    In parallel mode the paths are split into `max_parallel_processes`
    contiguous chunks; chunks run concurrently, files within a chunk run in
    order, and chunk results are concatenated in chunk order.

    Args:
        root (Path): the scanned directory
        paths (Sequence[str]): relative paths in discovery order
        settings (Settings): the run configuration

    Raises:
        FileProcessingError: if a file fails and `continue_on_error` is false.

    Returns:
        list[FileRecord]: the records of all accepted files
    """
    if not settings.parallel or len(paths) < 2:  # noqa: PLR2004
        logger.debug("processing_sequential", files=len(paths))
        return await _process_chunk(root, paths, settings)

    size = math.ceil(len(paths) / settings.max_parallel_processes)
    chunks = [paths[i : i + size] for i in range(0, len(paths), size)]
    logger.debug("processing_parallel", files=len(paths), chunks=len(chunks), chunk_size=size)

    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(_process_chunk(root, chunk, settings)) for chunk in chunks]
    except ExceptionGroup as eg:
        raise eg.exceptions[0] from None

    records: list[FileRecord] = []
    for task in tasks:
        records.extend(task.result())
    return records


def grouping_key(rec: FileRecord, mode: GroupingMode, depth: int) -> str:
    """Compute the group a record belongs to.

    Args:
        rec (FileRecord): the record
        mode (GroupingMode): the grouping mode, not NONE
        depth (int): number of parent directory segments kept in DIRECTORY mode

    Returns:
        str: the group key
    """
    if mode is GroupingMode.EXTENSION:
        return rec.extension or "no-extension"
    if mode is GroupingMode.DIRECTORY:
        parent = PurePosixPath(rec.path).parent
        if not parent.parts:
            return "."
        return "/".join(parent.parts[:depth])
    return guess_language(rec.extension) or rec.extension or "unknown"


def group_records(recs: list[FileRecord], settings: Settings) -> None:
    """Cluster records by the configured grouping mode, in place.

    The sort is stable, so records keep their order within a group.

    Args:
        recs (list[FileRecord]): the records to reorder
        settings (Settings): the run configuration
    """
    try:
        mode = GroupingMode(settings.file_grouping.lower())
    except ValueError:
        logger.warning("unknown_file_grouping", file_grouping=settings.file_grouping)
        return
    if mode is GroupingMode.NONE:
        return
    logger.debug("grouping_records", mode=mode.value, depth=settings.file_grouping_depth)
    recs.sort(key=lambda rec: grouping_key(rec, mode, settings.file_grouping_depth))


def validate_directory(root: Path) -> Path:
    """Check that `root` exists and is a directory.

    Raises:
        InvalidDirectoryError: otherwise.
    """
    if not root.exists():
        raise InvalidDirectoryError(message=f"Directory not found: {root}", folder=root)
    if not root.is_dir():
        raise InvalidDirectoryError(message=f"Path is not a directory: {root}", folder=root)
    return root


async def _run_pipeline(root: Path, settings: Settings) -> str | bytes:
    is_ignored = build_ignore_predicate(root, settings)
    paths = await asyncio.to_thread(discover_files, root, is_ignored, settings)
    logger.info("files_discovered", root=str(root), count=len(paths))

    records = await process_all(root, paths, settings)
    logger.info("files_processed", count=len(records))

    group_records(records, settings)
    output = format_output(records, settings)
    if settings.compress:
        return compress_output(output)
    return output


async def aprocess_directory(root: str | Path, settings: Settings) -> str | bytes:
    """Digest a directory under the configured timeout.

    Args:
        root (str | Path): the directory to digest
        settings (Settings): the run configuration

    Raises:
        InvalidDirectoryError: if `root` is not an existing directory.
        DigestTimeoutError: if the pipeline exceeds `settings.timeout` milliseconds.
        FileProcessingError: if a file fails and `continue_on_error` is false.

    Returns:
        str | bytes: the rendered digest, gzip bytes when `compress`
    """
    root = validate_directory(Path(root))
    try:
        return await asyncio.wait_for(_run_pipeline(root, settings), timeout=settings.timeout / 1000)
    except TimeoutError as e:
        raise DigestTimeoutError(
            message=f"Operation timed out after {settings.timeout}ms",
            timeout_ms=settings.timeout,
        ) from e


def process_directory(root: str | Path, settings: Settings) -> str | bytes:
    """Blocking wrapper around `aprocess_directory`."""
    return asyncio.run(aprocess_directory(root, settings))


async def process_with_retry(
    root: str | Path,
    settings: Settings,
    pipeline: Pipeline = aprocess_directory,
) -> str | bytes:
    """Run the pipeline, retrying failed attempts after a fixed delay.

    Configuration errors are raised at once. Any other failure is retried up
    to `retry_count` times, waiting `retry_delay` milliseconds in between;
    the last error is raised when attempts run out.

    Args:
        root (str | Path): the directory to digest
        settings (Settings): the run configuration
        pipeline (Pipeline): the coroutine function to run

    Returns:
        str | bytes: the result of the first successful attempt
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await pipeline(Path(root), settings)
        except ConfigurationError:
            raise
        except Exception as e:
            if attempt > settings.retry_count:
                logger.error("retries_exhausted", attempts=attempt, error=str(e))
                raise
            logger.warning(
                "attempt_failed",
                attempt=attempt,
                retries_left=settings.retry_count - attempt + 1,
                retry_delay_ms=settings.retry_delay,
                error=str(e),
            )
            await asyncio.sleep(settings.retry_delay / 1000)
