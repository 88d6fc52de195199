"""Decide whether a discovered file is read: size bounds, empty files and binary policy."""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

from codebase_digest.exceptions import FileProcessingError
from codebase_digest.file_manipulation import is_binary_file
from codebase_digest.logging import logger

if TYPE_CHECKING:
    from pathlib import Path

    from codebase_digest.settings import Settings


class ProcessDecision(NamedTuple):
    """Outcome of classifying one file."""

    proceed: bool
    reason: str
    is_binary: bool = False


def should_process_file(path: Path, rel: str, settings: Settings) -> ProcessDecision:
    """Decide whether a discovered file goes on to be read.

    Checks, in order: empty-file policy, size bounds (inclusive), binary
    detection (extension lists first, then content sniffing) and the
    skip-binary policy.

    Args:
        path (Path): absolute path of the file
        rel (str): path relative to the scanned root
        settings (Settings): the run configuration

    Raises:
        FileProcessingError: if the file cannot be inspected and
            `continue_on_error` is false.

    Returns:
        ProcessDecision: whether to proceed, why not, and the binary classification
    """
    try:
        size = path.stat().st_size

        if settings.skip_empty_files and size == 0:
            return ProcessDecision(proceed=False, reason="empty")

        if size < settings.min_file_size:
            return ProcessDecision(
                proceed=False,
                reason=f"File size ({size} bytes) is below minimum ({settings.min_file_size} bytes)",
            )
        if size > settings.max_file_size:
            return ProcessDecision(
                proceed=False,
                reason=f"File size ({size} bytes) exceeds maximum ({settings.max_file_size} bytes)",
            )

        binary = False
        if settings.detect_binary:
            binary = is_binary_file(path, settings.binary_file_extensions, settings.text_file_extensions)
            if binary and settings.skip_binary_files:
                return ProcessDecision(proceed=False, reason="binary", is_binary=True)
    except OSError as e:
        logger.error("classification_failed", path=rel, error=str(e))
        if not settings.continue_on_error:
            raise FileProcessingError(message=f"Error checking file {rel}: {e}", path=rel) from e
        return ProcessDecision(proceed=False, reason=f"Error checking file: {e}")

    return ProcessDecision(proceed=True, reason="All checks passed", is_binary=binary)
