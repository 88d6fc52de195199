"""Read one accepted file into a FileRecord and apply the content transformations."""

from __future__ import annotations

import base64
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from codebase_digest.classifier import should_process_file
from codebase_digest.config import BinaryAction, FileRecord
from codebase_digest.exceptions import FileProcessingError
from codebase_digest.file_manipulation import (
    create_hexdump,
    file_extension,
    hash_file,
    is_binary_file,
    mime_type_for,
    read_text,
)
from codebase_digest.logging import logger

if TYPE_CHECKING:
    from os import stat_result
    from pathlib import Path

    from codebase_digest.settings import Settings

BINARY_PLACEHOLDER = "[Binary file]"
TRUNCATED_MARKER = "... [truncated]"
TRUNCATED_MIDDLE_MARKER = "... [truncated middle section]"

_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_HASH_COMMENT = re.compile(r"^\s*#.*$", re.MULTILINE)
_HTML_COMMENT = re.compile(r"<!--[\s\S]*?-->")
_BLANK_RUN = re.compile(r"\n{3,}")


def truncate_lines(content: str, limit: int) -> str:
    """Cut every line longer than `limit` characters and mark it with "..."."""
    return "\n".join(line[:limit] + "..." if len(line) > limit else line for line in content.split("\n"))


def take_preview(content: str, lines_count: int) -> str:
    """Keep the first `lines_count` lines, adding a marker line when more existed."""
    lines = content.split("\n")
    out = "\n".join(lines[:lines_count])
    if len(lines) > lines_count:
        out += "\n" + TRUNCATED_MARKER
    return out


def append_tail(content: str, preview: int, tail: int) -> str:
    """Append the last `tail` lines after a marker when the content exceeds preview + tail lines.

    The line count is taken from `content` as it stands, i.e. after any preview window.
    """
    lines = content.split("\n")
    if len(lines) <= preview + tail:
        return content
    return f"{content}\n{TRUNCATED_MIDDLE_MARKER}\n" + "\n".join(lines[-tail:])


def strip_comments(content: str) -> str:
    """Remove comments with language-agnostic regular expressions.

    All four styles (`//`, `/* */`, `#` lines, `<!-- -->`) are removed from
    every file whatever its language. This is not a tokenizer: comment markers
    inside string literals (URLs, `#` in strings) are stripped too.

    Args:
        content (str): the text to strip

    Returns:
        str: the text with comment-like spans removed
    """
    content = _LINE_COMMENT.sub("", content)
    content = _BLOCK_COMMENT.sub("", content)
    content = _HASH_COMMENT.sub("", content)
    return _HTML_COMMENT.sub("", content)


def strip_whitespace(content: str) -> str:
    """Trim each line and collapse runs of blank lines to a single blank line."""
    trimmed = "\n".join(line.strip() for line in content.split("\n"))
    return _BLANK_RUN.sub("\n\n", trimmed)


def apply_content_transformations(content: str, settings: Settings) -> str:
    """Apply the enabled transformations in their fixed order.

    1. line truncation, 2. preview window, 3. tail window,
    4. comment stripping, 5. whitespace stripping.

    Args:
        content (str): the decoded file content
        settings (Settings): the run configuration

    Returns:
        str: the transformed content
    """
    if settings.truncate_line_length > 0:
        content = truncate_lines(content, settings.truncate_line_length)
    if settings.file_content_preview > 0:
        content = take_preview(content, settings.file_content_preview)
    if settings.file_content_tail > 0:
        content = append_tail(content, settings.file_content_preview, settings.file_content_tail)
    if settings.comment_stripping:
        content = strip_comments(content)
    if settings.strip_whitespace:
        content = strip_whitespace(content)
    return content


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


def _created_time(st: stat_result) -> datetime:
    return _timestamp(getattr(st, "st_birthtime", st.st_ctime))


def error_record(rel: str, message: str, placeholder: str | None = None) -> FileRecord:
    """Build the record of a file that could not be read.

    Args:
        rel (str): path relative to the scanned root
        message (str): the error message
        placeholder (str | None): content to show instead of the file

    Returns:
        FileRecord: a record with `error` set and a size of 0
    """
    return FileRecord(
        path=rel,
        size=0,
        extension=file_extension(rel),
        error=message,
        content=placeholder or f"[Error reading file: {message}]",
    )


def _fail(rel: str, message: str, settings: Settings, err: Exception) -> None:
    logger.error("file_read_failed", path=rel, error=message)
    if not settings.continue_on_error:
        raise FileProcessingError(message=f"Error processing file {rel}: {message}", path=rel) from err


def binary_content(path: Path, rel: str, settings: Settings) -> tuple[str, str | None, str | None]:
    """Render a binary file according to `binary_files_action`.

    Args:
        path (Path): absolute path of the file
        rel (str): path relative to the scanned root
        settings (Settings): the run configuration

    Returns:
        tuple[str, str | None, str | None]: content, encoding tag and error message
    """
    try:
        action = BinaryAction(settings.binary_files_action.lower())
    except ValueError:
        logger.warning("unknown_binary_action", action=settings.binary_files_action, fallback="skip")
        action = BinaryAction.SKIP

    if action is BinaryAction.SKIP:
        logger.debug("binary_content_skipped", path=rel)
        return BINARY_PLACEHOLDER, None, None

    try:
        data = path.read_bytes()
    except OSError as e:
        _fail(rel, str(e), settings, e)
        if action is BinaryAction.INCLUDE:
            return f"[Error reading binary file: {e}]", None, str(e)
        return f"[Error creating hexdump: {e}]", None, str(e)

    if action is BinaryAction.INCLUDE:
        logger.debug("binary_content_base64", path=rel)
        return base64.b64encode(data).decode("ascii"), "base64", None
    logger.debug("binary_content_hexdump", path=rel)
    return create_hexdump(data), "hexdump", None


def text_content(path: Path, rel: str, settings: Settings) -> tuple[str, str | None]:
    """Read, decode and transform a text file.

    Args:
        path (Path): absolute path of the file
        rel (str): path relative to the scanned root
        settings (Settings): the run configuration

    Returns:
        tuple[str, str | None]: content and error message
    """
    try:
        text = read_text(path, settings.encoding, detect=settings.detect_encoding)
    except (OSError, UnicodeDecodeError) as e:
        _fail(rel, str(e), settings, e)
        return f"[Error reading file: {e}]", str(e)
    return apply_content_transformations(text, settings), None


def read_and_build_record(
    path: Path,
    rel: str,
    settings: Settings,
    *,
    is_binary: bool | None = None,
) -> FileRecord:
    """Read an accepted file and build its record.

    Args:
        path (Path): absolute path of the file
        rel (str): path relative to the scanned root
        settings (Settings): the run configuration
        is_binary (bool | None): classification already made by the classifier;
            detected here when None

    Returns:
        FileRecord: the populated record, with `error` set if the content could not be read
    """
    if is_binary is None:
        is_binary = settings.detect_binary and is_binary_file(
            path,
            settings.binary_file_extensions,
            settings.text_file_extensions,
        )

    st = path.stat()
    file_hash = hash_file(path, settings.hash_algorithm) if settings.include_file_hash else None
    mime_type = mime_type_for(path) if settings.include_mime_type else None

    encoding: str | None = None
    if is_binary:
        content, encoding, error = binary_content(path, rel, settings)
    else:
        content, error = text_content(path, rel, settings)

    return FileRecord(
        path=rel,
        size=0 if error else st.st_size,
        modified=_timestamp(st.st_mtime),
        created=_created_time(st),
        extension=file_extension(rel),
        is_binary=is_binary,
        hash=file_hash,
        mime_type=mime_type,
        content=content,
        encoding=encoding,
        error=error,
    )


def process_file(root: Path, rel: str, settings: Settings) -> FileRecord | None:
    """Classify, read and transform one discovered file.

    Args:
        root (Path): the scanned directory
        rel (str): path relative to root
        settings (Settings): the run configuration

    Raises:
        FileProcessingError: if the file fails and `continue_on_error` is false.

    Returns:
        FileRecord | None: the record, or None when the classifier rejected the file
    """
    path = root / rel
    decision = should_process_file(path, rel, settings)
    if not decision.proceed:
        logger.debug("file_skipped", path=rel, reason=decision.reason)
        return None
    try:
        record = read_and_build_record(path, rel, settings, is_binary=decision.is_binary)
    except FileProcessingError:
        raise
    except (OSError, ValueError) as e:
        logger.error("file_processing_failed", path=rel, error=str(e))
        if not settings.continue_on_error:
            raise FileProcessingError(message=f"Error processing file {rel}: {e}", path=rel) from e
        return error_record(rel, str(e))
    logger.debug("file_processed", path=rel)
    return record
