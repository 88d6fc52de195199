"""Render records in the seven output formats, then compress or cap the result."""

from __future__ import annotations

import csv
import gzip
import html
import io
import json
from collections import Counter
from datetime import UTC
from typing import TYPE_CHECKING, Any
from xml.sax.saxutils import escape

from codebase_digest.config import OutputFormat
from codebase_digest.exceptions import UnknownOutputFormatError
from codebase_digest.file_manipulation import build_tree_lines, format_file_size
from codebase_digest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from codebase_digest.config import FileRecord
    from codebase_digest.settings import Settings

    Formatter = Callable[[Sequence[FileRecord], Settings], str]

RULE = "=" * 48
OUTPUT_TRUNCATED_MARKER = "\n\n[Output truncated due to size limit]"

_HTML_HEAD = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Code Digest</title>
  <style>
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 1200px; margin: 0 auto; padding: 20px; }
    h1 { color: #2c3e50; }
    h2 { color: #3498db; margin-top: 30px; }
    pre { background-color: #f8f8f8; padding: 15px; border-radius: 5px; overflow-x: auto; }
    code { font-family: 'Courier New', Courier, monospace; }
    .metadata { color: #666; font-size: 0.9em; margin-bottom: 10px; }
    .line-numbers { color: #999; user-select: none; }
    .error { color: #e74c3c; }
    details { margin-bottom: 10px; }
    summary { cursor: pointer; }
  </style>
</head>
<body>
  <h1>Code Digest</h1>
"""


def iso_timestamp(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with milliseconds and a "Z" suffix."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def escape_html(text: str) -> str:
    return html.escape(text or "", quote=True)


def escape_xml(text: str) -> str:
    return escape(text or "", {'"': "&quot;", "'": "&apos;"})


def cdata(text: str) -> str:
    """Wrap text in a CDATA section, splitting any embedded "]]>" terminator."""
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def number_lines(content: str, wrap: Callable[[str], str] | None = None) -> str:
    """Prefix every line with its 1-based number, right-aligned on 6 columns."""
    lines = content.split("\n")
    if wrap is None:
        return "\n".join(f"{i:>6}: {line}" for i, line in enumerate(lines, start=1))
    return "\n".join(wrap(f"{i:>6}: ") + escape_html(line) for i, line in enumerate(lines, start=1))


def wants_file_metadata(settings: Settings) -> bool:
    return (
        settings.include_byte_size
        or settings.include_last_modified
        or settings.include_file_hash
        or settings.include_mime_type
    )


def metadata_lines(rec: FileRecord, settings: Settings) -> list[str]:
    """Collect the optional per-file metadata entries as "Label: value" strings.

    Args:
        rec (FileRecord): the file record
        settings (Settings): the run configuration, selecting the entries

    Returns:
        list[str]: the entries, in size, modified, hash, MIME order
    """
    out: list[str] = []
    if settings.include_byte_size:
        out.append(f"Size: {format_file_size(rec.size)}")
    if settings.include_last_modified and rec.modified:
        out.append(f"Modified: {iso_timestamp(rec.modified)}")
    if settings.include_file_hash and rec.hash:
        out.append(f"{settings.hash_algorithm.upper()}: {rec.hash}")
    if settings.include_mime_type and rec.mime_type:
        out.append(f"MIME Type: {rec.mime_type}")
    return out


def digest_statistics(recs: Sequence[FileRecord]) -> dict[str, Any]:
    """Summarize records: counts, total size, extension and language frequencies.

    Frequencies are ordered by decreasing count, ties in first-seen order.

    Args:
        recs (Sequence[FileRecord]): the processed records

    Returns:
        dict[str, Any]: the summary, keyed as in the JSON output
    """
    file_types = Counter(rec.extension or "unknown" for rec in recs)
    languages = Counter(rec.language for rec in recs if rec.language)
    return {
        "totalFiles": len(recs),
        "totalSize": sum(rec.size for rec in recs),
        "fileTypes": dict(file_types.most_common()),
        "languages": dict(languages.most_common()),
    }


def format_text(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render records as plain text.

    Each file gets an optional header block framed by "=" rules and its
    content followed by a blank line. Empty input renders as "".

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration

    Returns:
        str: the text digest
    """
    logger.debug("formatting_output", format="text")
    out = io.StringIO()
    for idx, rec in enumerate(recs):
        if settings.include_file_separator and idx > 0:
            out.write(f"{RULE}\n\n")
        if settings.include_file_header:
            out.write(f"File: {rec.path}\n")
            for line in metadata_lines(rec, settings):
                out.write(f"{line}\n")
            out.write(f"{RULE}\n")
        if rec.error:
            out.write(f"[Error: {rec.error}]\n\n")
            continue
        body = number_lines(rec.content) if settings.include_line_numbers else rec.content
        out.write(body)
        if body.endswith("\n\n"):
            continue
        out.write("\n" if body.endswith("\n") else "\n\n")
    return out.getvalue()


def format_json(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render records as a JSON array, or an object with statistics.

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration

    Returns:
        str: the JSON document, indented by 2 spaces
    """
    logger.debug("formatting_output", format="json")
    files: list[dict[str, Any]] = []
    for rec in recs:
        obj: dict[str, Any] = {"path": rec.path}
        if not settings.exclude_content:
            obj["content"] = rec.content
        if settings.include_metadata:
            obj["size"] = rec.size
            if rec.modified:
                obj["modified"] = iso_timestamp(rec.modified)
            if rec.extension:
                obj["extension"] = rec.extension
            if rec.language:
                obj["language"] = rec.language
        files.append(obj)

    if settings.code_statistics:
        return json.dumps({"metadata": digest_statistics(recs), "files": files}, indent=2, ensure_ascii=False)
    return json.dumps(files, indent=2, ensure_ascii=False)


def format_markdown(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render records as a markdown document with fenced code blocks.

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration

    Returns:
        str: the markdown digest
    """
    logger.debug("formatting_output", format="markdown")
    out = io.StringIO()
    out.write("# Code Digest\n\n")
    if not recs:
        out.write("No files processed.\n")
        return out.getvalue()

    if settings.code_statistics:
        stats = digest_statistics(recs)
        out.write("## Summary\n\n")
        out.write(f"- Total files: {stats['totalFiles']}\n")
        out.write(f"- Total size: {format_file_size(stats['totalSize'])}\n")
        out.write("- File types:\n")
        for ext, count in stats["fileTypes"].items():
            out.write(f"  - {ext}: {count} files\n")
        out.write("\n")

    for rec in recs:
        out.write(f"## {rec.path}\n\n")
        if wants_file_metadata(settings):
            out.write("<details>\n<summary>File metadata</summary>\n\n")
            for line in metadata_lines(rec, settings):
                out.write(f"- {line}\n")
            out.write("\n</details>\n\n")
        if rec.error:
            out.write(f"**Error:** {rec.error}\n\n")
            continue
        body = number_lines(rec.content) if settings.include_line_numbers else rec.content
        out.write(f"```{rec.language}\n{body}\n```\n\n")
    return out.getvalue()


def format_tree_size(size: int) -> str:
    """Compact size used in tree annotations, e.g. "512B" or "1.5KB"."""
    if size < 1024:  # noqa: PLR2004
        return f"{size}B"
    units = ["KB", "MB", "GB", "TB"]
    value = size / 1024
    idx = 0
    while value >= 1024 and idx < len(units) - 1:  # noqa: PLR2004
        value /= 1024
        idx += 1
    return f"{value:.1f}{units[idx]}"


def format_tree(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render the paths of the records as a box-drawing tree.

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration, for size and date annotations

    Returns:
        str: the tree, one entry per line
    """
    logger.debug("formatting_output", format="tree")
    if not recs:
        return "Empty directory\n"

    entries: list[tuple[str, str]] = []
    for rec in recs:
        note = ""
        if settings.include_byte_size:
            note += f" ({format_tree_size(rec.size)})"
        if settings.include_last_modified and rec.modified:
            note += f" [{iso_timestamp(rec.modified)}]"
        entries.append((rec.path, note))
    return "\n".join(build_tree_lines(entries)) + "\n"


def format_csv(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render records as CSV with a header row.

    Fields are quoted only when they contain a comma, a quote or a line break.

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration, selecting the columns

    Returns:
        str: the CSV document, "" for no records
    """
    logger.debug("formatting_output", format="csv")
    if not recs:
        return ""

    columns: list[tuple[str, Callable[[FileRecord], Any]]] = [("path", lambda r: r.path)]
    if settings.include_byte_size:
        columns.append(("size", lambda r: r.size))
    if settings.include_last_modified:
        columns.append(("modified", lambda r: iso_timestamp(r.modified) if r.modified else ""))
    if settings.include_file_hash:
        columns.append(("hash", lambda r: r.hash or ""))
    if settings.include_mime_type:
        columns.append(("mimeType", lambda r: r.mime_type or ""))
    columns.append(("content", lambda r: r.content))

    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow([name for name, _ in columns])
    for rec in recs:
        writer.writerow([getter(rec) for _, getter in columns])
    return out.getvalue()


def format_html(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render records as a standalone HTML page.

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration

    Returns:
        str: the HTML document
    """
    logger.debug("formatting_output", format="html")
    out = io.StringIO()
    out.write(_HTML_HEAD)
    if not recs:
        out.write("  <p>No files processed.</p>\n")

    if recs and settings.code_statistics:
        stats = digest_statistics(recs)
        out.write("  <h2>Summary</h2>\n  <ul>\n")
        out.write(f"    <li>Total files: {stats['totalFiles']}</li>\n")
        out.write(f"    <li>Total size: {format_file_size(stats['totalSize'])}</li>\n")
        out.write("    <li>File types:\n      <ul>\n")
        for ext, count in stats["fileTypes"].items():
            out.write(f"        <li>{escape_html(ext)}: {count} files</li>\n")
        out.write("      </ul>\n    </li>\n  </ul>\n")

    for rec in recs:
        out.write(f"  <h2>{escape_html(rec.path)}</h2>\n")
        if wants_file_metadata(settings):
            out.write('  <details>\n    <summary>File metadata</summary>\n    <div class="metadata">\n')
            for line in metadata_lines(rec, settings):
                out.write(f"      <div>{escape_html(line)}</div>\n")
            out.write("    </div>\n  </details>\n")
        if rec.error:
            out.write(f'  <div class="error">Error: {escape_html(rec.error)}</div>\n')
            continue
        if settings.include_line_numbers:
            body = number_lines(rec.content, wrap=lambda n: f'<span class="line-numbers">{n}</span>')
        else:
            body = escape_html(rec.content)
        out.write(f'  <pre class="file-content"><code>{body}</code></pre>\n')

    out.write("</body>\n</html>")
    return out.getvalue()


def format_xml(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render records as an XML document rooted at `<codeDigest>`.

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration

    Returns:
        str: the XML document
    """
    logger.debug("formatting_output", format="xml")
    out = io.StringIO()
    out.write('<?xml version="1.0" encoding="UTF-8"?>\n<codeDigest>\n')

    if settings.code_statistics:
        stats = digest_statistics(recs)
        out.write("  <metadata>\n")
        out.write(f"    <totalFiles>{stats['totalFiles']}</totalFiles>\n")
        out.write(f"    <totalSize>{stats['totalSize']}</totalSize>\n")
        out.write("    <fileTypes>\n")
        for ext, count in stats["fileTypes"].items():
            out.write(f'      <fileType extension="{escape_xml(ext)}" count="{count}" />\n')
        out.write("    </fileTypes>\n  </metadata>\n")

    for rec in recs:
        out.write(f'  <file path="{escape_xml(rec.path)}"')
        if settings.include_byte_size:
            out.write(f' size="{rec.size}"')
        if settings.include_last_modified and rec.modified:
            out.write(f' modified="{iso_timestamp(rec.modified)}"')
        if settings.include_file_hash and rec.hash:
            out.write(f' hash="{rec.hash}"')
        if settings.include_mime_type and rec.mime_type:
            out.write(f' mimeType="{escape_xml(rec.mime_type)}"')
        if rec.error:
            out.write(f">\n    <error>{escape_xml(rec.error)}</error>\n  </file>\n")
        else:
            out.write(f">\n    <content>{cdata(rec.content)}</content>\n  </file>\n")

    out.write("</codeDigest>")
    return out.getvalue()


FORMATTERS: dict[OutputFormat, Formatter] = {
    OutputFormat.TEXT: format_text,
    OutputFormat.JSON: format_json,
    OutputFormat.MARKDOWN: format_markdown,
    OutputFormat.TREE: format_tree,
    OutputFormat.CSV: format_csv,
    OutputFormat.HTML: format_html,
    OutputFormat.XML: format_xml,
}


def resolve_output_format(value: str) -> OutputFormat:
    """Map a format name to the renderer enum, ignoring case.

    Args:
        value (str): the requested format name

    Raises:
        UnknownOutputFormatError: if the name is not a known format.

    Returns:
        OutputFormat: the matching format
    """
    try:
        return OutputFormat((value or "").strip().lower())
    except ValueError as e:
        valid = ", ".join(f.value for f in OutputFormat)
        raise UnknownOutputFormatError(
            value=value,
            message=f"Invalid output format: {value}. Valid formats are: {valid}",
        ) from e


def format_output(recs: Sequence[FileRecord], settings: Settings) -> str:
    """Render records with the configured output format.

    An unknown format logs a warning and renders as text.

    Args:
        recs (Sequence[FileRecord]): the records to render
        settings (Settings): the run configuration

    Returns:
        str: the rendered digest
    """
    try:
        fmt = resolve_output_format(settings.output_format)
    except UnknownOutputFormatError as e:
        logger.warning("unknown_output_format", output_format=e.value, fallback="text")
        fmt = OutputFormat.TEXT
    return FORMATTERS[fmt](recs, settings)


def compress_output(text: str, encoding: str = "utf-8") -> bytes:
    """Gzip the rendered digest."""
    return gzip.compress(text.encode(encoding))


def limit_output_size(text: str, max_size: int, encoding: str = "utf-8") -> str:
    """Truncate the digest to `max_size` encoded bytes and append a marker; 0 means no limit.

    A character split by the cut is dropped whole.

    Args:
        text (str): the rendered digest
        max_size (int): the size cap in bytes, 0 for none
        encoding (str): the codec the digest will be written with

    Returns:
        str: the digest, truncated with a marker when over the cap
    """
    if max_size <= 0:
        return text
    data = text.encode(encoding)
    if len(data) <= max_size:
        return text
    logger.warning("output_truncated", size=len(data), max_output_size=max_size)
    return data[:max_size].decode(encoding, errors="ignore") + OUTPUT_TRUNCATED_MARKER
