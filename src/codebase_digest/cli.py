"""
codebase-digest: turn a directory into a single text digest for LLM consumption.

Usage
-----
Run `codebase-digest --help` for the full option list. Common examples:
    - Markdown digest of a project:
        codebase-digest ./my-project --format markdown --output digest.md

    - JSON paths only, skipping tests:
        codebase-digest . -f json --exclude "tests/**" --exclude-content

    - Settings from a config file, overridden by flags:
        codebase-digest . --config digest.json --no-parallel --verbose

A config file may also be named by the CODEBASE_DIGEST_CONFIG environment
variable, or by the same key in a `.env` file.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from codebase_digest import __version__
from codebase_digest.config import BinaryAction, GroupingMode, HashAlgorithm, OutputFormat, SortDirection, SortKey
from codebase_digest.file_manipulation import normalize_encoding
from codebase_digest.logging import level_for, logger, setup_logging
from codebase_digest.output_construction import limit_output_size, resolve_output_format
from codebase_digest.processor import process_with_retry, validate_directory
from codebase_digest.settings import Settings, build_settings, default_config_path

if TYPE_CHECKING:
    from collections.abc import Sequence


def split_patterns(value: str) -> list[str]:
    """Split a comma separated pattern list, dropping blanks."""
    return [p.strip() for p in value.split(",") if p.strip()]


def _choices(enum: type[Any]) -> str:
    return ", ".join(member.value for member in enum)


def build_parser() -> argparse.ArgumentParser:  # noqa: PLR0915
    p = argparse.ArgumentParser(
        prog="codebase-digest",
        description="Turn any codebase into a simple text digest for LLM consumption.",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("directory", type=str, help="Directory to process.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-c", "--config", type=str, help="Path to a JSON or YAML config file.")

    out = p.add_argument_group("output")
    out.add_argument("-o", "--output", dest="output_file", type=str, help="Output file (defaults to stdout).")
    out.add_argument(
        "-f",
        "--format",
        dest="output_format",
        type=str,
        help=f"Output format: {_choices(OutputFormat)}.",
    )
    out.add_argument("--output-encoding", type=str, help="Encoding of the output file.")
    out.add_argument("--max-output-size", type=int, help="Maximum output size, 0 for no limit.")
    out.add_argument("--compress", action="store_true", help="Compress output with gzip.")

    sel = p.add_argument_group("file selection")
    sel.add_argument(
        "--include",
        dest="include_patterns",
        type=split_patterns,
        help="Glob patterns to include (comma separated).",
    )
    sel.add_argument(
        "--exclude",
        dest="exclude_patterns",
        type=split_patterns,
        help="Glob patterns to exclude (comma separated).",
    )
    sel.add_argument(
        "--gitignore",
        "--respect-gitignore",
        dest="respect_gitignore",
        action=argparse.BooleanOptionalAction,
        help="Respect .gitignore.",
    )
    sel.add_argument(
        "--npmignore",
        dest="respect_npmignore",
        action=argparse.BooleanOptionalAction,
        help="Respect .npmignore.",
    )
    sel.add_argument(
        "--dockerignore",
        dest="respect_dockerignore",
        action=argparse.BooleanOptionalAction,
        help="Respect .dockerignore.",
    )
    sel.add_argument("--max-file-size", type=int, help="Maximum file size in bytes.")
    sel.add_argument("--min-file-size", type=int, help="Minimum file size in bytes.")
    sel.add_argument("--include-hidden", action=argparse.BooleanOptionalAction, help="Include dotfiles.")
    sel.add_argument("--follow-symlinks", action="store_true", help="Follow symbolic links.")
    sel.add_argument("--max-depth", type=int, help="Maximum directory depth.")
    sel.add_argument("--skip-empty-files", action="store_true", help="Skip empty files.")
    sel.add_argument("--sort-by", type=str, help=f"Sort files by: {_choices(SortKey)}.")
    sel.add_argument("--sort-direction", type=str, help=f"Sort direction: {_choices(SortDirection)}.")

    content = p.add_argument_group("content")
    content.add_argument(
        "--binary-action",
        dest="binary_files_action",
        type=str,
        help=f"Action for binary files: {_choices(BinaryAction)}.",
    )
    content.add_argument(
        "--skip-binary-files",
        action=argparse.BooleanOptionalAction,
        help="Skip binary files entirely.",
    )
    content.add_argument("--detect-binary", action=argparse.BooleanOptionalAction, help="Detect binary files.")
    content.add_argument("--encoding", type=str, help="File encoding (auto, utf8, latin1, ...).")
    content.add_argument("--detect-encoding", action=argparse.BooleanOptionalAction, help="Detect file encoding.")
    content.add_argument("--truncate-line-length", type=int, help="Truncate lines to this length.")
    content.add_argument("--file-content-preview", type=int, help="Number of leading lines to keep.")
    content.add_argument("--file-content-tail", type=int, help="Number of trailing lines to append.")
    content.add_argument("--comment-stripping", action="store_true", help="Strip comments from code.")
    content.add_argument("--strip-whitespace", action="store_true", help="Strip unnecessary whitespace.")

    fmt = p.add_argument_group("formatting")
    fmt.add_argument(
        "--file-header",
        dest="include_file_header",
        action=argparse.BooleanOptionalAction,
        help="Include file headers.",
    )
    fmt.add_argument(
        "--file-separator",
        dest="include_file_separator",
        action=argparse.BooleanOptionalAction,
        help="Include file separators.",
    )
    fmt.add_argument("--include-line-numbers", action="store_true", help="Include line numbers.")
    fmt.add_argument("--byte-size", dest="include_byte_size", action="store_true", help="Include file size.")
    fmt.add_argument("--mime-type", dest="include_mime_type", action="store_true", help="Include MIME type.")
    fmt.add_argument(
        "--last-modified",
        dest="include_last_modified",
        action="store_true",
        help="Include last modified date.",
    )
    fmt.add_argument("--file-hash", dest="include_file_hash", action="store_true", help="Include file hash.")
    fmt.add_argument("--hash-algorithm", type=str, help=f"Hash algorithm: {_choices(HashAlgorithm)}.")
    fmt.add_argument("--include-metadata", action="store_true", help="Include file metadata in JSON output.")
    fmt.add_argument("--exclude-content", action="store_true", help="Omit file content from JSON output.")
    fmt.add_argument("--code-statistics", action="store_true", help="Include a statistics summary.")
    fmt.add_argument("--file-grouping", type=str, help=f"Group files by: {_choices(GroupingMode)}.")
    fmt.add_argument("--file-grouping-depth", type=int, help="Depth for directory grouping.")

    run = p.add_argument_group("execution")
    run.add_argument("--parallel", action=argparse.BooleanOptionalAction, help="Process files concurrently.")
    run.add_argument(
        "--max-parallel",
        dest="max_parallel_processes",
        type=int,
        help="Maximum number of concurrent chunks.",
    )
    run.add_argument("--timeout", type=int, help="Timeout in milliseconds.")
    run.add_argument("--retry-count", type=int, help="Number of retries for failed runs.")
    run.add_argument("--retry-delay", type=int, help="Delay between retries in milliseconds.")
    run.add_argument(
        "--continue-on-error",
        action=argparse.BooleanOptionalAction,
        help="Record unreadable files instead of failing.",
    )
    run.add_argument("-v", "--verbose", action="store_true", help="Verbose output.")
    run.add_argument("-s", "--silent", action="store_true", help="Only log errors.")
    run.add_argument("--log-file", type=str, help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Keep only the settings that were given explicitly on the command line.

    Unset flags are suppressed from the namespace, so everything left is an explicit choice.

    Args:
        args (argparse.Namespace): the parsed arguments

    Returns:
        dict[str, Any]: settings overrides keyed by field name
    """
    return {k: v for k, v in vars(args).items() if k in Settings.model_fields}


def write_output(result: str | bytes, settings: Settings) -> None:
    """Write the digest to the output file, or to stdout.

    Text is capped at `max_output_size` first. Compressed output is written
    as raw bytes.

    Args:
        result (str | bytes): the rendered (or gzipped) digest
        settings (Settings): the run configuration
    """
    if isinstance(result, str):
        result = limit_output_size(result, settings.max_output_size, normalize_encoding(settings.output_encoding))

    if not settings.output_file:
        if isinstance(result, bytes):
            sys.stdout.buffer.write(result)
            sys.stdout.buffer.flush()
        else:
            sys.stdout.write(result)
        return

    path = Path(settings.output_file)
    if isinstance(result, bytes):
        path.write_bytes(result)
    else:
        path.write_text(result, encoding=normalize_encoding(settings.output_encoding))
    logger.info("output_written", path=str(path), size=len(result))


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = build_settings(cli_overrides(args), config_file=getattr(args, "config", None) or default_config_path())
        setup_logging(
            settings.log_file or None,
            level=level_for(verbose=settings.verbose, silent=settings.silent),
        )
        root = validate_directory(Path(args.directory))
        resolve_output_format(settings.output_format)

        result = asyncio.run(process_with_retry(root, settings))
        write_output(result, settings)
    except Exception as e:  # noqa: BLE001
        logger.error("digest_failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)  # noqa: T201
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
