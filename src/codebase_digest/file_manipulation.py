"""Path, hashing, encoding, binary sniffing and hexdump helpers shared by the pipeline stages."""

from __future__ import annotations

import codecs
import hashlib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from charset_normalizer import from_bytes

from codebase_digest.config import DEFAULT_MIME_TYPE, EXT2MIME, HashAlgorithm
from codebase_digest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

SNIFF_BYTES = 4096
BINARY_RATIO_THRESHOLD = 0.1
_ALLOWED_CONTROL_BYTES = frozenset({9, 10, 13})


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path).replace("\\", "/")


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Normalize a sequence of glob patterns by stripping whitespace and
    replacing backslashes with forward slashes.

    Args:
        globs (Sequence[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip()
        if not g2:
            continue
        out.append(g2.replace("\\", "/"))
    return out


def file_extension(path: str | Path) -> str:
    """Lowercase extension of `path` without the leading dot ("" when none)."""
    return Path(path).suffix.removeprefix(".").lower()


def resolve_hash_algorithm(algorithm: str) -> HashAlgorithm:
    """Validate a hash algorithm name, falling back to md5.

    Args:
        algorithm (str): the requested algorithm name

    Returns:
        HashAlgorithm: the validated algorithm
    """
    try:
        return HashAlgorithm(algorithm.lower())
    except ValueError:
        logger.warning("invalid_hash_algorithm", algorithm=algorithm, fallback="md5")
        return HashAlgorithm.MD5


def hash_file(path: Path, algorithm: str = "md5") -> str:
    """Compute and return the hex digest of a file.

    Reads the file in 1 MiB chunks to handle large files without excessive memory use.

    Args:
        path (Path): the file path to hash
        algorithm (str): one of md5, sha1, sha256, sha384, sha512; anything else means md5

    Returns:
        str: the hex digest of the file contents
    """
    h = hashlib.new(resolve_hash_algorithm(algorithm).value)
    with path.open("rb") as f:
        for blk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(blk)
    return h.hexdigest()


def mime_type_for(path: str | Path) -> str:
    """Look up the MIME type of a file from its extension."""
    return EXT2MIME.get(file_extension(path), DEFAULT_MIME_TYPE)


def is_binary_sample(sample: bytes) -> bool:
    """Decide whether a byte sample looks binary.

    NUL bytes and control characters other than tab, LF and CR are suspicious;
    more than 10% suspicious bytes means binary. An empty sample is text.

    Args:
        sample (bytes): the leading bytes of a file

    Returns:
        bool: True if the sample is classified as binary
    """
    if not sample:
        return False
    suspicious = sum(1 for b in sample if b < 32 and b not in _ALLOWED_CONTROL_BYTES)  # noqa: PLR2004
    return suspicious / len(sample) > BINARY_RATIO_THRESHOLD


def read_sample(path: Path, nbytes: int = SNIFF_BYTES) -> bytes:
    with path.open("rb") as f:
        return f.read(nbytes)


def sniff_binary(path: Path) -> bool:
    """Check if a file is binary by sampling its first 4 KiB.

    An unreadable file is treated as text; the error is logged.

    Args:
        path (Path): the file path to check

    Returns:
        bool: True if the file content looks binary
    """
    try:
        sample = read_sample(path)
    except OSError as e:
        logger.error("binary_sniff_failed", path=str(path), error=str(e))
        return False
    return is_binary_sample(sample)


def is_binary_file(path: Path, binary_extensions: Sequence[str], text_extensions: Sequence[str]) -> bool:
    """Classify a file as binary, trying the extension lists before sniffing content.

    Args:
        path (Path): the file path to classify
        binary_extensions (Sequence[str]): extensions always treated as binary
        text_extensions (Sequence[str]): extensions always treated as text

    Returns:
        bool: True if the file is binary
    """
    ext = file_extension(path)
    if ext and ext in binary_extensions:
        return True
    if ext and ext in text_extensions:
        return False
    return sniff_binary(path)


def normalize_encoding(name: str) -> str:
    """Map an encoding name to a Python codec name, falling back to utf-8.

    Args:
        name (str): an encoding label such as "utf8", "latin1" or "utf16le"

    Returns:
        str: a codec name accepted by `bytes.decode`
    """
    try:
        return codecs.lookup(name).name
    except LookupError:
        logger.warning("unsupported_encoding", encoding=name, fallback="utf-8")
        return "utf-8"


def detect_encoding(data: bytes) -> str:
    """Detect the text encoding of a file payload.

    BOMs are checked first (UTF-16LE, UTF-16BE, UTF-8), then strict UTF-8
    over the whole payload; otherwise the statistical detector of
    charset-normalizer is used. An ascii guess is widened to utf-8.
    Defaults to utf-8.

    Args:
        data (bytes): the complete file content

    Returns:
        str: a codec name
    """
    if data.startswith(codecs.BOM_UTF16_LE):
        return "utf-16-le"
    if data.startswith(codecs.BOM_UTF16_BE):
        return "utf-16-be"
    if data.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    else:
        return "utf-8"
    best = from_bytes(data).best()
    if best is None or not best.encoding:
        return "utf-8"
    codec = normalize_encoding(best.encoding)
    return "utf-8" if codec == "ascii" else codec


def read_text(path: Path, encoding: str = "auto", *, detect: bool = True) -> str:
    """Read a whole file as text.

    Args:
        path (Path): the file path to read
        encoding (str): a codec name, or "auto" to detect it
        detect (bool): whether "auto" may sniff the content; utf-8 otherwise

    Raises:
        UnicodeDecodeError: if the bytes are not valid in the chosen encoding.

    Returns:
        str: the decoded file content
    """
    data = path.read_bytes()
    if encoding.lower() == "auto":
        codec = detect_encoding(data) if detect else "utf-8"
    else:
        codec = normalize_encoding(encoding)
    bom = {"utf-16-le": codecs.BOM_UTF16_LE, "utf-16-be": codecs.BOM_UTF16_BE}.get(codec)
    if bom and data.startswith(bom):
        data = data[len(bom) :]
    logger.debug("reading_text", path=str(path), encoding=codec)
    return data.decode(codec)


def create_hexdump(data: bytes, bytes_per_line: int = 16) -> str:
    """Render bytes as a canonical hexdump.

    Each line is an 8-digit hex offset, the byte values as two-digit hex
    (two spaces for missing trailing bytes) and the ASCII column between
    pipes, where bytes outside 32-126 show as ".".

    Args:
        data (bytes): the bytes to render
        bytes_per_line (int): number of bytes per line

    Returns:
        str: the hexdump, lines joined by "\\n" without a trailing newline
    """
    lines: list[str] = []
    for offset in range(0, len(data), bytes_per_line):
        chunk = data[offset : offset + bytes_per_line]
        hex_values = [f"{b:02x}" for b in chunk]
        hex_values.extend("  " for _ in range(bytes_per_line - len(chunk)))
        ascii_col = "".join(chr(b) if 32 <= b <= 126 else "." for b in chunk)  # noqa: PLR2004
        lines.append(f"{offset:08x}: {' '.join(hex_values)}  |{ascii_col}|")
    return "\n".join(lines)


def format_file_size(size: int | None) -> str:
    """Format a byte count as a human-readable string such as "1.23 KB"."""
    if size is None:
        return "Unknown"
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    idx = 0
    while value >= 1024 and idx < len(units) - 1:  # noqa: PLR2004
        value /= 1024
        idx += 1
    return f"{round(value, 2):g} {units[idx]}"


def build_tree_lines(entries: Sequence[tuple[str, str]]) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        entries (Sequence[tuple[str, str]]): pairs of a POSIX relative path
            (e.g. "src/main.py") and an annotation appended to its line

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    tree: dict[str, Any] = {}
    for rp, note in entries:
        rp = rp.strip("/").replace("\\", "/")  # noqa: PLW2901
        if not rp:
            continue
        cur = tree
        parts = rp.split("/")
        for i, part in enumerate(parts):
            if i == len(parts) - 1:
                cur.setdefault("__files__", {})[part] = note
            else:
                cur = cur.setdefault(part, {})

    lines: list[str] = []

    def walk(node: dict[str, Any], prefix: str) -> None:
        dirs = sorted([k for k in node if k != "__files__"], key=str.lower)
        files = node.get("__files__", {})
        entries_: list[tuple[str, str, Any]] = []
        entries_.extend(("dir", d, node[d]) for d in dirs)
        entries_.extend(("file", f, files[f]) for f in sorted(files, key=str.lower))
        for idx, (kind, name, child) in enumerate(entries_):
            last = idx == len(entries_) - 1
            branch = "└── " if last else "├── "
            if kind == "dir":
                lines.append(prefix + branch + name + "/")
                walk(child, prefix + ("    " if last else "│   "))
            else:
                lines.append(prefix + branch + name + child)

    walk(tree, "")
    return lines
