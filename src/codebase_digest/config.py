from __future__ import annotations

import os
from datetime import datetime  # noqa: TC003
from enum import StrEnum, auto

from pydantic import BaseModel, ConfigDict, Field, computed_field


class OutputFormat(StrEnum):
    """Closed set of digest renderers."""

    TEXT = auto()
    JSON = auto()
    MARKDOWN = auto()
    TREE = auto()
    CSV = auto()
    HTML = auto()
    XML = auto()


class BinaryAction(StrEnum):
    """What to do with the content of a file classified as binary."""

    SKIP = auto()
    INCLUDE = auto()
    HEXDUMP = auto()


class SortKey(StrEnum):
    PATH = auto()
    SIZE = auto()
    EXTENSION = auto()
    MODIFIED = auto()


class SortDirection(StrEnum):
    ASC = auto()
    DESC = auto()


class GroupingMode(StrEnum):
    """Key used to cluster records after processing."""

    NONE = auto()
    EXTENSION = auto()
    DIRECTORY = auto()
    LANGUAGE = auto()


class HashAlgorithm(StrEnum):
    MD5 = auto()
    SHA1 = auto()
    SHA256 = auto()
    SHA384 = auto()
    SHA512 = auto()


CPU_COUNT = os.cpu_count() or 1

DEFAULT_IGNORE_PATTERNS: list[str] = [
    "node_modules",
    ".git",
    "dist",
    "build",
    ".cache",
    "*.log",
    "*.lock",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    ".DS_Store",
    "Thumbs.db",
    ".env",
    ".env.*",
    "*.min.js",
    "*.min.css",
    "*.map",
    "coverage",
    ".next",
    ".nuxt",
    ".output",
    ".vercel",
    ".vscode",
    ".idea",
    "__pycache__",
    ".venv",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
]

BINARY_FILE_EXTENSIONS: list[str] = [
    "jpg", "jpeg", "png", "gif", "bmp", "ico", "webp", "tiff", "svg",
    "mp3", "mp4", "wav", "ogg", "webm", "avi", "mov", "wmv", "flv",
    "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
    "zip", "tar", "gz", "7z", "rar",
    "exe", "dll", "so", "dylib",
    "ttf", "otf", "woff", "woff2", "eot",
]  # fmt: skip

TEXT_FILE_EXTENSIONS: list[str] = [
    "txt", "md", "markdown", "rst", "adoc", "tex",
    "js", "jsx", "ts", "tsx", "mjs", "cjs",
    "py", "rb", "php", "java", "c", "cpp", "cs", "go", "rs", "swift",
    "html", "htm", "css", "scss", "sass", "less", "styl",
    "json", "yaml", "yml", "toml", "ini", "xml", "csv", "tsv",
    "sh", "bash", "zsh", "fish", "bat", "cmd", "ps1",
    "sql", "graphql", "prisma", "env",
]  # fmt: skip

EXT2LANG: dict[str, str] = {
    "js": "javascript",
    "jsx": "jsx",
    "ts": "typescript",
    "tsx": "tsx",
    "mjs": "javascript",
    "cjs": "javascript",
    "py": "python",
    "pyw": "python",
    "pyi": "python",
    "ipynb": "jupyter",
    "rb": "ruby",
    "rake": "ruby",
    "gemspec": "ruby",
    "php": "php",
    "phtml": "php",
    "java": "java",
    "jsp": "jsp",
    "kt": "kotlin",
    "kts": "kotlin",
    "groovy": "groovy",
    "scala": "scala",
    "c": "c",
    "h": "c",
    "cc": "cpp",
    "cpp": "cpp",
    "cxx": "cpp",
    "hpp": "cpp",
    "hxx": "cpp",
    "cs": "csharp",
    "go": "go",
    "rs": "rust",
    "swift": "swift",
    "html": "html",
    "htm": "html",
    "xhtml": "html",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "less": "less",
    "styl": "stylus",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
    "ini": "ini",
    "xml": "xml",
    "csv": "csv",
    "tsv": "tsv",
    "sh": "bash",
    "bash": "bash",
    "zsh": "bash",
    "fish": "fish",
    "bat": "batch",
    "cmd": "batch",
    "ps1": "powershell",
    "sql": "sql",
    "graphql": "graphql",
    "gql": "graphql",
    "prisma": "prisma",
    "md": "markdown",
    "markdown": "markdown",
    "rst": "restructuredtext",
    "adoc": "asciidoc",
    "tex": "latex",
    "env": "dotenv",
    "dart": "dart",
    "elm": "elm",
    "erl": "erlang",
    "ex": "elixir",
    "exs": "elixir",
    "fs": "fsharp",
    "hs": "haskell",
    "lua": "lua",
    "pl": "perl",
    "pm": "perl",
    "r": "r",
    "clj": "clojure",
    "conf": "config",
    "cfg": "ini",
    "dockerfile": "dockerfile",
    "tf": "terraform",
    "tfvars": "terraform",
}

EXT2MIME: dict[str, str] = {
    "txt": "text/plain",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "csv": "text/csv",
    "js": "application/javascript",
    "mjs": "application/javascript",
    "cjs": "application/javascript",
    "jsx": "application/javascript",
    "ts": "application/typescript",
    "tsx": "application/typescript",
    "json": "application/json",
    "xml": "application/xml",
    "py": "text/x-python",
    "rb": "text/x-ruby",
    "php": "text/x-php",
    "java": "text/x-java",
    "c": "text/x-c",
    "cpp": "text/x-c++",
    "cs": "text/x-csharp",
    "go": "text/x-go",
    "rs": "text/x-rust",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "mp3": "audio/mpeg",
    "mp4": "video/mp4",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "webm": "video/webm",
    "zip": "application/zip",
    "tar": "application/x-tar",
    "gz": "application/gzip",
    "rar": "application/vnd.rar",
    "md": "text/markdown",
    "markdown": "text/markdown",
    "yaml": "application/yaml",
    "yml": "application/yaml",
    "sh": "application/x-sh",
    "bash": "application/x-sh",
    "sql": "application/sql",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_language(extension: str) -> str:
    """Get the code fence language for an extension.

    Args:
        extension (str): File extension, with or without the leading dot.

    Returns:
        str: The language identifier, or an empty string if unknown.
    """
    if not extension:
        return ""
    return EXT2LANG.get(extension.removeprefix(".").lower(), "")


class FileRecord(BaseModel):
    """Per-file result forwarded to a renderer.

    Attributes:
        path: Slash-separated path relative to the scanned root.
        size: File size in bytes (0 on error records).
        modified: Last modification time.
        created: Creation time (falls back to the metadata change time).
        extension: Lowercase extension without the dot.
        is_binary: Whether the file was classified as binary.
        hash: Hex digest under the configured algorithm, when requested.
        mime_type: MIME type from the extension table, when requested.
        content: Decoded text, or the binary placeholder/base64/hexdump.
        encoding: "base64" or "hexdump" when a binary representation was used.
        error: Failure message when the file could not be read.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="File path relative to the scanned root")
    size: int = Field(default=0, ge=0, description="File size in bytes")
    modified: datetime | None = Field(default=None, description="Modification time")
    created: datetime | None = Field(default=None, description="Creation time")
    extension: str = Field(default="", description="Lowercase extension, no dot")
    is_binary: bool = Field(default=False, description="Binary classification")
    hash: str | None = Field(default=None, description="Hex digest")
    mime_type: str | None = Field(default=None, description="MIME type")
    content: str = Field(default="", description="Rendered file content")
    encoding: str | None = Field(default=None, description="Binary representation tag")
    error: str | None = Field(default=None, description="Processing error message")

    @computed_field
    @property
    def language(self) -> str:
        """Get the code fence language based on the extension."""
        return guess_language(self.extension)
