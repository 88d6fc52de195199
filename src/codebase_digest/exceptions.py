from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CodebaseDigestError(Exception):
    """Base exception for errors in the codebase_digest package."""

    message: str = "Codebase digest failed."

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ConfigurationError(CodebaseDigestError):
    """Raised for invalid input that retrying cannot fix."""


@dataclass(frozen=True)
class UnknownOutputFormatError(ConfigurationError):
    """Raised when the requested output format is not one of the known formats."""

    value: str = ""
    message: str = "Unknown output format."


@dataclass(frozen=True)
class ConfigFileError(ConfigurationError):
    """Raised when a configuration file is missing or cannot be parsed."""

    file: Path | None = None


@dataclass(frozen=True)
class InvalidDirectoryError(ConfigurationError):
    """Raised when the target path does not exist or is not a directory."""

    folder: Path | None = None
    message: str = "The provided path is not a valid directory."


@dataclass(frozen=True)
class FileProcessingError(CodebaseDigestError):
    """Raised when a single file fails and errors are not tolerated."""

    path: str = ""


@dataclass(frozen=True)
class DigestTimeoutError(CodebaseDigestError):
    """Raised when the whole pipeline exceeds the configured timeout."""

    timeout_ms: int = 0
