from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def level_for(*, verbose: bool = False, silent: bool = False) -> int:
    """Map the verbose/silent switches to a stdlib logging level.

    Args:
        verbose: Emit debug events.
        silent: Only emit errors. Ignored when `verbose` is set.

    Returns:
        int: The logging level to filter on.
    """
    if verbose:
        return logging.DEBUG
    if silent:
        return logging.ERROR
    return logging.INFO


def setup_logging(
    filename: str | Path | None = None,
    *,
    level: int = logging.INFO,
) -> structlog.BoundLogger:
    """Set up structured logging for the codebase_digest package.

    The stdlib handler is installed once, or replaced when a log file is given.
    The filtering level can be changed on every call.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum level of emitted events.

    Returns:
        A structlog logger instance configured for the codebase_digest package.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if not _LOGGING_CONFIGURED or filename:
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=logging.DEBUG,
            handlers=handlers,
            format="%(message)s",
            force=True,
        )
        _LOGGING_CONFIGURED = True

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return structlog.get_logger("codebase_digest")


logger = setup_logging()
