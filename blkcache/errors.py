"""
Error types and error logging for blkcache.

Lookups report "not found" as None. Exceptions are reserved for caller
bugs (ParameterError), allocation failure (ResourceError) and malformed
tag strings (FormatError).
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class BlkidError(Exception):
    """Base class for blkcache errors."""


class ParameterError(BlkidError, ValueError):
    """A required argument is missing or invalid."""


class InvalidIteratorError(ParameterError):
    """A tag iterator was used after being released."""


class ResourceError(BlkidError, MemoryError):
    """Allocation failed; any partially linked state was rolled back."""


class FormatError(BlkidError, ValueError):
    """A NAME=value tag string could not be parsed."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting BLKCACHE_CONFIG_DIR."""
    config_dir = os.environ.get("BLKCACHE_CONFIG_DIR")
    if config_dir:
        return Path(config_dir) / "blkcache-errors.log"
    return Path.home() / ".blkcache" / "blkcache-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
