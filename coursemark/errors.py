"""
Error types and error logging for coursemark.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class CoursemarkError(Exception):
    """Base class for coursemark errors."""


class AuthError(CoursemarkError):
    """Identity could not be resolved, or the role is not permitted."""


class RemoteError(CoursemarkError):
    """Transport failure, non-2xx status or malformed response from the state service."""

    def __init__(self, reason: str, *, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class ParseError(CoursemarkError):
    """A persisted cache entry is not valid JSON. Never surfaces to callers."""


class SaveInProgressError(CoursemarkError):
    """A save for this section is already in flight."""

    def __init__(self, section: str):
        super().__init__(f"Save already in progress for section {section!r}")
        self.section = section


def _error_log_path() -> Path:
    """Resolve error log path, respecting COURSEMARK_STORE_PATH."""
    store = os.environ.get("COURSEMARK_STORE_PATH")
    if store:
        return Path(store) / "coursemark-errors.log"
    return Path.home() / ".coursemark" / "coursemark-errors.log"


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
