"""Filesystem locations that identify a session's daemon."""

import re
import tempfile
from pathlib import Path

from agentbrowser.errors import InvalidValue

FILE_PREFIX = "agentbrowser-"
DEFAULT_SESSION = "default"

MAX_SESSION_LENGTH = 64

# Session names end up as a path segment; keep them to a portable charset.
_SESSION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_session_name(session: str) -> str:
    """
    Check that a session name is safe to embed in a file name.

    Raises:
        InvalidValue: If the name is empty, too long, or contains path-hostile
            characters such as "/" or ".."
    """
    if (
        not session
        or len(session) > MAX_SESSION_LENGTH
        or not _SESSION_RE.match(session)
        or ".." in session
    ):
        raise InvalidValue(
            field="session",
            value=session,
            expected=(
                f"1-{MAX_SESSION_LENGTH} characters of letters, digits, '.', '_' or '-', "
                "starting with a letter or digit"
            ),
        )
    return session


def get_runtime_dir() -> Path:
    """Shared temporary directory holding every session's files."""
    return Path(tempfile.gettempdir())


def get_socket_path(session: str) -> Path:
    """Get socket path for session."""
    return get_runtime_dir() / f"{FILE_PREFIX}{session}.sock"


def get_pid_path(session: str) -> Path:
    """Get PID file path for session."""
    return get_runtime_dir() / f"{FILE_PREFIX}{session}.pid"


def session_from_pid_path(pid_path: Path) -> str:
    """Recover the session name from a PID file path."""
    return pid_path.stem[len(FILE_PREFIX):]
