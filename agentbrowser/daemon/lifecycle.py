"""Daemon lifecycle: detect, start and wait for a session's browser daemon.

A daemon is usable only when both hold:
1. Its PID file names a live process (liveness)
2. Its socket accepts a connection and answers a ping (readiness)

ensure_daemon() returns immediately when both hold. Otherwise it clears stale
files, launches the daemon script detached from this process, and polls
readiness every 100ms for up to 5 seconds. Each readiness check is given
at most the time left in that window, so a daemon that accepts connections
but never answers cannot stretch the wait.

No lock is taken: two CLI invocations racing on the same session can both
decide to start a daemon.
"""

import logging
import os
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from agentbrowser.core.configs import CliConfig
from agentbrowser.daemon.client import PING_TIMEOUT, DaemonClient
from agentbrowser.daemon.paths import (
    FILE_PREFIX,
    get_pid_path,
    get_runtime_dir,
    get_socket_path,
    session_from_pid_path,
)
from agentbrowser.errors import DaemonNotFound, DaemonSpawnError, DaemonStartTimeout

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
POLL_ATTEMPTS = 50

# PIDs are signed 32-bit values on every supported platform.
MAX_PID = 2**31 - 1

DAEMON_SCRIPT = Path("dist") / "core" / "daemon.js"
DAEMON_SOURCE = Path("src") / "core" / "daemon.ts"
ENTRY_SCRIPT = Path("bin") / "agentbrowser-pro"
NPM_PACKAGE = Path("lib") / "node_modules" / "agentbrowser-pro"

# Installation root: the directory holding the agentbrowser package.
INSTALL_ROOT = Path(__file__).resolve().parents[2]


@dataclass
class DaemonResult:
    already_running: bool


# ============================================================================
# Liveness and readiness
# ============================================================================

def read_pid(session: str) -> Optional[int]:
    """
    Read the daemon PID for a session.

    Returns:
        The PID, or None if the file is absent, unreadable, or does not hold
        a plain decimal number in the positive 32-bit range
    """
    try:
        text = get_pid_path(session).read_text().strip()
    except (OSError, UnicodeDecodeError):
        return None

    if not (text.isascii() and text.isdigit()):
        return None
    pid = int(text)
    if not 0 < pid <= MAX_PID:
        return None
    return pid


def is_process_alive(pid: int) -> bool:
    """
    Probe for a live process without disturbing it.

    Signal 0 performs the existence and permission checks only. Windows has
    no equivalent (os.kill terminates there), so it always reports False.
    """
    if pid <= 0 or sys.platform == "win32":
        return False
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def is_daemon_running(session: str) -> bool:
    """Check if the session's PID file names a live process."""
    pid = read_pid(session)
    if pid is None:
        return False
    return is_process_alive(pid)


def is_daemon_ready(session: str, timeout: float = PING_TIMEOUT) -> bool:
    """Check if the session's daemon accepts a connection and answers a ping."""
    return DaemonClient(get_socket_path(session), timeout=timeout).ping()


def cleanup_session_files(session: str) -> None:
    """Remove session socket and PID files, ignoring any failure."""
    for path in (get_socket_path(session), get_pid_path(session)):
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove {path}: {e}")


# ============================================================================
# Locating and launching the daemon
# ============================================================================

def daemon_candidates(config: CliConfig) -> List[Path]:
    """Ordered list of places the daemon script may live."""
    bin_dir = Path(sys.argv[0]).resolve().parent

    candidates = []
    if config.daemon_path:
        candidates.append(Path(config.daemon_path).expanduser())
    candidates.extend([
        bin_dir.parent / DAEMON_SCRIPT,
        bin_dir.parent / DAEMON_SOURCE,
        INSTALL_ROOT / DAEMON_SCRIPT,
        INSTALL_ROOT / DAEMON_SOURCE,
    ])

    if config.npm_prefix:
        candidates.append(Path(config.npm_prefix) / NPM_PACKAGE / DAEMON_SCRIPT)

    return candidates


def find_daemon_path(config: CliConfig) -> Path:
    """
    Resolve the daemon script; the first existing candidate wins.

    Raises:
        DaemonNotFound: If no candidate exists
    """
    candidates = daemon_candidates(config)
    for path in candidates:
        if path.exists():
            return path
    raise DaemonNotFound(searched=[str(path) for path in candidates])


def find_entry_path() -> Optional[Path]:
    """Locate the Node entry script used for the MCP server."""
    bin_dir = Path(sys.argv[0]).resolve().parent
    for path in (bin_dir.parent / ENTRY_SCRIPT, INSTALL_ROOT / ENTRY_SCRIPT):
        if path.exists():
            return path
    return None


def build_daemon_env(
    config: CliConfig,
    base_env: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Environment for the daemon process: the caller's plus session settings."""
    env = dict(os.environ if base_env is None else base_env)
    env["AGENT_BROWSER_DAEMON"] = "1"
    env["AGENT_BROWSER_SESSION"] = config.session
    if config.headed:
        env["AGENT_BROWSER_HEADED"] = "1"
    if config.executable_path:
        env["AGENT_BROWSER_EXECUTABLE_PATH"] = config.executable_path
    if config.extensions:
        env["AGENT_BROWSER_EXTENSIONS"] = ",".join(config.extensions)
    return env


def spawn_detached(cmd: Sequence[str], env: Mapping[str, str]) -> subprocess.Popen:
    """
    Start a process that outlives this one.

    Standard streams go to /dev/null and the child gets its own session, so
    terminal signals aimed at the CLI never reach it.

    Raises:
        DaemonSpawnError: If the process could not be started
    """
    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = (
            subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
        )
    else:
        kwargs["start_new_session"] = True

    try:
        return subprocess.Popen(
            list(cmd),
            env=dict(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **kwargs,
        )
    except OSError as e:
        raise DaemonSpawnError(e) from e


def run_foreground(cmd: Sequence[str], env: Mapping[str, str]) -> int:
    """
    Run a process attached to this terminal and return its exit code.

    Raises:
        DaemonSpawnError: If the process could not be started
    """
    try:
        return subprocess.run(list(cmd), env=dict(env)).returncode
    except OSError as e:
        raise DaemonSpawnError(e) from e


def ensure_daemon(
    config: CliConfig,
    poll_interval: float = POLL_INTERVAL,
    max_attempts: int = POLL_ATTEMPTS,
) -> DaemonResult:
    """
    Ensure the session's daemon is running, starting it if needed.

    Args:
        config: CLI configuration (session, headed mode, executable path)
        poll_interval: Seconds between readiness checks
        max_attempts: Readiness checks before giving up

    Returns:
        DaemonResult telling whether the daemon was already running

    Raises:
        DaemonNotFound: If the daemon script cannot be located
        DaemonSpawnError: If the process could not be started
        DaemonStartTimeout: If the daemon never became ready
    """
    session = config.session

    if is_daemon_running(session) and is_daemon_ready(session):
        logger.debug(f"Daemon for session '{session}' already running")
        return DaemonResult(already_running=True)

    cleanup_session_files(session)

    daemon_path = find_daemon_path(config)
    cmd = [config.node_binary, str(daemon_path)]
    logger.info(f"Starting daemon for session '{session}': {' '.join(cmd)}")
    spawn_detached(cmd, build_daemon_env(config))

    deadline = time.monotonic() + poll_interval * max_attempts
    for attempt in range(1, max_attempts + 1):
        time.sleep(poll_interval)
        remaining = deadline - time.monotonic()
        if is_daemon_ready(session, timeout=max(min(PING_TIMEOUT, remaining), poll_interval)):
            logger.info(f"Daemon for session '{session}' ready after {attempt} checks")
            return DaemonResult(already_running=False)
        if time.monotonic() >= deadline:
            break

    logger.warning(f"Daemon for session '{session}' did not become ready")
    raise DaemonStartTimeout(seconds=poll_interval * max_attempts)


def run_daemon_foreground(config: CliConfig) -> int:
    """Run the daemon attached to the terminal (the ``daemon`` command)."""
    daemon_path = find_daemon_path(config)
    return run_foreground([config.node_binary, str(daemon_path)], build_daemon_env(config))


def run_mcp_foreground(config: CliConfig) -> int:
    """
    Run the MCP server attached to the terminal (the ``mcp`` command).

    Raises:
        DaemonNotFound: If the entry script cannot be located
    """
    entry_path = find_entry_path()
    if entry_path is None:
        raise DaemonNotFound()

    env = dict(os.environ)
    env["AGENT_BROWSER_SESSION"] = config.session
    if config.headed:
        env["AGENT_BROWSER_HEADED"] = "1"
    return run_foreground([config.node_binary, str(entry_path), "mcp"], env)


# ============================================================================
# Session discovery
# ============================================================================

def _pid_files() -> List[Path]:
    return sorted(get_runtime_dir().glob(f"{FILE_PREFIX}*.pid"))


def find_all_sessions() -> List[str]:
    """Find all sessions with a live daemon by scanning PID files."""
    return [
        session_from_pid_path(pid_file)
        for pid_file in _pid_files()
        if is_daemon_running(session_from_pid_path(pid_file))
    ]


def clean_stale_sessions() -> List[str]:
    """Remove files left behind by dead daemons; returns the sessions cleaned."""
    cleaned = []
    for pid_file in _pid_files():
        session = session_from_pid_path(pid_file)
        if not is_daemon_running(session):
            cleanup_session_files(session)
            cleaned.append(session)
    return cleaned
