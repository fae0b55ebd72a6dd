"""Configuration for the agentbrowser CLI.

Settings are resolved once, at the CLI entry point, from (highest first):

1. Command-line flags
2. Process environment (AGENT_BROWSER_* variables)
3. ~/.config/agentbrowser/config.env (dotenv format)
4. Built-in defaults

The resulting CliConfig is passed explicitly to the parts that need it; no
other module reads the environment for settings.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

from agentbrowser.daemon.paths import DEFAULT_SESSION, validate_session_name
from agentbrowser.errors import InvalidValue

# Default location for user configuration.
CONFIG_PATH = Path.home() / ".config" / "agentbrowser" / "config.env"

ENV_PREFIX = "AGENT_BROWSER_"

# Keys understood from the environment and the config file.
CONFIG_KEYS = (
    "SESSION",
    "HEADED",
    "EXECUTABLE_PATH",
    "EXTENSIONS",
    "DAEMON_PATH",
    "NODE",
)


@dataclass
class CliConfig:
    session: str = DEFAULT_SESSION
    headed: bool = False
    executable_path: Optional[str] = None
    extensions: List[str] = field(default_factory=list)
    json_output: bool = False
    timeout: Optional[int] = None
    full_page: bool = False
    daemon_path: Optional[str] = None
    node_binary: str = "node"
    npm_prefix: Optional[str] = None


def load_raw_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Merge the config file and the environment into one dict.

    Keys are returned without the AGENT_BROWSER_ prefix, upper-cased.
    Environment values win over file values.

    Args:
        path: Config file to read (default: $AGENT_BROWSER_CONFIG or CONFIG_PATH)
        environ: Environment mapping (default: os.environ)
    """
    environ = os.environ if environ is None else environ
    if path is None:
        path = Path(environ.get(f"{ENV_PREFIX}CONFIG") or CONFIG_PATH)

    data: Dict[str, str] = {}

    if path.exists():
        for key, value in dotenv_values(path).items():
            name = key.upper()
            if name.startswith(ENV_PREFIX):
                name = name[len(ENV_PREFIX):]
            if name in CONFIG_KEYS and value is not None:
                data[name] = value

    for name in CONFIG_KEYS:
        value = environ.get(f"{ENV_PREFIX}{name}")
        if value is not None:
            data[name] = value

    # Set by npm when run through a global install; locates the daemon script.
    npm_prefix = environ.get("npm_config_prefix")
    if npm_prefix:
        data["NPM_PREFIX"] = npm_prefix

    return data


def _get_bool(raw: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_timeout(value: Optional[str]) -> Optional[int]:
    """
    Parse a --timeout value in milliseconds.

    Raises:
        InvalidValue: If the value is not a non-negative integer
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text.isascii() or not text.isdigit():
        raise InvalidValue(
            field="timeout",
            value=str(value),
            expected="non-negative integer (milliseconds)",
        )
    return int(text)


def build_config(
    session: Optional[str] = None,
    headed: bool = False,
    executable_path: Optional[str] = None,
    extensions: Optional[str] = None,
    json_output: bool = False,
    timeout: Optional[str] = None,
    full_page: bool = False,
    raw: Optional[Dict[str, str]] = None,
) -> CliConfig:
    """
    Build the CLI configuration from flags, falling back to the raw config.

    Raises:
        InvalidValue: Bad session name or timeout
    """
    raw = load_raw_config() if raw is None else raw

    resolved_session = session or raw.get("SESSION") or DEFAULT_SESSION
    validate_session_name(resolved_session)

    return CliConfig(
        session=resolved_session,
        headed=headed or _get_bool(raw, "HEADED"),
        executable_path=executable_path or raw.get("EXECUTABLE_PATH") or None,
        extensions=_split_list(extensions) or _split_list(raw.get("EXTENSIONS")),
        json_output=json_output,
        timeout=parse_timeout(timeout),
        full_page=full_page,
        daemon_path=raw.get("DAEMON_PATH") or None,
        node_binary=raw.get("NODE") or "node",
        npm_prefix=raw.get("NPM_PREFIX") or None,
    )
