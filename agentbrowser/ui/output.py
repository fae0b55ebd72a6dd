"""
Terminal output for daemon responses and CLI errors.

Human mode picks a compact rendering for the common result shapes and falls
back to pretty JSON; JSON mode prints machine-readable objects only.
"""

import json
from typing import Any, List, Optional, Union

import typer
from rich.console import Console
from rich.markup import escape

from agentbrowser.daemon.protocol import Response
from agentbrowser.errors import AgentBrowserError

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

CHECK = "✓"
CROSS = "✗"

# Result keys that only acknowledge that an action happened.
ACK_KEYS = (
    "clicked", "typed", "filled", "checked", "unchecked", "selected",
    "hovered", "focused", "pressed", "scrolled", "cleared", "set",
    "launched", "closed", "switched", "created", "waited", "found",
)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def format_result(result: Any) -> Optional[List[str]]:
    """
    Render a successful result as plain lines.

    Returns:
        Lines to print, or None when the result only acknowledges success
    """
    if not isinstance(result, dict):
        if result is None:
            return None
        return [json.dumps(result, indent=2)]

    # Snapshot: accessibility tree plus page info
    tree = result.get("tree")
    if tree is not None:
        lines = []
        if isinstance(tree, str):
            lines.extend([tree, ""])
        if isinstance(result.get("url"), str):
            lines.append(f"URL: {result['url']}")
        if isinstance(result.get("title"), str):
            lines.append(f"Title: {result['title']}")
        return lines

    if "data" in result:
        if isinstance(result.get("path"), str):
            return [f"{CHECK} Screenshot saved to: {result['path']}"]
        return [f"{CHECK} Screenshot captured (base64 data available)"]

    for key in ("url", "title", "text"):
        if isinstance(result.get(key), str):
            return [result[key]]
    if "value" in result:
        return [_as_text(result["value"])]
    if isinstance(result.get("html"), str):
        return [result["html"]]

    for key in ("visible", "enabled", "checked"):
        if isinstance(result.get(key), bool):
            return [_bool_text(result[key])]

    count = result.get("count")
    if isinstance(count, int) and not isinstance(count, bool):
        return [str(count)]

    cookies = result.get("cookies")
    if isinstance(cookies, list):
        return [
            f"{cookie['name']}: {cookie.get('value', '')}"
            for cookie in cookies
            if isinstance(cookie, dict) and isinstance(cookie.get("name"), str)
        ]

    pages = result.get("pages")
    if isinstance(pages, list):
        return [
            f"[{index}] {page.get('title', '')} - {page.get('url', '')}"
            for index, page in enumerate(pages)
            if isinstance(page, dict)
        ]

    frames = result.get("frames")
    if isinstance(frames, list):
        return [
            f"{frame.get('name') or '(unnamed)'}: {frame.get('url', '')}"
            for frame in frames
            if isinstance(frame, dict)
        ]

    storage = result.get("storage")
    if isinstance(storage, dict):
        return [f"{key}: {json.dumps(value)}" for key, value in storage.items()]

    if any(key in result for key in ACK_KEYS):
        return None

    return [json.dumps(result, indent=2)]


def print_response(response: Response, json_output: bool = False) -> None:
    """Print a daemon response in JSON or human-readable form."""
    if json_output:
        typer.echo(json.dumps(response.to_dict(), indent=2))
        return

    if not response.success:
        print_failure(response.error or "Command failed")
        return

    lines = format_result(response.result)
    if lines is None:
        lines = [f"{CHECK} Success"]

    for line in lines:
        if line.startswith(f"{CHECK} "):
            console.print(f"[green]{CHECK}[/green] {escape(line[2:])}")
        else:
            typer.echo(line)


def print_failure(message: str) -> None:
    """Print a red failure line to stderr."""
    err_console.print(f"[red]{CROSS}[/red] {escape(message)}")


def print_error(error: Union[AgentBrowserError, str], json_output: bool = False) -> None:
    """
    Report a CLI-side failure.

    JSON mode prints a single-line object with the message and error type;
    human mode prints the message in red on stderr.
    """
    if isinstance(error, AgentBrowserError):
        message, code = error.format(), error.code
    else:
        message, code = str(error), "error"

    if json_output:
        payload = {"success": False, "error": message.replace("\n", " "), "type": code}
        typer.echo(json.dumps(payload))
        return

    print_failure(message)


def print_info(message: str) -> None:
    """Print a dimmed status line to stderr."""
    err_console.print(f"[dim]{escape(message)}[/dim]")
