"""Main CLI entry point: parse → ensure daemon → send → report."""

import json
import logging
from typing import List, Optional

import typer

from agentbrowser import __version__
from agentbrowser.commands import CommandDescriptor, CommandOptions, parse_command
from agentbrowser.core.configs import CliConfig, build_config
from agentbrowser.daemon.client import DaemonClient
from agentbrowser.daemon.lifecycle import (
    clean_stale_sessions,
    ensure_daemon,
    find_all_sessions,
    run_daemon_foreground,
    run_mcp_foreground,
)
from agentbrowser.daemon.paths import get_socket_path
from agentbrowser.errors import AgentBrowserError
from agentbrowser.ui.output import print_error, print_info, print_response

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="agentbrowser - browser automation for AI agents.",
)

# Verb arguments may be interleaved with flags, and unknown flags are dropped.
CONTEXT_SETTINGS = {
    "allow_extra_args": True,
    "ignore_unknown_options": True,
}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def clean_args(args: List[str]) -> List[str]:
    """Remove flag-looking tokens, leaving the verb and its arguments."""
    return [arg for arg in args if not arg.startswith("-")]


# ============================================================================
# Dispatch
# ============================================================================

def _run_local(descriptor: CommandDescriptor, config: CliConfig) -> int:
    """Handle actions that never reach the daemon socket."""
    if descriptor.action == "daemon":
        print_info(f"Starting daemon (session: {config.session})...")
        return run_daemon_foreground(config)

    if descriptor.action == "mcp":
        return run_mcp_foreground(config)

    if descriptor.action == "listSessions":
        sessions = find_all_sessions()
        if config.json_output:
            typer.echo(_json_result({"sessions": sessions}))
        elif sessions:
            for name in sessions:
                typer.echo(name)
        else:
            print_info("No active sessions")
        return 0

    # cleanSessions
    cleaned = clean_stale_sessions()
    if config.json_output:
        typer.echo(_json_result({"cleaned": cleaned}))
    elif cleaned:
        typer.echo(f"Removed stale files for: {', '.join(cleaned)}")
    else:
        print_info("No stale session files")
    return 0


def _json_result(result: dict) -> str:
    return json.dumps({"success": True, "result": result}, indent=2)


def dispatch(descriptor: CommandDescriptor, config: CliConfig) -> int:
    """
    Execute one parsed command and print the outcome.

    Returns:
        Process exit code: 0 on success, 1 on any failure

    Performance: one daemon check and one socket round-trip per invocation.
    """
    try:
        if descriptor.is_local:
            return _run_local(descriptor, config)

        result = ensure_daemon(config)
        if not result.already_running:
            logger.info(f"Started daemon for session '{config.session}'")

        response = DaemonClient(get_socket_path(config.session)).send(descriptor)
    except AgentBrowserError as e:
        logger.debug(f"{descriptor.action} failed: {e!r}")
        print_error(e, config.json_output)
        return 1

    print_response(response, config.json_output)
    return 0 if response.success else 1


# ============================================================================
# Command
# ============================================================================

def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"agentbrowser {__version__}")
        raise typer.Exit()


@app.command(context_settings=CONTEXT_SETTINGS)
def main(
    ctx: typer.Context,
    args: Optional[List[str]] = typer.Argument(None, help="Command and its arguments, e.g. 'click @e1'"),
    session: Optional[str] = typer.Option(None, "--session", help="Named session (default: \"default\")"),
    headed: bool = typer.Option(False, "--headed", help="Run browser in headed mode"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    timeout: Optional[str] = typer.Option(None, "--timeout", help="Command timeout in milliseconds"),
    executable_path: Optional[str] = typer.Option(None, "--executable-path", help="Path to browser executable"),
    extensions: Optional[str] = typer.Option(None, "--extensions", help="Comma-separated browser extension paths"),
    full_page: bool = typer.Option(False, "--full-page", help="Capture the full page (screenshot)"),
    verbose: bool = typer.Option(False, "--verbose", help="Show lifecycle logging"),
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    """
    Send a browser command to the session daemon, starting it if needed.

    Examples:
        agentbrowser navigate https://example.com
        agentbrowser snapshot
        agentbrowser click @e1
        agentbrowser fill @e2 "hello@example.com"
        agentbrowser screenshot --full-page output.png
    """
    _setup_logging(verbose)

    tokens = clean_args(list(args or []) + list(ctx.args))
    if not tokens:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)

    try:
        config = build_config(
            session=session,
            headed=headed,
            executable_path=executable_path,
            extensions=extensions,
            json_output=json_output,
            timeout=timeout,
            full_page=full_page,
        )
        descriptor = parse_command(
            tokens,
            CommandOptions(timeout=config.timeout, full_page=config.full_page),
        )
    except AgentBrowserError as e:
        print_error(e, json_output)
        raise typer.Exit(1)

    raise typer.Exit(dispatch(descriptor, config))


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
