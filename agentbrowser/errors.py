"""Exception hierarchy for the agentbrowser CLI.

Failures fall into three families, each rendered by the dispatcher:

- ParseError: bad user input, fixed by correcting the command line
- DaemonError: the worker could not be found or started
- TransportError: the socket exchange with the worker failed

A worker-reported failure (``success: false``) is not an exception; it is
returned as a normal Response.
"""

from typing import Optional, Sequence


class AgentBrowserError(Exception):
    """Base class for every failure surfaced by the CLI."""

    code = "error"

    def format(self) -> str:
        return str(self)


# ============================================================================
# Parse-time failures
# ============================================================================

class ParseError(AgentBrowserError):
    """Command line could not be turned into a command descriptor."""


class UnknownCommand(ParseError):
    code = "unknown_command"

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown command: {command}")

    def format(self) -> str:
        return (
            f"Unknown command: {self.command}\n\n"
            "Run 'agentbrowser --help' to see available commands."
        )


class UnknownSubcommand(ParseError):
    code = "unknown_subcommand"

    def __init__(self, subcommand: str, valid_options: Sequence[str]):
        self.subcommand = subcommand
        self.valid_options = tuple(valid_options)
        super().__init__(f"Unknown subcommand: {subcommand}")

    def format(self) -> str:
        return (
            f"Unknown subcommand: {self.subcommand}\n"
            f"Valid options: {', '.join(self.valid_options)}"
        )


class MissingArguments(ParseError):
    code = "missing_arguments"

    def __init__(self, context: str, usage: str):
        self.context = context
        self.usage = usage
        super().__init__(f"Missing arguments for: {context}")

    def format(self) -> str:
        return f"Missing arguments for: {self.context}\nUsage: agentbrowser {self.usage}"


class InvalidValue(ParseError):
    code = "invalid_value"

    def __init__(self, field: str, value: str, expected: str):
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid value for {field}: '{value}'")

    def format(self) -> str:
        return f"Invalid value for {self.field}: '{self.value}'\nExpected: {self.expected}"


# ============================================================================
# Lifecycle failures
# ============================================================================

class DaemonError(AgentBrowserError):
    """Worker process could not be located or brought up."""

    code = "daemon_error"


class DaemonNotFound(DaemonError):
    code = "daemon_not_found"

    def __init__(self, searched: Sequence[str] = ()):
        self.searched = tuple(searched)
        super().__init__("Could not find daemon script")

    def format(self) -> str:
        if not self.searched:
            return str(self)
        locations = "\n".join(f"  {path}" for path in self.searched)
        return f"{self}\nSearched:\n{locations}"


class DaemonStartTimeout(DaemonError):
    code = "daemon_start_timeout"

    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__(f"Daemon failed to start within {seconds:g} seconds")


class DaemonSpawnError(DaemonError):
    code = "daemon_spawn_failed"

    def __init__(self, cause: OSError):
        self.cause = cause
        super().__init__(f"Failed to start daemon: {cause}")


# ============================================================================
# Transport failures
# ============================================================================

class TransportError(AgentBrowserError):
    """Socket exchange with the worker failed."""

    code = "transport_error"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class ConnectFailure(TransportError):
    code = "connect_failed"


class ProtocolTimeout(TransportError):
    code = "timeout"


class IncompleteResponse(TransportError):
    code = "incomplete_response"


class MalformedResponse(TransportError):
    code = "malformed_response"
