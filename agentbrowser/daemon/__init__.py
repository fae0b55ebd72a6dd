"""Daemon session handling for agentbrowser.

- paths: socket and PID file locations per session
- protocol: newline-delimited JSON request/response encoding
- client: one-shot socket exchange with a running daemon
- lifecycle: detecting, starting and waiting for a session's daemon

The lifecycle module depends on the CLI configuration and is imported
directly as agentbrowser.daemon.lifecycle.
"""

from agentbrowser.daemon.client import DaemonClient
from agentbrowser.daemon.protocol import (
    Response,
    deserialize_response,
    serialize_request,
)

__all__ = [
    "DaemonClient",
    "Response",
    "serialize_request",
    "deserialize_response",
]
