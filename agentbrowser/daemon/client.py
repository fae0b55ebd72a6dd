"""Lightweight client for daemon communication.

Opens one Unix socket connection per request, writes a single JSON line and
reads a single JSON line back. Transport problems are raised as
TransportError subclasses; a daemon-reported failure comes back as a normal
Response with ``success`` set to False.

Usage:
    client = DaemonClient(get_socket_path("default"))
    response = client.send(parse_command(["title"]))
"""

import json
import logging
import socket
from pathlib import Path
from typing import Union

from agentbrowser.commands import CommandDescriptor
from agentbrowser.daemon.protocol import (
    DELIMITER,
    PING_REQUEST,
    Response,
    deserialize_response,
    encode_message,
    serialize_request,
)
from agentbrowser.errors import (
    ConnectFailure,
    IncompleteResponse,
    ProtocolTimeout,
    TransportError,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
PING_TIMEOUT = 2.0


class DaemonClient:
    """
    Client for a single session's daemon socket.

    Each call opens its own connection; nothing is pooled or reused.
    """

    def __init__(
        self,
        socket_path: Union[str, Path],
        timeout: float = REQUEST_TIMEOUT,
    ):
        """
        Initialize client.

        Args:
            socket_path: Path to the session's Unix socket
            timeout: Read/write timeout in seconds
        """
        self.socket_path = Path(socket_path)
        self.timeout = timeout

    def send(self, descriptor: CommandDescriptor) -> Response:
        """
        Send one command and return the daemon's reply.

        Raises:
            ConnectFailure: Socket missing or refusing connections
            ProtocolTimeout: No progress within the timeout
            IncompleteResponse: Connection closed before a full line arrived
            MalformedResponse: Reply line is not a valid response object
        """
        logger.debug(f"Sending {descriptor.action} to {self.socket_path}")
        line = self._exchange(serialize_request(descriptor))
        return deserialize_response(line)

    def ping(self) -> bool:
        """
        Check that the daemon answers at all.

        Any line that parses as JSON counts, whatever its ``success`` value.
        """
        try:
            line = self._exchange(encode_message(PING_REQUEST))
            json.loads(line.decode("utf-8"))
        except (TransportError, ValueError) as e:
            logger.debug(f"Ping to {self.socket_path} failed: {e}")
            return False
        return True

    def _exchange(self, payload: bytes) -> bytes:
        """Write one request line and read exactly one reply line."""
        family = getattr(socket, "AF_UNIX", None)
        if family is None:
            raise ConnectFailure("Unix sockets are not available on this platform")

        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)

        try:
            try:
                sock.connect(str(self.socket_path))
            except OSError as e:
                raise ConnectFailure(f"Failed to connect to daemon: {e}", cause=e) from e

            try:
                sock.sendall(payload)
            except socket.timeout as e:
                raise ProtocolTimeout(
                    f"Timed out sending command after {self.timeout:g}s", cause=e
                ) from e
            except OSError as e:
                # Reset or broken pipe: the daemon dropped the connection.
                raise IncompleteResponse(f"Failed to send command: {e}", cause=e) from e

            with sock.makefile("rb") as reader:
                try:
                    line = reader.readline()
                except socket.timeout as e:
                    raise ProtocolTimeout(
                        f"Timed out waiting for response after {self.timeout:g}s", cause=e
                    ) from e
                except OSError as e:
                    raise IncompleteResponse(f"Failed to read response: {e}", cause=e) from e

            if not line.endswith(DELIMITER):
                raise IncompleteResponse(
                    "Failed to read response: connection closed before a full line "
                    f"was received ({len(line)} bytes)"
                )
            return line

        finally:
            sock.close()
