"""Newline-delimited JSON protocol spoken with the browser daemon.

Exactly one message per line, UTF-8 encoded, one request per connection.

Request format (unset optional keys are omitted, never null):
    {
        "id": str,
        "action": str,          # canonical verb, e.g. "navigate"
        "url": str, "selector": str, "text": str, "value": str,
        "key": str, "path": str,
        "interactive": bool, "fullPage": bool,
        "timeout": int          # milliseconds
    }

Response format:
    {
        "id": str,
        "success": bool,
        "result": Any,          # present on success
        "error": str            # present on failure
    }
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from agentbrowser.commands import CommandDescriptor
from agentbrowser.errors import MalformedResponse

ENCODING = "utf-8"
DELIMITER = b"\n"

# Cheap read-only request used to check that a daemon answers.
PING_REQUEST: Dict[str, str] = {"id": "ping", "action": "getUrl"}


@dataclass
class Response:
    """Reply from the daemon to a single command."""
    id: str
    success: bool
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "success": self.success,
            "result": self.result,
            "error": self.error,
        }


def encode_message(payload: Dict[str, Any]) -> bytes:
    """Encode one message as a single delimited line."""
    return json.dumps(payload, separators=(",", ":")).encode(ENCODING) + DELIMITER


def serialize_request(descriptor: CommandDescriptor) -> bytes:
    """
    Serialize a command descriptor for socket transmission.

    Args:
        descriptor: Command to send

    Returns:
        UTF-8 encoded JSON line, newline terminated
    """
    return encode_message(descriptor.to_dict())


def deserialize_response(line: bytes) -> Response:
    """
    Decode one response line.

    Only the shape the client depends on is checked: a JSON object with a
    boolean ``success``. Everything else is passed through as sent.

    Raises:
        MalformedResponse: If the line is not a conforming JSON object
    """
    try:
        data = json.loads(line.decode(ENCODING))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedResponse(f"Failed to parse response: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise MalformedResponse(
            f"Failed to parse response: expected a JSON object, got {type(data).__name__}"
        )

    success = data.get("success")
    if not isinstance(success, bool):
        raise MalformedResponse("Failed to parse response: missing boolean 'success' field")

    raw_id = data.get("id")
    error = data.get("error")
    return Response(
        id="" if raw_id is None else str(raw_id),
        success=success,
        result=data.get("result"),
        error=None if error is None else str(error),
    )
