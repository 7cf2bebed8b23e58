"""
JSON-RPC wire format for PHD2 communication.

PHD2 exchanges one JSON object per line.

Requests (client -> PHD2):
    {"method": "guide", "id": 1, "params": [...]}

    ``params`` is omitted when the method takes none. A single scalar
    parameter is wrapped in a one-element array.

Responses (PHD2 -> client) carry the "jsonrpc" marker:
    {"jsonrpc": "2.0", "result": 0, "id": 1}
    {"jsonrpc": "2.0", "error": {"code": 1, "message": "..."}, "id": 1}

Events (PHD2 -> client, unsolicited) carry an "Event" name instead:
    {"Event": "GuideStep", "Frame": 12, "RADistanceRaw": 0.31, ...}
"""

import json
from typing import Any, Dict, Optional

from .errors import ErrorCodes, ProtocolError

# Every request uses the same id; at most one call is in flight at a time
RPC_ID = 1

RESPONSE_MARKER = "jsonrpc"
EVENT_KEY = "Event"


class EventNames:
    """Event names PHD2 sends that update client session state."""

    VERSION = "Version"
    APP_STATE = "AppState"
    START_GUIDING = "StartGuiding"
    GUIDE_STEP = "GuideStep"
    GUIDING_STOPPED = "GuidingStopped"
    PAUSED = "Paused"
    STAR_LOST = "StarLost"
    SETTLE_BEGIN = "SettleBegin"
    SETTLING = "Settling"
    SETTLE_DONE = "SettleDone"


class AppStates:
    """App state labels the client sets itself. PHD2 may report others."""

    STOPPED = "Stopped"
    GUIDING = "Guiding"
    PAUSED = "Paused"
    LOST_LOCK = "LostLock"


def make_request(method: str, params: Any = None, request_id: int = RPC_ID) -> str:
    """
    Serialize a JSON-RPC request line (without terminator).

    Args:
        method: PHD2 method name, e.g. "get_app_state"
        params: None, a list/tuple/dict sent as-is, or a scalar that is
            wrapped into a one-element array
        request_id: Request identifier

    Returns:
        Compact JSON string

    Example:
        >>> make_request("set_paused", True)
        '{"method":"set_paused","id":1,"params":[true]}'
    """
    request: Dict[str, Any] = {"method": method, "id": request_id}

    if params is not None:
        if isinstance(params, (list, tuple)):
            request["params"] = list(params)
        elif isinstance(params, dict):
            request["params"] = params
        else:
            request["params"] = [params]

    return json.dumps(request, separators=(",", ":"))


def parse_message(line: str) -> Dict[str, Any]:
    """
    Parse one inbound line.

    Raises:
        ProtocolError: If the line is not a JSON object
    """
    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(
            f"Invalid JSON from PHD2: {e.msg}",
            error_code=ErrorCodes.RESPONSE_PARSE_ERROR,
            cause=e
        )

    if not isinstance(message, dict):
        raise ProtocolError(
            f"Expected a JSON object from PHD2, got {type(message).__name__}",
            error_code=ErrorCodes.RESPONSE_PARSE_ERROR
        )

    return message


def is_response(message: Dict[str, Any]) -> bool:
    """True when the message answers a call rather than announcing an event."""
    return RESPONSE_MARKER in message


def is_failed_response(message: Dict[str, Any]) -> bool:
    return "error" in message


def error_message(message: Dict[str, Any]) -> str:
    """Extract the server-supplied error text from a failed response."""
    error = message.get("error")
    if isinstance(error, dict):
        return str(error.get("message", "Unknown PHD2 error"))
    if error is None:
        return "Unknown PHD2 error"
    return str(error)


def error_code(message: Dict[str, Any]) -> Optional[int]:
    error = message.get("error")
    if isinstance(error, dict) and isinstance(error.get("code"), int):
        return error["code"]
    return None
