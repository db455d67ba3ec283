"""
JSON-RPC 2.0 / MCP protocol helpers

Envelope validation, response builders, MCP result shapes and the framing
contract used at the transport boundary.

Framing: one JSON object per line. A message MAY span several lines, in
which case it ends once the accumulated text parses (or at a blank line).
Blank lines between messages are ignored.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# MCP-specific
SERVER_NOT_INITIALIZED = -32002

ERROR_MESSAGES = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid Request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
    SERVER_NOT_INITIALIZED: "Server not initialized",
}


class ProtocolError(Exception):
    """An error that becomes a JSON-RPC error envelope."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


# ── envelopes ────────────────────────────────────────────────────

def validate_message(msg: Any) -> str:
    """
    Classify a decoded message.

    Returns one of "request", "notification", "response", "error".
    Raises ProtocolError(INVALID_REQUEST) for anything else.
    """
    if not isinstance(msg, dict):
        raise ProtocolError(INVALID_REQUEST, "Message must be a JSON object")

    if msg.get("jsonrpc") != JSONRPC_VERSION:
        raise ProtocolError(INVALID_REQUEST, "Missing or invalid jsonrpc version")

    if "method" in msg:
        if not isinstance(msg["method"], str) or not msg["method"]:
            raise ProtocolError(INVALID_REQUEST, "method must be a non-empty string")
        params = msg.get("params")
        if params is not None and not isinstance(params, (dict, list)):
            raise ProtocolError(INVALID_REQUEST, "params must be an object or array")
        return "request" if "id" in msg else "notification"

    if "id" in msg:
        if "error" in msg:
            return "error"
        if "result" in msg:
            return "response"

    raise ProtocolError(INVALID_REQUEST, "Message has neither method nor result")


def make_response(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def make_error(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


def encode_message(message: Dict[str, Any]) -> bytes:
    """Serialize one envelope as a single newline-terminated line."""
    text = json.dumps(message, separators=(",", ":"), ensure_ascii=False, default=str)
    return (text + "\n").encode("utf-8")


# ── MCP result shapes ────────────────────────────────────────────

def initialize_result(
    server_name: str,
    server_version: str,
    protocol_version: str,
    capabilities: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "protocolVersion": protocol_version,
        "serverInfo": {"name": server_name, "version": server_version},
        "capabilities": capabilities if capabilities is not None else {"tools": {"listChanged": False}},
    }


def text_content(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def tool_result_content(
    content: List[Dict[str, Any]],
    is_error: bool = False,
    structured: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    result: Dict[str, Any] = {"content": content}
    if is_error:
        result["isError"] = True
    if structured is not None:
        result["structuredContent"] = structured
    return result


def render_result(value: Any) -> str:
    """Render a handler's return value as tool-result text."""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def tools_list_result(tools: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"tools": tools}


def resources_list_result(resources: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"resources": resources}


def resource_read_result(contents: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"contents": contents}


def prompts_list_result(prompts: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"prompts": prompts}


# ── framing ──────────────────────────────────────────────────────

_ID_PATTERN = re.compile(r'"id"\s*:\s*(-?\d+|"(?:[^"\\]|\\.)*")')


def recover_id(raw: str) -> Optional[Union[int, str]]:
    """Best-effort extraction of an ``id`` from text that failed to parse."""
    match = _ID_PATTERN.search(raw)
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except ValueError:
        return None


@dataclass
class Malformed:
    """A frame that could not be decoded into a JSON-RPC envelope."""
    raw: str
    reason: str
    request_id: Optional[Union[int, str]] = None


def _braces_balanced(text: str) -> bool:
    depth = 0
    in_string = False
    escaped = False
    for ch in text:
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_string:
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
    return depth <= 0 and not in_string


class FrameDecoder:
    """
    Turns a stream of text lines into decoded messages.

    ``feed(line)`` returns a decoded object, a ``Malformed`` marker, or None
    when more lines are needed (or the line was blank).
    """

    def __init__(self, max_bytes: int = 4 * 1024 * 1024):
        self._max_bytes = max_bytes
        self._lines: List[str] = []
        self._size = 0

    @property
    def pending(self) -> bool:
        return bool(self._lines)

    def feed(self, line: str) -> Optional[Union[Any, Malformed]]:
        stripped = line.strip()

        if not stripped:
            if not self._lines:
                return None
            return self._fail("Incomplete JSON message")

        if not self._lines and stripped[0] not in "{[":
            return self._malformed(stripped, "Not a JSON object")

        self._lines.append(stripped)
        self._size += len(stripped)
        text = "\n".join(self._lines)

        try:
            decoded = json.loads(text)
        except ValueError as exc:
            if self._size > self._max_bytes:
                return self._fail(f"Message exceeds {self._max_bytes} bytes")
            if _braces_balanced(text):
                return self._fail(f"JSON parse error: {exc}")
            return None  # keep accumulating

        self._reset()
        return decoded

    def reject(self, line: str, reason: str) -> Malformed:
        """Discard anything buffered together with ``line`` as one malformed frame."""
        stripped = line.strip()
        if stripped:
            self._lines.append(stripped)
        return self._fail(reason)

    def flush(self) -> Optional[Malformed]:
        """Call at EOF: anything still buffered is malformed."""
        if not self._lines:
            return None
        return self._fail("Truncated JSON message at end of stream")

    def _fail(self, reason: str) -> Malformed:
        text = "\n".join(self._lines)
        self._reset()
        return self._malformed(text, reason)

    @staticmethod
    def _malformed(text: str, reason: str) -> Malformed:
        return Malformed(raw=text, reason=reason, request_id=recover_id(text))

    def _reset(self):
        self._lines = []
        self._size = 0
