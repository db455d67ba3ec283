"""
Error taxonomy for registration, dispatch and collaborators.

Every error carries a stable ``kind`` (the class name), a human message and
optional ``data``. Dispatch errors surface to MCP clients as tool *results*
flagged ``isError``; protocol errors live in ``protocol.ProtocolError``.
"""

from typing import Any, Optional


class DispatchError(Exception):
    """Base class for all errors the dispatcher and its collaborators raise."""

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        payload = {"kind": self.kind, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class InvalidDescriptor(DispatchError):
    """A tool or resource descriptor failed registration checks."""


class ToolNotFound(DispatchError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", {"name": name})


class ToolDisabled(DispatchError):
    def __init__(self, name: str):
        super().__init__(f"Tool is disabled: {name}", {"name": name})


class InvalidArguments(DispatchError):
    """First schema violation found while validating tool arguments."""

    def __init__(self, field: str, expected: str):
        super().__init__(
            f"Invalid argument '{field}': expected {expected}",
            {"field": field, "expected": expected},
        )
        self.field = field
        self.expected = expected


class ToolExecutionFailed(DispatchError):
    """A handler raised; the original message is preserved as ``data``."""

    def __init__(self, name: str, original: BaseException):
        detail = str(original) or type(original).__name__
        super().__init__(f"Error executing {name}: {detail}", detail)
        self.tool_name = name
        self.original = original


class DispatcherClosed(DispatchError):
    def __init__(self):
        super().__init__("Server is shutting down; no new invocations accepted")


class ResourceNotFound(DispatchError):
    def __init__(self, uri: str):
        super().__init__(f"Resource not found: {uri}", {"uri": uri})


class StoreUnavailable(DispatchError):
    """No active document store connection, or the driver failed."""


class ProviderUnavailable(DispatchError):
    """The requested text-generation provider is not configured."""


class ProviderError(DispatchError):
    """A configured text-generation provider failed remotely."""
