"""
Method Router — the protocol adapter between JSON-RPC and the dispatcher

Routes:
  initialize                 → capabilities handshake (uninitialized → initializing)
  initialized                → notification (initializing → ready)
  tools/list                 → enabled tool listing
  tools/call                 → dispatcher invocation, result or error *result*
  resources/list|read        → resource registry
  prompts/list|get           → prompt catalog (when enabled)
  logging/setLevel           → log level (when enabled)
  ping                       → liveness, any state

Session:
  uninitialized → initializing → ready → shutting_down → closed

Every request yields exactly one envelope from ``handle``; notifications
yield None, even when they fail.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .config import Config
from .dispatcher import Dispatcher
from .errors import DispatchError, ResourceNotFound
from .logger import get_logger, set_level
from .prompts import PromptCatalog
from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    SERVER_NOT_INITIALIZED,
    Malformed,
    ProtocolError,
    initialize_result,
    make_error,
    make_response,
    prompts_list_result,
    render_result,
    resource_read_result,
    resources_list_result,
    text_content,
    tool_result_content,
    tools_list_result,
    validate_message,
)
from .resources import ResourceRegistry

log = get_logger("router")


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


# Methods whose handling may suspend on collaborator I/O
SLOW_METHODS = frozenset({"tools/call", "resources/read"})


class Router:
    """MCP method dispatcher and session state machine."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        resources: Optional[ResourceRegistry] = None,
        prompts: Optional[PromptCatalog] = None,
        capabilities: Optional[Dict[str, bool]] = None,
        server_name: str = Config.SERVER_NAME,
        server_version: str = Config.SERVER_VERSION,
        protocol_version: str = Config.PROTOCOL_VERSION,
    ):
        self._dispatcher = dispatcher
        self._resources = resources
        self._prompts = prompts
        self._server_name = server_name
        self._server_version = server_version
        self._protocol_version = protocol_version
        self._state = SessionState.UNINITIALIZED
        self._client_info: Dict[str, Any] = {}
        self._client_capabilities: Dict[str, Any] = {}
        self._capabilities = self._resolve_capabilities(capabilities or Config.capabilities())

        # method → (handler, needs_ready)
        self._methods: Dict[str, tuple] = {
            "initialize": (self._handle_initialize, False),
            "initialized": (self._handle_initialized, False),
            "notifications/initialized": (self._handle_initialized, False),
            "notifications/cancelled": (self._handle_cancelled, False),
            "ping": (self._handle_ping, False),
        }
        if "tools" in self._capabilities:
            self._methods["tools/list"] = (self._handle_tools_list, True)
            self._methods["tools/call"] = (self._handle_tools_call, True)
        if "resources" in self._capabilities:
            self._methods["resources/list"] = (self._handle_resources_list, True)
            self._methods["resources/read"] = (self._handle_resources_read, True)
        if "prompts" in self._capabilities:
            self._methods["prompts/list"] = (self._handle_prompts_list, True)
            self._methods["prompts/get"] = (self._handle_prompts_get, True)
        if "logging" in self._capabilities:
            self._methods["logging/setLevel"] = (self._handle_set_level, True)

    def _resolve_capabilities(self, flags: Dict[str, bool]) -> Dict[str, Any]:
        """Advertise only what this router can actually service."""
        serviceable = {
            "tools": True,
            "resources": self._resources is not None,
            "prompts": self._prompts is not None,
            "logging": True,
        }
        shapes = {
            "tools": {"listChanged": False},
            "resources": {"subscribe": False, "listChanged": False},
            "prompts": {"listChanged": False},
            "logging": {},
        }
        capabilities = {}
        for name, enabled in flags.items():
            if not enabled:
                continue
            if not serviceable.get(name, False):
                log.warning(f"Capability '{name}' enabled but not serviceable — not advertised")
                continue
            capabilities[name] = shapes[name]
        return capabilities

    # ── session ──────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def capabilities(self) -> Dict[str, Any]:
        return dict(self._capabilities)

    @property
    def client_info(self) -> Dict[str, Any]:
        return dict(self._client_info)

    def begin_shutdown(self):
        if self._state != SessionState.CLOSED:
            self._state = SessionState.SHUTTING_DOWN
            self._dispatcher.close()

    def mark_closed(self):
        self._state = SessionState.CLOSED

    # ── envelopes ────────────────────────────────────────────────

    async def handle(self, msg: Any) -> Optional[Dict[str, Any]]:
        """Process one decoded message; return the response envelope or None."""
        has_id = isinstance(msg, dict) and "id" in msg
        request_id = msg.get("id") if has_id else None
        method = msg.get("method", "") if isinstance(msg, dict) else ""

        try:
            msg_type = validate_message(msg)
        except ProtocolError as exc:
            log.warning(f"Invalid message: {exc.message}")
            if not has_id:
                return None
            return make_error(request_id, exc.code, exc.message, exc.data)

        if msg_type in ("response", "error"):
            log.debug(f"Ignoring client {msg_type} for id={request_id}")
            return None

        is_notification = msg_type == "notification"
        try:
            result = await self.route(msg_type, msg)
        except ProtocolError as exc:
            log.warning(f"{method}: {exc.message} (code={exc.code})")
            if is_notification:
                return None
            return make_error(request_id, exc.code, exc.message, exc.data)
        except Exception as exc:
            log.error(f"Unhandled error in {method}: {exc}", exc_info=True)
            if is_notification:
                return None
            return make_error(request_id, INTERNAL_ERROR, "Internal error", str(exc))

        if is_notification:
            return None
        return make_response(request_id, result if result is not None else {})

    def handle_malformed(self, frame: Malformed) -> Optional[Dict[str, Any]]:
        """Answer an undecodable frame with InvalidRequest when its id is known."""
        log.warning(f"Malformed frame: {frame.reason}")
        if frame.request_id is None:
            return None
        return make_error(frame.request_id, INVALID_REQUEST, "Invalid Request", frame.reason)

    # ── dispatch ─────────────────────────────────────────────────

    async def route(self, msg_type: str, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Route a validated message to its handler.

        Returns the result payload, or None for notifications.
        """
        method = msg.get("method", "")
        params = msg.get("params")
        if not isinstance(params, dict):
            params = {}

        entry = self._methods.get(method)
        if entry is None:
            if msg_type == "notification":
                log.debug(f"Ignoring unknown notification: {method}")
                return None
            raise ProtocolError(METHOD_NOT_FOUND, f"Method not found: {method}")

        handler, needs_ready = entry
        if needs_ready:
            self._require_ready(method)

        return await handler(params)

    def _require_ready(self, method: str):
        if self._state == SessionState.READY:
            return
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
            raise ProtocolError(INVALID_REQUEST, f"Server is shutting down; rejected {method}")
        raise ProtocolError(
            SERVER_NOT_INITIALIZED,
            "Server not initialized",
            f"{method} called before initialization completed (state={self._state.value})",
        )

    # ── handlers ─────────────────────────────────────────────────

    async def _handle_initialize(self, params: Dict) -> Dict[str, Any]:
        if self._state != SessionState.UNINITIALIZED:
            raise ProtocolError(INVALID_REQUEST, f"initialize not allowed in state {self._state.value}")

        self._client_info = params.get("clientInfo") or {}
        self._client_capabilities = params.get("capabilities") or {}
        self._state = SessionState.INITIALIZING
        log.info(
            f"Client initialize: {self._client_info.get('name', '?')} "
            f"protocol={params.get('protocolVersion', '?')}"
        )
        return initialize_result(
            server_name=self._server_name,
            server_version=self._server_version,
            protocol_version=self._protocol_version,
            capabilities=self.capabilities,
        )

    async def _handle_initialized(self, params: Dict) -> None:
        if self._state == SessionState.INITIALIZING:
            self._state = SessionState.READY
            log.info("Client initialization complete — session ready")
        else:
            log.warning(f"initialized received in state {self._state.value}; ignored")
        return None

    async def _handle_cancelled(self, params: Dict) -> None:
        # In-flight invocations always run to completion
        log.debug(f"Cancellation for request {params.get('requestId')} ignored")
        return None

    async def _handle_ping(self, params: Dict) -> Dict[str, Any]:
        return {
            "status": "ok",
            "serverTime": datetime.now(timezone.utc).isoformat(),
            "server": self._server_name,
            "version": self._server_version,
        }

    async def _handle_tools_list(self, params: Dict) -> Dict[str, Any]:
        tools = [d.to_listing() for d in self._dispatcher.registry.list_all()]
        return tools_list_result(tools)

    async def _handle_tools_call(self, params: Dict) -> Dict[str, Any]:
        name = params.get("name") or ""
        args = params.get("arguments")

        try:
            value = await self._dispatcher.invoke(name, args)
        except DispatchError as exc:
            return tool_result_content(
                [text_content(f"{exc.kind}: {exc.message}")],
                is_error=True,
                structured={"error": exc.to_dict()},
            )

        return tool_result_content([text_content(render_result(value))])

    async def _handle_resources_list(self, params: Dict) -> Dict[str, Any]:
        listed = await self._resources.list_available()
        return resources_list_result([d.to_listing() for d in listed])

    async def _handle_resources_read(self, params: Dict) -> Dict[str, Any]:
        uri = params.get("uri", "")
        if not uri:
            raise ProtocolError(INVALID_PARAMS, "Missing resource URI")

        try:
            item = await self._resources.read(uri)
        except ResourceNotFound as exc:
            raise ProtocolError(INVALID_PARAMS, exc.message, exc.data)
        except Exception as exc:
            log.error(f"Resource {uri} error: {exc}")
            raise ProtocolError(INTERNAL_ERROR, f"Resource error: {exc}")

        return resource_read_result([item])

    async def _handle_prompts_list(self, params: Dict) -> Dict[str, Any]:
        return prompts_list_result([p.to_listing() for p in self._prompts.list_all()])

    async def _handle_prompts_get(self, params: Dict) -> Dict[str, Any]:
        name = params.get("name", "")
        if not name:
            raise ProtocolError(INVALID_PARAMS, "Missing prompt name")
        return self._prompts.render(name, params.get("arguments"))

    async def _handle_set_level(self, params: Dict) -> Dict[str, Any]:
        try:
            set_level(params.get("level", ""))
        except ValueError as exc:
            raise ProtocolError(INVALID_PARAMS, str(exc))
        return {}
