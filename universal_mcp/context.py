"""Explicit server context — everything a tool handler may reach, passed in rather than imported"""

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import Config
from .dispatcher import Dispatcher
from .errors import ProviderUnavailable, StoreUnavailable
from .llm import TextGenerator
from .logger import get_logger
from .prompts import DEFAULT_PROMPTS, PromptCatalog
from .registry import ToolRegistry
from .resources import ResourceDescriptor, ResourceRegistry
from .store import DocumentStore

log = get_logger("context")


@dataclass
class ServerContext:
    registry: ToolRegistry = field(default_factory=ToolRegistry)
    resources: ResourceRegistry = field(default_factory=ResourceRegistry)
    prompts: Optional[PromptCatalog] = None
    store: Optional[DocumentStore] = None
    llm: Optional[TextGenerator] = None
    workspace_dir: Path = field(default_factory=lambda: Config.WORKSPACE_DIR)
    started_at: float = field(default_factory=time.time)
    dispatcher: Dispatcher = field(init=False)

    def __post_init__(self):
        self.dispatcher = Dispatcher(self.registry)

    @property
    def uptime_s(self) -> float:
        return time.time() - self.started_at

    def require_store(self) -> DocumentStore:
        if self.store is None or not self.store.connected:
            raise StoreUnavailable("No active database connection")
        return self.store

    def require_llm(self) -> TextGenerator:
        if self.llm is None or not self.llm.available:
            raise ProviderUnavailable("No text-generation provider is configured")
        return self.llm

    async def close(self):
        """Release collaborators and clear the catalog. Safe to call twice."""
        if self.store is not None:
            await self.store.close()
        if self.llm is not None:
            await self.llm.close()
        self.registry.clear()
        self.resources.clear()
        log.info("Server context closed")


def build_context() -> ServerContext:
    """Context wired from configuration; collaborators are not yet connected."""
    Config.ensure_dirs()
    Config.WORKSPACE_DIR.mkdir(parents=True, exist_ok=True)
    return ServerContext(
        resources=ResourceRegistry(base_dir=Config.RESOURCES_DIR, max_bytes=Config.MAX_RESOURCE_BYTES),
        prompts=PromptCatalog(DEFAULT_PROMPTS) if Config.ENABLE_PROMPTS else None,
        store=DocumentStore(),
        llm=TextGenerator(),
        workspace_dir=Config.WORKSPACE_DIR,
    )


def register_builtin_resources(ctx: ServerContext):
    """server://info and server://stats, rendered as JSON on every read."""

    def _info() -> str:
        return json.dumps({
            "name": Config.SERVER_NAME,
            "version": Config.SERVER_VERSION,
            "protocolVersion": Config.PROTOCOL_VERSION,
            "uptimeSeconds": round(ctx.uptime_s, 1),
            "capabilities": Config.capabilities(),
            "database": ctx.store.connection_info() if ctx.store else {"connected": False},
            "llmProviders": ctx.llm.available_providers() if ctx.llm else [],
            "tools": ctx.registry.count(),
        }, indent=2)

    def _stats() -> str:
        return json.dumps(ctx.dispatcher.stats(), indent=2)

    ctx.resources.register(ResourceDescriptor(
        uri="server://info",
        name="Server info",
        description="Server identity, capabilities and collaborator status",
        reader=_info,
        mime_type="application/json",
        category="server",
    ))
    ctx.resources.register(ResourceDescriptor(
        uri="server://stats",
        name="Server stats",
        description="Tool invocation counters",
        reader=_stats,
        mime_type="application/json",
        category="server",
    ))
