"""
Tool catalog — built-in tool modules

Modules:
  basic_tools       — echo, time, system info, dispatcher stats
  llm_tools         — text generation and query generation
  database_tools    — MongoDB CRUD, aggregation and introspection
  analysis_tools    — LLM-assisted data analysis
  filesystem_tools  — workspace-confined file operations

Each module exposes CATEGORY, TOOLS (MCP tool definitions) and HANDLERS
(name → ``async fn(ctx, args)``). Handlers receive the ServerContext
explicitly; they raise on failure and the dispatcher wraps the error.
"""

import functools
import importlib
from typing import Iterable, Optional

from ..config import Config
from ..context import ServerContext
from ..errors import InvalidDescriptor
from ..logger import get_logger
from ..registry import FunctionHandler, ToolDescriptor

log = get_logger("tools")

TOOL_MODULES = [
    "universal_mcp.tools.basic_tools",
    "universal_mcp.tools.llm_tools",
    "universal_mcp.tools.database_tools",
    "universal_mcp.tools.analysis_tools",
    "universal_mcp.tools.filesystem_tools",
]


def descriptors_for(module, ctx: ServerContext, disabled: Iterable[str] = ()):
    """Yield one ToolDescriptor per tool definition in ``module``."""
    disabled = set(disabled)
    category = getattr(module, "CATEGORY", "general")
    handlers = getattr(module, "HANDLERS", {})
    for definition in getattr(module, "TOOLS", []):
        name = definition.get("name", "")
        fn = handlers.get(name)
        if fn is None:
            log.warning(f"{module.__name__}: no handler for {name!r}")
            continue
        yield ToolDescriptor(
            name=name,
            description=definition.get("description", ""),
            input_schema=definition.get("inputSchema", {"type": "object", "properties": {}}),
            handler=FunctionHandler(functools.partial(fn, ctx)),
            category=category,
            enabled=name not in disabled,
        )


def load_tools(ctx: ServerContext, modules: Optional[Iterable[str]] = None,
               disabled: Optional[Iterable[str]] = None) -> int:
    """Dynamically load tool modules and register their tools. Returns the count registered."""
    disabled = Config.DISABLED_TOOLS if disabled is None else disabled
    registered = 0
    for module_path in modules or TOOL_MODULES:
        try:
            mod = importlib.import_module(module_path)
        except ImportError as exc:
            log.warning(f"Tool module not available: {module_path} ({exc})")
            continue

        loaded = 0
        for descriptor in descriptors_for(mod, ctx, disabled):
            try:
                ctx.registry.register(descriptor)
            except InvalidDescriptor as exc:
                log.error(f"Skipping tool {descriptor.name!r}: {exc.message}")
                continue
            loaded += 1
        log.info(f"Loaded {loaded} tools from {module_path}")
        registered += loaded
    return registered
