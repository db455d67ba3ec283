"""
Tool Registry — name → descriptor mapping

Descriptors are immutable. The mapping itself is copy-on-write: every
mutation builds a new dict and swaps the reference, so a concurrent lookup
or listing sees either the old or the new mapping, never a partial one.
Iteration order is insertion order; re-registering a name keeps its slot.
"""

import inspect
import threading
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from .errors import InvalidDescriptor
from .logger import get_logger
from .validation import schema_errors

log = get_logger("registry")


class FunctionHandler:
    """Adapts a plain function (sync or async) to the ``execute`` interface."""

    def __init__(self, fn: Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]):
        self._fn = fn

    async def execute(self, arguments: Dict[str, Any]) -> Any:
        result = self._fn(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self):
        return f"FunctionHandler({getattr(self._fn, '__name__', self._fn)!r})"


@dataclass(frozen=True)
class ToolDescriptor:
    """One invocable operation: metadata plus its handler."""
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Any
    category: str = "general"
    enabled: bool = True
    version: str = "1.0.0"

    def to_listing(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def info(self) -> Dict[str, Any]:
        return {
            **self.to_listing(),
            "category": self.category,
            "version": self.version,
            "enabled": self.enabled,
        }


def tool(name: str, description: str, input_schema: Dict[str, Any], fn: Callable,
         category: str = "general", enabled: bool = True) -> ToolDescriptor:
    """Build a descriptor around a plain function."""
    return ToolDescriptor(
        name=name,
        description=description,
        input_schema=input_schema,
        handler=FunctionHandler(fn),
        category=category,
        enabled=enabled,
    )


class ToolRegistry:
    """Process-wide catalog of tools, populated before the transport starts."""

    def __init__(self):
        self._tools: Dict[str, ToolDescriptor] = {}
        self._write_lock = threading.Lock()

    # ── registration ─────────────────────────────────────────────

    def register(self, descriptor: ToolDescriptor):
        name = descriptor.name
        if not isinstance(name, str) or not name.strip():
            raise InvalidDescriptor("Tool name must be a non-empty string")
        problems = schema_errors(descriptor.input_schema)
        if problems:
            raise InvalidDescriptor(f"Tool {name}: {'; '.join(problems)}", problems)
        if not callable(getattr(descriptor.handler, "execute", None)):
            raise InvalidDescriptor(f"Tool {name}: handler has no execute()")

        with self._write_lock:
            updated = dict(self._tools)
            replaced = name in updated
            updated[name] = descriptor
            self._tools = updated

        verb = "Replaced" if replaced else "Registered"
        state = "" if descriptor.enabled else " [disabled]"
        log.info(f"{verb} tool: {name} ({descriptor.category}){state}")

    def unregister(self, name: str):
        with self._write_lock:
            if name not in self._tools:
                return
            updated = dict(self._tools)
            del updated[name]
            self._tools = updated
        log.info(f"Unregistered tool: {name}")

    def set_enabled(self, name: str, enabled: bool) -> bool:
        """Swap in a copy of the descriptor with a new enabled flag."""
        with self._write_lock:
            current = self._tools.get(name)
            if current is None:
                return False
            updated = dict(self._tools)
            updated[name] = replace(current, enabled=enabled)
            self._tools = updated
        log.info(f"Tool {name} {'enabled' if enabled else 'disabled'}")
        return True

    def clear(self):
        with self._write_lock:
            count = len(self._tools)
            self._tools = {}
        log.info(f"Registry cleared: {count} tools removed")

    # ── queries ──────────────────────────────────────────────────

    def lookup(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def list_all(self) -> List[ToolDescriptor]:
        return [d for d in self._tools.values() if d.enabled]

    def count(self) -> int:
        return sum(1 for d in self._tools.values() if d.enabled)

    def total_count(self) -> int:
        return len(self._tools)

    def categories(self) -> Set[str]:
        return {d.category for d in self._tools.values() if d.enabled}

    def names_by_category(self, category: str) -> List[str]:
        return [
            d.name for d in self._tools.values()
            if d.enabled and d.category == category
        ]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return self.count()
