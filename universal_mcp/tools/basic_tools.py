"""
Basic Tools — server-level utilities with no collaborators

Tools:
  echo          — Echo a message back
  get_time      — Current time (ISO-8601, UTC)
  system_info   — Server, runtime, database and provider summary
  server_stats  — Dispatcher counters and tools by category
"""

import platform
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..config import Config
from ..logger import get_logger

log = get_logger("tools.basic")

CATEGORY = "basic"

# ── Tool definitions ─────────────────────────────────────────────────────────

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "echo",
        "description": "Echo the provided message back",
        "inputSchema": {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to echo"},
            },
            "required": ["message"],
        },
    },
    {
        "name": "get_time",
        "description": "Get the current server time as an ISO-8601 UTC timestamp",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "system_info",
        "description": "Get information about the MCP server: uptime, runtime, database connection, LLM providers and tool count",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "server_stats",
        "description": "Get tool invocation statistics: calls, errors, rejections, success rate and tools by category",
        "inputSchema": {"type": "object", "properties": {}},
    },
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Implementations ──────────────────────────────────────────────────────────

async def _echo(ctx, args: Dict) -> str:
    return f"Echo: {args['message']}"


async def _get_time(ctx, args: Dict) -> str:
    return _now().isoformat()


async def _system_info(ctx, args: Dict) -> Dict:
    return {
        "server": Config.SERVER_NAME,
        "version": Config.SERVER_VERSION,
        "protocolVersion": Config.PROTOCOL_VERSION,
        "uptimeSeconds": round(ctx.uptime_s, 1),
        "python": sys.version.split()[0],
        "platform": platform.platform(),
        "database": ctx.store.connection_info() if ctx.store else {"connected": False},
        "llmProviders": ctx.llm.available_providers() if ctx.llm else [],
        "toolsCount": ctx.registry.count(),
    }


async def _server_stats(ctx, args: Dict) -> Dict:
    stats = ctx.dispatcher.stats()
    stats["uptimeSeconds"] = round(ctx.uptime_s, 1)
    stats["resources"] = ctx.resources.stats()
    return stats


HANDLERS = {
    "echo": _echo,
    "get_time": _get_time,
    "system_info": _system_info,
    "server_stats": _server_stats,
}
