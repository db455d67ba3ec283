#!/usr/bin/env python3
"""
Entry point: python -m universal_mcp

Connects the document store, initializes text-generation providers, loads
the tool catalog and serves MCP over stdio until EOF. Exits with status 1
when neither the store nor any provider is available.
"""

import asyncio
import sys

from .context import build_context, register_builtin_resources
from .logger import get_logger
from .server import MCPServer
from .tools import load_tools

log = get_logger("main")


async def main() -> int:
    ctx = build_context()

    store_ok = await ctx.store.connect()
    llm_ok = ctx.llm.available
    if not store_ok and not llm_ok:
        log.error("No document store and no text-generation provider available — exiting")
        await ctx.close()
        return 1
    if not store_ok:
        log.warning("Document store unavailable — database tools will report StoreUnavailable")
    if not llm_ok:
        log.warning("No text-generation provider configured — LLM tools will report ProviderUnavailable")

    register_builtin_resources(ctx)
    count = load_tools(ctx)
    log.info(f"{count} tools registered")

    server = MCPServer(ctx)
    await server.run()
    return 0


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
