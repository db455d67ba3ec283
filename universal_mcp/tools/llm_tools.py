"""
LLM Tools — text generation through the configured providers

Tools:
  llm_generate    — Generate text with one provider
  llm_providers   — Available providers and their models
  generate_query  — Natural language → MongoDB query (unverified)
"""

import time
from typing import Any, Dict, List

from ..llm import Provider
from ..logger import get_logger

log = get_logger("tools.llm")

CATEGORY = "llm"

PROVIDER_ENUM = [p.value for p in Provider]

# ── Tool definitions ─────────────────────────────────────────────────────────

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "llm_generate",
        "description": "Generate text with a specific LLM provider",
        "inputSchema": {
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": "Prompt text"},
                "provider": {
                    "type": "string",
                    "description": "LLM provider (default: the server's default provider)",
                    "enum": PROVIDER_ENUM,
                },
                "systemPrompt": {"type": "string", "description": "Optional system instruction"},
                "temperature": {
                    "type": "number",
                    "description": "Sampling temperature (0.0-2.0)",
                    "minimum": 0.0,
                    "maximum": 2.0,
                },
                "maxTokens": {
                    "type": "integer",
                    "description": "Maximum tokens to generate (default: 1000)",
                    "minimum": 1,
                    "maximum": 8000,
                },
            },
            "required": ["prompt"],
        },
    },
    {
        "name": "llm_providers",
        "description": "List the available LLM providers with their models",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "generate_query",
        "description": "Generate a MongoDB query from a natural-language request. The query is not executed or verified.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Natural-language request"},
                "collection": {"type": "string", "description": "Collection name"},
                "provider": {
                    "type": "string",
                    "description": "LLM provider to use",
                    "enum": PROVIDER_ENUM,
                },
            },
            "required": ["query", "collection"],
        },
    },
]


# ── Implementations ──────────────────────────────────────────────────────────

async def _llm_generate(ctx, args: Dict) -> Dict:
    llm = ctx.require_llm()
    options = {
        "temperature": args.get("temperature", 0.7),
        "maxTokens": int(args.get("maxTokens", 1000)),
    }

    start = time.time()
    text = await llm.generate(
        args["prompt"],
        provider=args.get("provider"),
        system_prompt=args.get("systemPrompt"),
        temperature=options["temperature"],
        max_tokens=options["maxTokens"],
    )
    duration_ms = int((time.time() - start) * 1000)

    return {
        "provider": args.get("provider") or llm.default_provider,
        "prompt": args["prompt"],
        "response": text,
        "options": options,
        "durationMs": duration_ms,
    }


async def _llm_providers(ctx, args: Dict) -> Dict:
    if ctx.llm is None:
        return {"available": [], "details": {}}
    providers = ctx.llm.available_providers()
    return {
        "available": providers,
        "default": ctx.llm.default_provider,
        "details": {p: ctx.llm.provider_info(p) for p in providers},
    }


async def _generate_query(ctx, args: Dict) -> Dict:
    llm = ctx.require_llm()
    store = ctx.require_store()

    schema = await store.describe_schema(args["collection"])
    generated = await llm.generate_query(args["query"], schema, provider=args.get("provider"))

    return {
        "naturalLanguage": args["query"],
        "collection": args["collection"],
        "generatedQuery": generated,
        "verified": False,
        "schema": schema,
        "provider": args.get("provider") or llm.default_provider,
    }


HANDLERS = {
    "llm_generate": _llm_generate,
    "llm_providers": _llm_providers,
    "generate_query": _generate_query,
}
