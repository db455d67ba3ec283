"""
Analysis Tools — LLM-assisted analysis of stored data

Tools:
  analyze_data   — Answer a question about documents in a collection
  smart_query    — Generate (and optionally run) a query from natural language
  data_insights  — Automatic insights from a collection sample

Generated queries are best effort: results carry ``verified: false`` and
smart_query only executes when the caller passes ``execute: true``.
"""

import json
import re
from typing import Any, Dict, List, Optional

from ..llm import Provider
from ..logger import get_logger

log = get_logger("tools.analysis")

CATEGORY = "analysis"

_PROVIDER = {
    "type": "string",
    "description": "LLM provider to use",
    "enum": [p.value for p in Provider],
}

SMART_QUERY_LIMIT = 100

# ── Tool definitions ─────────────────────────────────────────────────────────

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "analyze_data",
        "description": "Analyze documents from a collection with an LLM and answer a question about them",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": {"type": "string", "description": "Collection to analyze"},
                "question": {"type": "string", "description": "Question about the data"},
                "query": {"type": "object", "description": "Filter selecting the documents"},
                "provider": _PROVIDER,
                "limit": {
                    "type": "integer",
                    "description": "Documents to analyze (default: 100)",
                    "minimum": 1,
                    "maximum": 500,
                },
            },
            "required": ["collection", "question"],
        },
    },
    {
        "name": "smart_query",
        "description": "Build a MongoDB query from natural language with an LLM; runs it only when execute is true",
        "inputSchema": {
            "type": "object",
            "properties": {
                "request": {"type": "string", "description": "What you want to find"},
                "collection": {"type": "string", "description": "Collection name"},
                "provider": _PROVIDER,
                "execute": {
                    "type": "boolean",
                    "description": "Run the generated query (default: false)",
                },
            },
            "required": ["request", "collection"],
        },
    },
    {
        "name": "data_insights",
        "description": "Get automatic insights (patterns, distributions, anomalies, data quality) for a collection",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": {"type": "string", "description": "Collection name"},
                "provider": _PROVIDER,
                "sampleSize": {
                    "type": "integer",
                    "description": "Documents to sample (default: 100)",
                    "minimum": 10,
                    "maximum": 500,
                },
            },
            "required": ["collection"],
        },
    },
]


# ── Query parsing ────────────────────────────────────────────────────────────

_BARE_KEY = re.compile(r'([{,]\s*)(\$?[A-Za-z_][\w.]*)\s*:')
_AGGREGATE = re.compile(r"aggregate\(\s*(\[.*\])\s*\)", re.DOTALL)
_COUNT = re.compile(r"countDocuments\(\s*(.*?)\s*\)\s*;?\s*$", re.DOTALL)
_FIND = re.compile(r"find\(\s*(.*?)\s*\)(?:\.|\s*;?\s*$)", re.DOTALL)


def parse_shell_json(text: str) -> Any:
    """Parse a mongo-shell literal (bare keys, single quotes) as JSON."""
    text = text.strip()
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        pass
    relaxed = _BARE_KEY.sub(r'\1"\2":', text.replace("'", '"'))
    return json.loads(relaxed)


def parse_generated_query(code: str) -> Optional[Dict[str, Any]]:
    """
    Recognize aggregate / countDocuments / find calls in generated code.

    Returns {"operation": ..., "argument": ...} or None when nothing matches.
    Raises ValueError when an operation matches but its argument does not parse.
    """
    match = _AGGREGATE.search(code)
    if match:
        return {"operation": "aggregate", "argument": parse_shell_json(match.group(1))}
    match = _COUNT.search(code)
    if match:
        return {"operation": "count", "argument": parse_shell_json(match.group(1))}
    match = _FIND.search(code)
    if match:
        # find(filter, projection): only the filter is used
        argument = match.group(1)
        parsed = parse_shell_json(f"[{argument}]") if argument else []
        return {"operation": "find", "argument": parsed[0] if parsed else {}}
    return None


# ── Implementations ──────────────────────────────────────────────────────────

async def _analyze_data(ctx, args: Dict) -> Dict:
    store = ctx.require_store()
    llm = ctx.require_llm()
    query = args.get("query") or {}
    limit = int(args.get("limit", 100))

    data = await store.find(args["collection"], query, limit=limit)
    if not data:
        return {
            "collection": args["collection"],
            "question": args["question"],
            "analysis": "No data found to analyze.",
            "dataCount": 0,
        }

    analysis = await llm.analyze_data(data, args["question"], provider=args.get("provider"))
    return {
        "collection": args["collection"],
        "query": query,
        "question": args["question"],
        "provider": args.get("provider") or llm.default_provider,
        "dataCount": len(data),
        "analysis": analysis,
    }


async def _smart_query(ctx, args: Dict) -> Dict:
    store = ctx.require_store()
    llm = ctx.require_llm()
    collection = args["collection"]
    execute = bool(args.get("execute", False))

    schema = await store.describe_schema(collection)
    code = await llm.generate_query(args["request"], schema, provider=args.get("provider"))

    results = None
    error = None
    if execute:
        try:
            parsed = parse_generated_query(code)
        except ValueError as exc:
            parsed = None
            error = f"Could not parse generated query: {exc}"
        else:
            if parsed is None:
                error = "Generated code is not a find, aggregate or countDocuments call"

        if parsed is not None:
            op, argument = parsed["operation"], parsed["argument"]
            log.info(f"smart_query executing {op} on {collection}")
            if op == "aggregate":
                results = await store.aggregate(collection, argument)
            elif op == "count":
                results = await store.count_documents(collection, argument)
            else:
                results = await store.find(collection, argument, limit=SMART_QUERY_LIMIT)

    if isinstance(results, list):
        result_count = len(results)
    elif isinstance(results, int):
        result_count = 1
    else:
        result_count = 0

    return {
        "request": args["request"],
        "collection": collection,
        "provider": args.get("provider") or llm.default_provider,
        "generatedQuery": code,
        "verified": False,
        "schema": schema,
        "executed": execute and error is None,
        "results": results,
        "resultCount": result_count,
        "error": error,
    }


INSIGHTS_PROMPT = """Analyze this data and provide useful insights:

COLLECTION: {collection}
TOTAL DOCUMENTS: {total}
SAMPLE ANALYZED: {sampled}
SCHEMA: {schema}

SAMPLE DATA:
{sample}

Provide insights on:
1. Patterns in the data
2. Interesting distributions
3. Possible anomalies
4. Recommended queries
5. Data quality
"""


async def _data_insights(ctx, args: Dict) -> Dict:
    store = ctx.require_store()
    llm = ctx.require_llm()
    collection = args["collection"]
    sample_size = int(args.get("sampleSize", 100))

    data = await store.find(collection, {}, limit=sample_size)
    if not data:
        return {
            "collection": collection,
            "insights": "The collection has no data to analyze.",
            "dataCount": 0,
        }

    total = await store.count_documents(collection)
    schema = await store.describe_schema(collection)
    prompt = INSIGHTS_PROMPT.format(
        collection=collection,
        total=total,
        sampled=len(data),
        schema=json.dumps(schema, indent=2, default=str),
        sample=json.dumps(data[:10], indent=2, default=str),
    )
    insights = await llm.generate(prompt, provider=args.get("provider"), temperature=0.3)

    return {
        "collection": collection,
        "totalDocuments": total,
        "sampleSize": len(data),
        "schema": schema,
        "insights": insights,
        "provider": args.get("provider") or llm.default_provider,
    }


HANDLERS = {
    "analyze_data": _analyze_data,
    "smart_query": _smart_query,
    "data_insights": _data_insights,
}
