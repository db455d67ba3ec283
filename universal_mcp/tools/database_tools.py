"""
Database Tools — MongoDB operations through the document store

Tools:
  db_list_collections  — Collection names
  db_get_schema        — Field names and types from a random sample
  db_find              — Filtered, sorted, limited find
  db_aggregate         — Aggregation pipeline
  db_insert            — Insert one document
  db_update            — Update one or many documents
  db_delete            — Delete one or many documents
  db_count             — Count matching documents
  db_stats             — Database statistics
"""

from typing import Any, Dict, List

from ..logger import get_logger

log = get_logger("tools.database")

CATEGORY = "database"

_COLLECTION = {"type": "string", "description": "Collection name"}

# ── Tool definitions ─────────────────────────────────────────────────────────

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "db_list_collections",
        "description": "List all collections in the database",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "db_get_schema",
        "description": "Infer the schema of a collection from a random sample of documents",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": _COLLECTION,
                "sampleSize": {
                    "type": "integer",
                    "description": "Documents to sample (default: 100)",
                    "minimum": 1,
                    "maximum": 1000,
                },
            },
            "required": ["collection"],
        },
    },
    {
        "name": "db_find",
        "description": "Run a find query against a collection",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": _COLLECTION,
                "query": {"type": "object", "description": "MongoDB filter"},
                "limit": {
                    "type": "integer",
                    "description": "Maximum results",
                    "minimum": 1,
                    "maximum": 1000,
                },
                "sort": {"type": "object", "description": "Sort spec, e.g. {\"createdAt\": -1}"},
            },
            "required": ["collection"],
        },
    },
    {
        "name": "db_aggregate",
        "description": "Run an aggregation pipeline against a collection",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": _COLLECTION,
                "pipeline": {
                    "type": "array",
                    "description": "Aggregation pipeline stages",
                    "items": {"type": "object"},
                },
            },
            "required": ["collection", "pipeline"],
        },
    },
    {
        "name": "db_insert",
        "description": "Insert a document into a collection (createdAt/updatedAt are added)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": _COLLECTION,
                "document": {"type": "object", "description": "Document to insert"},
            },
            "required": ["collection", "document"],
        },
    },
    {
        "name": "db_update",
        "description": "Update documents in a collection (updatedAt is refreshed)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": _COLLECTION,
                "filter": {"type": "object", "description": "Filter selecting documents"},
                "update": {"type": "object", "description": "Update operators, e.g. {\"$set\": {...}}"},
                "multiple": {"type": "boolean", "description": "Update every match (default: false)"},
            },
            "required": ["collection", "filter", "update"],
        },
    },
    {
        "name": "db_delete",
        "description": "Delete documents from a collection",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": _COLLECTION,
                "filter": {"type": "object", "description": "Filter selecting documents to delete"},
                "multiple": {"type": "boolean", "description": "Delete every match (default: false)"},
            },
            "required": ["collection", "filter"],
        },
    },
    {
        "name": "db_count",
        "description": "Count documents in a collection",
        "inputSchema": {
            "type": "object",
            "properties": {
                "collection": _COLLECTION,
                "filter": {"type": "object", "description": "Optional filter"},
            },
            "required": ["collection"],
        },
    },
    {
        "name": "db_stats",
        "description": "Get database statistics",
        "inputSchema": {"type": "object", "properties": {}},
    },
]


# ── Implementations ──────────────────────────────────────────────────────────

async def _db_list_collections(ctx, args: Dict) -> Dict:
    collections = await ctx.require_store().list_collections()
    return {"collections": collections, "count": len(collections)}


async def _db_get_schema(ctx, args: Dict) -> Dict:
    sample_size = int(args.get("sampleSize", 100))
    return await ctx.require_store().describe_schema(args["collection"], sample_size)


async def _db_find(ctx, args: Dict) -> Dict:
    query = args.get("query") or {}
    results = await ctx.require_store().find(
        args["collection"],
        query,
        limit=int(args["limit"]) if "limit" in args else None,
        sort=args.get("sort"),
    )
    return {
        "collection": args["collection"],
        "query": query,
        "results": results,
        "count": len(results),
    }


async def _db_aggregate(ctx, args: Dict) -> Dict:
    results = await ctx.require_store().aggregate(args["collection"], args["pipeline"])
    return {
        "collection": args["collection"],
        "pipeline": args["pipeline"],
        "results": results,
        "count": len(results),
    }


async def _db_insert(ctx, args: Dict) -> Dict:
    result = await ctx.require_store().insert_one(args["collection"], args["document"])
    return {"collection": args["collection"], **result}


async def _db_update(ctx, args: Dict) -> Dict:
    store = ctx.require_store()
    multiple = bool(args.get("multiple", False))
    update = store.update_many if multiple else store.update_one
    result = await update(args["collection"], args["filter"], args["update"])
    return {
        "collection": args["collection"],
        "filter": args["filter"],
        "multiple": multiple,
        **result,
    }


async def _db_delete(ctx, args: Dict) -> Dict:
    store = ctx.require_store()
    multiple = bool(args.get("multiple", False))
    delete = store.delete_many if multiple else store.delete_one
    result = await delete(args["collection"], args["filter"])
    return {
        "collection": args["collection"],
        "filter": args["filter"],
        "multiple": multiple,
        **result,
    }


async def _db_count(ctx, args: Dict) -> Dict:
    query = args.get("filter") or {}
    count = await ctx.require_store().count_documents(args["collection"], query)
    return {"collection": args["collection"], "filter": query, "count": count}


async def _db_stats(ctx, args: Dict) -> Dict:
    return await ctx.require_store().stats()


HANDLERS = {
    "db_list_collections": _db_list_collections,
    "db_get_schema": _db_get_schema,
    "db_find": _db_find,
    "db_aggregate": _db_aggregate,
    "db_insert": _db_insert,
    "db_update": _db_update,
    "db_delete": _db_delete,
    "db_count": _db_count,
    "db_stats": _db_stats,
}
