"""
MongoDB Document Store — async access for the database and analysis tools

Uses pymongo's native asyncio client (AsyncMongoClient). One client per
process; the driver pools connections, so calls need no extra locking.

Every public operation:
  - raises StoreUnavailable when no connection is active
  - wraps driver exceptions into StoreUnavailable with the original message
  - returns plain JSON-safe values (ObjectId → str, datetime → ISO-8601)
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import Decimal128, ObjectId
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from .config import Config
from .errors import StoreUnavailable
from .logger import get_logger

log = get_logger("store")

_CREDENTIALS = re.compile(r"//[^/@]*:[^/@]*@")


def _normalize(value: Any) -> Any:
    """Convert BSON-specific values into JSON-safe ones, recursively."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal128):
        return str(value)
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def _coerce_filter(query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Turn a 24-hex ``_id`` string into an ObjectId so lookups by id work."""
    query = dict(query or {})
    doc_id = query.get("_id")
    if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
        query["_id"] = ObjectId(doc_id)
    return query


def _sort_spec(sort: Optional[Dict[str, int]]) -> Optional[List[tuple]]:
    if not sort:
        return None
    return [(field, int(direction)) for field, direction in sort.items()]


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, Decimal128)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, ObjectId):
        return "objectId"
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def mask_credentials(uri: str) -> str:
    return _CREDENTIALS.sub("//***:***@", uri)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStore:
    """
    MongoDB database with a shared async client.

    Usage:
        store = DocumentStore()
        connected = await store.connect()
        if not connected:
            # database tools report StoreUnavailable
            ...
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        client: Optional[AsyncMongoClient] = None,
    ):
        self._uri = uri or Config.MONGODB_URI
        self._db_name = db_name or Config.MONGODB_DB_NAME
        self._timeout_ms = timeout_ms or Config.MONGODB_TIMEOUT_MS
        self._client = client
        self._db = client[self._db_name] if client is not None else None
        self._connected = client is not None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def db_name(self) -> str:
        return self._db_name

    async def connect(self) -> bool:
        """
        Connect and ping the server.
        Returns True if connected, False if unavailable.
        """
        try:
            if self._client is None:
                self._client = AsyncMongoClient(
                    self._uri,
                    serverSelectionTimeoutMS=self._timeout_ms,
                    tz_aware=True,
                )
            await self._client.admin.command("ping")
            self._db = self._client[self._db_name]
            self._connected = True
            log.info(f"MongoDB connected: {mask_credentials(self._uri)} db={self._db_name}")
            return True
        except PyMongoError as exc:
            log.warning(f"MongoDB unavailable: {exc}")
            self._connected = False
            return False

    async def close(self):
        if self._client is not None:
            try:
                await self._client.close()
            except PyMongoError as exc:
                log.error(f"Error closing MongoDB client: {exc}")
            self._client = None
            self._db = None
        if self._connected:
            log.info("MongoDB connection closed")
        self._connected = False

    def _collection(self, name: str):
        if not self._connected or self._db is None:
            raise StoreUnavailable("No active database connection")
        return self._db[name]

    # ── reads ────────────────────────────────────────────────────

    async def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        sort: Optional[Dict[str, int]] = None,
        projection: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        coll = self._collection(collection)
        try:
            cursor = coll.find(_coerce_filter(query), projection)
            spec = _sort_spec(sort)
            if spec:
                cursor = cursor.sort(spec)
            if limit:
                cursor = cursor.limit(limit)
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise StoreUnavailable(f"find on {collection} failed: {exc}") from exc

        log.info(f"find {collection}: {len(docs)} document(s)")
        return _normalize(docs)

    async def find_one(
        self, collection: str, query: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        coll = self._collection(collection)
        try:
            doc = await coll.find_one(_coerce_filter(query))
        except PyMongoError as exc:
            raise StoreUnavailable(f"find_one on {collection} failed: {exc}") from exc
        return _normalize(doc) if doc is not None else None

    async def count_documents(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        coll = self._collection(collection)
        try:
            return await coll.count_documents(_coerce_filter(query))
        except PyMongoError as exc:
            raise StoreUnavailable(f"count on {collection} failed: {exc}") from exc

    async def aggregate(self, collection: str, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        coll = self._collection(collection)
        try:
            cursor = await coll.aggregate(pipeline)
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise StoreUnavailable(f"aggregate on {collection} failed: {exc}") from exc

        log.info(f"aggregate {collection}: {len(docs)} result(s)")
        return _normalize(docs)

    # ── writes ───────────────────────────────────────────────────

    async def insert_one(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        coll = self._collection(collection)
        now = _now()
        doc = {**document, "createdAt": now, "updatedAt": now}
        try:
            result = await coll.insert_one(doc)
        except PyMongoError as exc:
            raise StoreUnavailable(f"insert into {collection} failed: {exc}") from exc

        log.info(f"Inserted into {collection}: {result.inserted_id}")
        return {"insertedId": str(result.inserted_id), "insertedCount": 1}

    async def insert_many(self, collection: str, documents: List[Dict[str, Any]]) -> Dict[str, Any]:
        coll = self._collection(collection)
        now = _now()
        docs = [{**d, "createdAt": now, "updatedAt": now} for d in documents]
        try:
            result = await coll.insert_many(docs)
        except PyMongoError as exc:
            raise StoreUnavailable(f"insert into {collection} failed: {exc}") from exc

        log.info(f"Inserted {len(result.inserted_ids)} document(s) into {collection}")
        return {
            "insertedIds": [str(i) for i in result.inserted_ids],
            "insertedCount": len(result.inserted_ids),
        }

    @staticmethod
    def _stamp_update(update: Dict[str, Any]) -> Dict[str, Any]:
        stamped = dict(update)
        stamped["$set"] = {**(update.get("$set") or {}), "updatedAt": _now()}
        return stamped

    async def update_one(
        self, collection: str, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False,
    ) -> Dict[str, Any]:
        return await self._update(collection, query, update, upsert, many=False)

    async def update_many(
        self, collection: str, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False,
    ) -> Dict[str, Any]:
        return await self._update(collection, query, update, upsert, many=True)

    async def _update(self, collection, query, update, upsert, many):
        coll = self._collection(collection)
        method = coll.update_many if many else coll.update_one
        try:
            result = await method(_coerce_filter(query), self._stamp_update(update), upsert=upsert)
        except PyMongoError as exc:
            raise StoreUnavailable(f"update on {collection} failed: {exc}") from exc

        log.info(f"Updated {collection}: {result.modified_count} modified")
        return {
            "matchedCount": result.matched_count,
            "modifiedCount": result.modified_count,
            "upsertedId": str(result.upserted_id) if result.upserted_id is not None else None,
        }

    async def delete_one(self, collection: str, query: Dict[str, Any]) -> Dict[str, Any]:
        return await self._delete(collection, query, many=False)

    async def delete_many(self, collection: str, query: Dict[str, Any]) -> Dict[str, Any]:
        return await self._delete(collection, query, many=True)

    async def _delete(self, collection, query, many):
        coll = self._collection(collection)
        method = coll.delete_many if many else coll.delete_one
        try:
            result = await method(_coerce_filter(query))
        except PyMongoError as exc:
            raise StoreUnavailable(f"delete on {collection} failed: {exc}") from exc

        log.info(f"Deleted from {collection}: {result.deleted_count}")
        return {"deletedCount": result.deleted_count}

    # ── introspection ────────────────────────────────────────────

    async def describe_schema(self, collection: str, sample_size: int = 100) -> Dict[str, Any]:
        """Infer field names and value types from a random sample."""
        coll = self._collection(collection)
        try:
            cursor = await coll.aggregate([{"$sample": {"size": sample_size}}])
            sample = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise StoreUnavailable(f"schema sample of {collection} failed: {exc}") from exc

        seen: Dict[str, Dict[str, Any]] = {}
        for doc in sample:
            for key, value in doc.items():
                entry = seen.setdefault(key, {"types": set(), "count": 0})
                entry["types"].add(_type_name(value))
                entry["count"] += 1

        fields = [
            {
                "name": key,
                "types": sorted(entry["types"]),
                "coverage": round(entry["count"] / len(sample), 3),
            }
            for key, entry in seen.items()
        ]
        log.info(f"Schema for {collection}: {len(fields)} field(s) from {len(sample)} sample(s)")
        return {"collection": collection, "sampleCount": len(sample), "fields": fields}

    async def list_collections(self) -> List[str]:
        if not self._connected or self._db is None:
            raise StoreUnavailable("No active database connection")
        try:
            names = await self._db.list_collection_names()
        except PyMongoError as exc:
            raise StoreUnavailable(f"list collections failed: {exc}") from exc
        return sorted(names)

    async def stats(self) -> Dict[str, Any]:
        if not self._connected or self._db is None:
            raise StoreUnavailable("No active database connection")
        try:
            raw = await self._db.command("dbstats")
        except PyMongoError as exc:
            raise StoreUnavailable(f"dbstats failed: {exc}") from exc
        return _normalize(dict(raw))

    def connection_info(self) -> Dict[str, Any]:
        return {
            "connected": self._connected,
            "database": self._db_name,
            "connectionString": mask_credentials(self._uri),
        }
