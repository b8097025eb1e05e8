"""
Remote Data Gateway

Table-style CRUD and named procedures over the MongoDB database. Services
only ever talk to storage through a `DataGateway`, which hands back plain
dicts (with `_id` rewritten to a string `id`) and reports every storage
failure as a `RemoteCallError`.
"""
import logging
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

import database
from database import now_utc, to_str_id
from errors import NotFoundError, RemoteCallError
from procedures import DEFAULT_PROCEDURES

logger = logging.getLogger(__name__)

_NO_MATCH = object()


def remote_call(fn):
    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except (PyMongoError, InvalidId) as e:
            logger.error("Gateway %s failed: %s", fn.__name__, e)
            raise RemoteCallError(str(e)) from e
    return wrapper


def _query(filters: Optional[Dict[str, Any]]):
    """Translate gateway filters to a Mongo query; `_NO_MATCH` if an id is malformed."""
    q: Dict[str, Any] = {}
    for key, value in (filters or {}).items():
        if key == "id":
            key = "_id"
            if isinstance(value, (list, tuple)):
                ids = [ObjectId(v) for v in value if ObjectId.is_valid(v)]
                value = ids
            elif ObjectId.is_valid(value):
                value = ObjectId(value)
            else:
                return _NO_MATCH
        if isinstance(value, (list, tuple)):
            value = {"$in": list(value)}
        q[key] = value
    return q


class DataGateway:
    def __init__(self, db, procedures: Optional[Dict[str, Callable]] = None):
        self.db = db
        self.procedures = dict(DEFAULT_PROCEDURES if procedures is None else procedures)

    @remote_call
    def select(self, table: str, filters: Optional[Dict[str, Any]] = None,
               sort: Optional[Sequence[Tuple[str, int]]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        q = _query(filters)
        if q is _NO_MATCH:
            return []
        cursor = self.db[table].find(q)
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return [to_str_id(doc) for doc in cursor]

    @remote_call
    def select_one(self, table: str, filters: Dict[str, Any]) -> Dict[str, Any]:
        q = _query(filters)
        doc = None if q is _NO_MATCH else self.db[table].find_one(q)
        if doc is None:
            raise NotFoundError(f"No {table} row matches {filters}")
        return to_str_id(doc)

    @remote_call
    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        doc = {k: v for k, v in row.items() if k != "id"}
        doc.setdefault("created_at", now_utc())
        res = self.db[table].insert_one(doc)
        doc["_id"] = res.inserted_id
        return to_str_id(doc)

    @remote_call
    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        docs = []
        for row in rows:
            doc = {k: v for k, v in row.items() if k != "id"}
            doc.setdefault("created_at", now_utc())
            docs.append(doc)
        res = self.db[table].insert_many(docs)
        for doc, _id in zip(docs, res.inserted_ids):
            doc["_id"] = _id
        return [to_str_id(d) for d in docs]

    @remote_call
    def update(self, table: str, filters: Dict[str, Any], values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        q = _query(filters)
        if q is _NO_MATCH:
            return None
        self.db[table].update_many(q, {"$set": {**values, "updated_at": now_utc()}})
        return to_str_id(self.db[table].find_one(q))

    @remote_call
    def upsert(self, table: str, keys: Dict[str, Any], values: Dict[str, Any],
               on_insert: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        change: Dict[str, Any] = {"$set": {**values, "updated_at": now_utc()}}
        if on_insert:
            change["$setOnInsert"] = on_insert
        self.db[table].update_one(keys, change, upsert=True)
        return to_str_id(self.db[table].find_one(keys))

    @remote_call
    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        q = _query(filters)
        if q is _NO_MATCH:
            return 0
        return self.db[table].delete_many(q).deleted_count

    @remote_call
    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        q = _query(filters)
        if q is _NO_MATCH:
            return 0
        return self.db[table].count_documents(q)

    @remote_call
    def rpc(self, name: str, **params):
        proc = self.procedures.get(name)
        if proc is None:
            raise RemoteCallError(f"Unknown procedure: {name}")
        return proc(self.db, **params)


_gateway: Optional[DataGateway] = None


def get_gateway() -> DataGateway:
    global _gateway
    if _gateway is None:
        if database.db is None:
            raise RemoteCallError("Database not available")
        _gateway = DataGateway(database.db)
    return _gateway
