"""
Database connection helpers

Reads DATABASE_URL / DATABASE_NAME from the environment and exposes the
MongoDB database as `db` (None when the service runs unconfigured).
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pymongo import MongoClient

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "study_store")

db = None
if DATABASE_URL:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_str_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d
