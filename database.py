"""
MongoDB access for the member portal.

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing ``db`` stays None and /test reports the database as unavailable.
"""
import logging
import os
import time
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def collection(name: str):
    if db is None:
        raise RuntimeError("Database is not configured (set DATABASE_URL and DATABASE_NAME)")
    return db[name]


def ensure_indexes() -> None:
    """Create the unique and lookup indexes the handlers rely on."""
    collection("users").create_index("email", unique=True)
    collection("users").create_index("role")
    collection("members").create_index("staff_id", unique=True)
    collection("members").create_index("user_id", unique=True)
    collection("members").create_index("company_id")
    collection("members").create_index("status")
    collection("documents").create_index("member_id")
    collection("documents").create_index("company_id")
    collection("notifications").create_index([("user_id", ASCENDING), ("read", ASCENDING)])
    collection("saved_searches").create_index([("user_id", ASCENDING), ("last_used", DESCENDING)])
    logger.info("Database indexes ensured")


def create_document(collection_name: str, data: Dict[str, Any]) -> str:
    """Insert a record, stamping created_at when absent, and return its id."""
    payload = dict(data)
    payload.setdefault("created_at", now_ms())
    result = collection(collection_name).insert_one(payload)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = collection(collection_name).find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, doc_id: Any) -> Optional[Dict[str, Any]]:
    """Point lookup by id; ids that are not valid ObjectIds simply match nothing."""
    if not isinstance(doc_id, ObjectId):
        if not doc_id or not ObjectId.is_valid(doc_id):
            return None
        doc_id = ObjectId(doc_id)
    return collection(collection_name).find_one({"_id": doc_id})


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of a record with its ObjectId turned into a string."""
    if doc is None:
        return None
    out = dict(doc)
    if out.get("_id") is not None:
        out["_id"] = str(out["_id"])
    return out
