"""
Opaque blob store for uploaded document files.

Blobs live in the "blobs" collection; callers only ever hold the storage id.
"""
import logging
import os
from typing import Any, Dict, Optional

from bson import Binary, ObjectId

from database import collection, create_document

logger = logging.getLogger(__name__)


def _find(storage_id: Optional[str], with_data: bool = False) -> Optional[Dict[str, Any]]:
    if not storage_id or not ObjectId.is_valid(storage_id):
        return None
    projection = None if with_data else {"data": 0}
    return collection("blobs").find_one({"_id": ObjectId(storage_id)}, projection)


def put_blob(data: bytes, content_type: str) -> str:
    storage_id = create_document("blobs", {
        "content_type": content_type or "application/octet-stream",
        "size": len(data),
        "data": Binary(data),
    })
    logger.info("Stored blob %s (%d bytes, %s)", storage_id, len(data), content_type)
    return storage_id


def get_blob(storage_id: str) -> Optional[Dict[str, Any]]:
    blob = _find(storage_id, with_data=True)
    if blob is not None:
        blob["data"] = bytes(blob["data"])
    return blob


def get_blob_info(storage_id: str) -> Optional[Dict[str, Any]]:
    """Content type and size of a blob without loading its payload."""
    blob = _find(storage_id)
    if blob is None:
        return None
    return {"content_type": blob.get("content_type"), "size": blob.get("size", 0)}


def get_url(storage_id: Optional[str]) -> Optional[str]:
    """Download URL for a stored blob, or None if the blob does not exist."""
    if _find(storage_id) is None:
        return None
    base = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
    return f"{base}/storage/{storage_id}"


def delete_blob(storage_id: Optional[str]) -> None:
    blob = _find(storage_id)
    if blob is None:
        return
    collection("blobs").delete_one({"_id": blob["_id"]})
    logger.info("Deleted blob %s", storage_id)
