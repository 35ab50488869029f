"""
Advanced search across companies, members and documents, plus saved searches.

A search scans each requested collection, keeps records whose text fields
contain the search term (case-insensitive), then keeps those matching every
filter present. Each module is cut to ``limit`` before display fields
(company_name, member_name, file_url) are resolved; ``total_count`` counts
matches before the cut.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from pymongo import ReturnDocument

import storage
from database import collection, get_document, now_ms, serialize
from schemas import ALL_MODULES, SearchFilters

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50

TEXT_FIELDS: Dict[str, List[str]] = {
    "companies": ["name", "description", "region", "branch"],
    "members": [
        "first_name", "last_name", "email", "staff_id", "position",
        "department", "phone", "address", "id_card_number",
    ],
    "documents": ["title", "description"],
}

# filter key -> record field, per module
FILTER_FIELDS: Dict[str, Dict[str, str]] = {
    "companies": {
        "company_region": "region",
        "company_branch": "branch",
    },
    "members": {
        "member_status": "status",
        "member_gender": "gender",
        "member_region": "region",
        "member_department": "department",
        "member_position": "position",
        "company_id": "company_id",
    },
    "documents": {
        "document_file_type": "file_type",
        "company_id": "company_id",
    },
}

DATE_FIELDS: Dict[str, str] = {
    "companies": "created_at",
    "members": "date_joined",
    "documents": "uploaded_at",
}

FiltersArg = Optional[Union[SearchFilters, Dict[str, Any]]]


class SearchNotFound(LookupError):
    """No saved search with this id belongs to the caller."""


class InvalidSearch(ValueError):
    pass


def normalize_filters(filters: FiltersArg) -> Dict[str, Any]:
    """Sparse filter dict: unset, None and empty-string values are dropped."""
    if filters is None:
        return {}
    if isinstance(filters, SearchFilters):
        filters = filters.model_dump()
    return {k: v for k, v in filters.items() if v is not None and v != ""}


def matches_term(module: str, record: Dict[str, Any], term: Optional[str]) -> bool:
    if not term:
        return True
    needle = term.lower()
    for field in TEXT_FIELDS[module]:
        value = record.get(field)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


def matches_filters(module: str, record: Dict[str, Any], filters: FiltersArg) -> bool:
    """True iff the record satisfies every filter that applies to the module."""
    active = normalize_filters(filters)
    for key, field in FILTER_FIELDS[module].items():
        if key in active and record.get(field) != active[key]:
            return False

    date_field = DATE_FIELDS[module]
    stamp = record.get(date_field)
    if "date_from" in active and (stamp is None or stamp < active["date_from"]):
        return False
    if "date_to" in active and (stamp is None or stamp > active["date_to"]):
        return False
    return True


def _scan(module: str, term: Optional[str], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        rec for rec in collection(module).find({})
        if matches_term(module, rec, term) and matches_filters(module, rec, filters)
    ]


class _Lookup:
    """Per-search cache of referenced records."""

    def __init__(self):
        self._cache: Dict[tuple, Optional[Dict[str, Any]]] = {}

    def get(self, collection_name: str, doc_id: Optional[str]) -> Optional[Dict[str, Any]]:
        key = (collection_name, doc_id)
        if key not in self._cache:
            self._cache[key] = get_document(collection_name, doc_id)
        return self._cache[key]


def _member_name(member: Optional[Dict[str, Any]]) -> str:
    if not member:
        return "Unknown"
    return f"{member.get('first_name', '')} {member.get('last_name', '')}".strip()


def _enrich_member(member: Dict[str, Any], lookup: _Lookup) -> Dict[str, Any]:
    out = serialize(member)
    company = lookup.get("companies", member.get("company_id"))
    out["company_name"] = company["name"] if company else "Unknown"
    return out


def _enrich_document(doc: Dict[str, Any], lookup: _Lookup) -> Dict[str, Any]:
    out = serialize(doc)
    member = lookup.get("members", doc.get("member_id"))
    company = lookup.get("companies", doc.get("company_id"))
    out["member_name"] = _member_name(member)
    out["company_name"] = company["name"] if company else "Unknown"
    out["file_url"] = storage.get_url(doc.get("storage_id"))
    return out


def advanced_search(
    search_term: Optional[str] = None,
    modules: Optional[Iterable[str]] = None,
    filters: FiltersArg = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    wanted = list(ALL_MODULES) if modules is None else list(modules)
    limit = limit or DEFAULT_LIMIT
    active = normalize_filters(filters)
    term = search_term or ""
    lookup = _Lookup()

    results: Dict[str, Any] = {"companies": [], "members": [], "documents": [], "total_count": 0}

    if "companies" in wanted:
        companies = _scan("companies", term, active)
        results["companies"] = [serialize(c) for c in companies[:limit]]
        results["total_count"] += len(companies)

    if "members" in wanted:
        members = _scan("members", term, active)
        results["members"] = [_enrich_member(m, lookup) for m in members[:limit]]
        results["total_count"] += len(members)

    if "documents" in wanted:
        documents = _scan("documents", term, active)
        results["documents"] = [_enrich_document(d, lookup) for d in documents[:limit]]
        results["total_count"] += len(documents)

    logger.debug("Search term=%r modules=%s filters=%s -> %d matches", term, wanted, active, results["total_count"])
    return results


def get_filter_options() -> Dict[str, Any]:
    companies = list(collection("companies").find({}))
    members = list(collection("members").find({}))

    def distinct(records: List[Dict[str, Any]], field: str) -> set:
        return {r[field] for r in records if r.get(field)}

    return {
        "regions": sorted(distinct(companies, "region") | distinct(members, "region")),
        "branches": sorted(distinct(companies, "branch")),
        "departments": sorted(distinct(members, "department")),
        "positions": sorted(distinct(members, "position")),
        "companies": sorted(
            ({"_id": str(c["_id"]), "name": c["name"]} for c in companies),
            key=lambda c: c["name"].casefold(),
        ),
    }


# Saved searches

def _validate_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise InvalidSearch("Search name is required")
    return name.strip()


def _saved_search_query(search_id: str, user_id: Optional[str]) -> Dict[str, Any]:
    if not ObjectId.is_valid(search_id):
        raise SearchNotFound(search_id)
    query: Dict[str, Any] = {"_id": ObjectId(search_id)}
    if user_id is not None:
        query["user_id"] = user_id
    return query


def save_search(
    user_id: str,
    name: str,
    search_term: Optional[str] = None,
    modules: Optional[Iterable[str]] = None,
    filters: FiltersArg = None,
) -> Dict[str, str]:
    stamp = now_ms()
    result = collection("saved_searches").insert_one({
        "user_id": user_id,
        "name": _validate_name(name),
        "search_term": search_term or None,
        "modules": list(ALL_MODULES) if modules is None else list(modules),
        "filters": normalize_filters(filters),
        "created_at": stamp,
        "last_used": stamp,
        "use_count": 0,
    })
    logger.info("User %s saved search %s", user_id, result.inserted_id)
    return {"search_id": str(result.inserted_id)}


def list_saved_searches(user_id: str) -> List[Dict[str, Any]]:
    cursor = collection("saved_searches").find({"user_id": user_id}).sort("last_used", -1)
    return [serialize(s) for s in cursor]


def touch_saved_search(search_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Record a replay: bump use_count and last_used in one atomic update."""
    updated = collection("saved_searches").find_one_and_update(
        _saved_search_query(search_id, user_id),
        {"$set": {"last_used": now_ms()}, "$inc": {"use_count": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise SearchNotFound(search_id)
    return serialize(updated)


def update_saved_search(search_id: str, updates: Dict[str, Any], user_id: Optional[str] = None) -> None:
    changes: Dict[str, Any] = {}
    if "name" in updates:
        changes["name"] = _validate_name(updates["name"])
    if "search_term" in updates:
        changes["search_term"] = updates["search_term"] or None
    if "modules" in updates and updates["modules"] is not None:
        changes["modules"] = list(updates["modules"])
    if "filters" in updates and updates["filters"] is not None:
        changes["filters"] = normalize_filters(updates["filters"])

    query = _saved_search_query(search_id, user_id)
    if not changes:
        if collection("saved_searches").count_documents(query) == 0:
            raise SearchNotFound(search_id)
        return
    result = collection("saved_searches").update_one(query, {"$set": changes})
    if result.matched_count == 0:
        raise SearchNotFound(search_id)


def delete_saved_search(search_id: str, user_id: Optional[str] = None) -> None:
    result = collection("saved_searches").delete_one(_saved_search_query(search_id, user_id))
    if result.deleted_count == 0:
        raise SearchNotFound(search_id)
    logger.info("Deleted saved search %s", search_id)
