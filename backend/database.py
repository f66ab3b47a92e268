import logging
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime

from bson import ObjectId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import settings
from errors import Conflict

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_db = None

try:
    _client = MongoClient(settings.DATABASE_URL)
    _db = _client[settings.DATABASE_NAME]
except PyMongoError as e:
    logger.error("MongoDB client could not be created for %s: %s", settings.DATABASE_URL, e)
    _client = None
    _db = None


def db():
    return _db


def set_db(database) -> None:
    """Swap the active database (used by tests to inject an in-memory one)."""
    global _db
    _db = database


def _collection(collection_name: str):
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db[collection_name]


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def _serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc["_id"] = str(doc["_id"])  # stringify ObjectId
    return doc


def _live(filter_dict: Optional[Dict[str, Any]], include_deleted: bool) -> Dict[str, Any]:
    query = dict(filter_dict or {})
    if not include_deleted:
        query["isDeleted"] = False
    return query


def create_document(collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    collection = _collection(collection_name)
    now = datetime.utcnow()
    if "createdAt" not in data:
        data["createdAt"] = now
    data["updatedAt"] = now
    data.setdefault("isDeleted", False)
    data["version"] = 0
    res = collection.insert_one(data)
    data["_id"] = str(res.inserted_id)
    return data


def get_documents(
    collection_name: str,
    filter_dict: Dict[str, Any] | None = None,
    limit: int = 50,
    include_deleted: bool = False,
) -> List[Dict[str, Any]]:
    collection = _collection(collection_name)
    docs = []
    for d in collection.find(_live(filter_dict, include_deleted)).limit(limit).sort("createdAt", -1):
        docs.append(_serialize(d))
    return docs


def find_one(
    collection_name: str, filter_dict: Dict[str, Any], include_deleted: bool = False
) -> Optional[Dict[str, Any]]:
    return _serialize(_collection(collection_name).find_one(_live(filter_dict, include_deleted)))


def find_by_id(
    collection_name: str, doc_id: Any, include_deleted: bool = False
) -> Optional[Dict[str, Any]]:
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    return find_one(collection_name, {"_id": oid}, include_deleted=include_deleted)


def count_documents(
    collection_name: str,
    filter_dict: Dict[str, Any] | None = None,
    include_deleted: bool = False,
) -> int:
    return _collection(collection_name).count_documents(_live(filter_dict, include_deleted))


def update_by_id(
    collection_name: str,
    doc_id: Any,
    update: Dict[str, Any],
    expected_version: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """Apply a MongoDB update document to one live document.

    When ``expected_version`` is given the write only lands if the stored
    ``version`` still matches, so a ``None`` result means either the document
    is gone or somebody else wrote first. Every successful write bumps
    ``version`` and ``updatedAt``.
    """
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    query: Dict[str, Any] = {"_id": oid, "isDeleted": False}
    if expected_version is not None:
        query["version"] = expected_version

    update = {op: dict(fields) for op, fields in update.items()}
    update.setdefault("$set", {})["updatedAt"] = datetime.utcnow()
    update.setdefault("$inc", {})["version"] = 1

    doc = _collection(collection_name).find_one_and_update(
        query, update, return_document=ReturnDocument.AFTER
    )
    return _serialize(doc)


def soft_delete(collection_name: str, doc_id: Any) -> Optional[Dict[str, Any]]:
    return update_by_id(
        collection_name, doc_id, {"$set": {"isDeleted": True, "deletedAt": datetime.utcnow()}}
    )


def next_sequence(name: str, seed: Callable[[], int] = lambda: 0) -> int:
    """Atomically increment and return the named counter.

    A missing counter is created starting at ``seed()`` so the first value
    handed out is ``seed() + 1``.
    """
    counters = _collection("counters")
    if counters.find_one({"_id": name}) is None:
        try:
            counters.update_one({"_id": name}, {"$setOnInsert": {"seq": seed()}}, upsert=True)
        except DuplicateKeyError:
            logger.debug("Counter %s was created concurrently", name)
    doc = counters.find_one_and_update(
        {"_id": name}, {"$inc": {"seq": 1}}, return_document=ReturnDocument.AFTER
    )
    return int(doc["seq"])


def ensure_indexes() -> None:
    if _db is None:
        raise RuntimeError("Database not initialized")
    _db["invoice"].create_index([("invoiceNumber", ASCENDING)], unique=True)
    _db["invoice"].create_index([("patient", ASCENDING)])
    _db["invoice"].create_index([("status", ASCENDING)])
    # Unique among live rooms only, so soft-deleted numbers can be reused
    _db["room"].create_index(
        [("roomNumber", ASCENDING)],
        name="roomNumber_live_unique",
        unique=True,
        partialFilterExpression={"isDeleted": False},
    )
    _db["room"].create_index([("status", ASCENDING)])


def modify_versioned(
    collection_name: str,
    doc_id: Any,
    build_update: Callable[[Dict[str, Any]], Dict[str, Any]],
    retries: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """Read a document, derive an update from it and write it back atomically.

    ``build_update`` receives the current document and returns a MongoDB
    update document (it may raise to abort). The write is conditional on the
    version that was read; if another writer got there first the cycle is
    repeated. Returns ``None`` when the document does not exist.
    """
    attempts = retries or settings.WRITE_RETRIES
    for attempt in range(1, attempts + 1):
        current = find_by_id(collection_name, doc_id)
        if current is None:
            return None
        updated = update_by_id(
            collection_name, doc_id, build_update(current), expected_version=current.get("version", 0)
        )
        if updated is not None:
            return updated
        logger.warning(
            "Concurrent write on %s %s, retrying (%d/%d)", collection_name, doc_id, attempt, attempts
        )
    raise Conflict(f"{collection_name.capitalize()} was modified concurrently, please retry")
