"""
MongoDB access helpers.

Thin wrappers over pymongo shared by the identity provider and the
repositories. They raise pymongo errors and taswear errors as is; callers
decide how failures are reported.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient
from pymongo.database import Database

from .errors import NotFoundError
from .settings import Settings

NEWEST_FIRST: List[Tuple[str, int]] = [("created_at", DESCENDING), ("_id", DESCENDING)]


def connect(settings: Settings) -> Database:
    client: MongoClient = MongoClient(settings.database_url, tz_aware=True)
    return client[settings.database_name]


def to_object_id(collection_name: str, doc_id: str) -> ObjectId:
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        raise NotFoundError(collection_name, doc_id)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(
    db: Database,
    collection_name: str,
    data: Union[BaseModel, Dict[str, Any]],
    doc_id: Optional[str] = None,
) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    data_dict = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    data_dict.pop("id", None)
    data_dict["created_at"] = _now()
    data_dict["updated_at"] = _now()
    if doc_id is not None:
        data_dict["_id"] = to_object_id(collection_name, doc_id)
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_document(db: Database, collection_name: str, doc_id: str) -> Dict[str, Any]:
    doc = db[collection_name].find_one({"_id": to_object_id(collection_name, doc_id)})
    if not doc:
        raise NotFoundError(collection_name, doc_id)
    return doc


def update_document(db: Database, collection_name: str, doc_id: str, fields: Dict[str, Any]) -> None:
    """Partial update: only the given fields are $set."""
    update = dict(fields)
    update["updated_at"] = _now()
    res = db[collection_name].update_one({"_id": to_object_id(collection_name, doc_id)}, {"$set": update})
    if res.matched_count == 0:
        raise NotFoundError(collection_name, doc_id)


def delete_document(db: Database, collection_name: str, doc_id: str) -> None:
    res = db[collection_name].delete_one({"_id": to_object_id(collection_name, doc_id)})
    if res.deleted_count == 0:
        raise NotFoundError(collection_name, doc_id)
