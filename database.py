"""
MongoDB connection and small document helpers.

``db`` is None when DATABASE_URL / DATABASE_NAME are not configured; routes
check for that and answer 503. Helpers accept an explicit ``database`` so
components constructed with their own handle (tests, workers) use it instead
of the module-level connection.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import Settings, runtime_settings
from errors import DatabaseUnavailable


def connect(settings: Settings) -> Optional[Database]:
    if not (settings.database_url and settings.database_name):
        return None
    return MongoClient(settings.database_url)[settings.database_name]


db: Optional[Database] = connect(runtime_settings())


def _resolve(database: Optional[Database]) -> Database:
    target = database if database is not None else db
    if target is None:
        raise DatabaseUnavailable("Check DATABASE_URL and DATABASE_NAME environment variables")
    return target


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database: Optional[Database] = None) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    target = _resolve(database)
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude={"id"})
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = target[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None,
                  database: Optional[Database] = None) -> List[Dict[str, Any]]:
    target = _resolve(database)
    cursor = target[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(id_str: str) -> Optional[ObjectId]:
    """Parse a string id; None when it is not a valid ObjectId."""
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


def serialize_document(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Move ``_id`` to a string ``id`` so the document fits the pydantic records."""
    if not doc:
        return doc
    doc = {**doc}
    if doc.get("_id") is not None:
        doc["id"] = str(doc.pop("_id"))
    return doc
