"""
Database helpers

MongoDB connection setup plus the small document helpers used across the API.
The connection is configured from DATABASE_URL / DATABASE_NAME; when either is
missing `db` stays None and every data endpoint answers with a 500.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import Internal, InvalidInput

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def get_db() -> Database:
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise Internal("Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    """Insert a document with timestamps and return its id as a string."""
    if database is None:
        database = get_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    data_dict["created_at"] = now_utc()
    data_dict["updated_at"] = now_utc()
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, database: Optional[Database] = None) -> List[dict]:
    if database is None:
        database = get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def parse_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidInput(f"Invalid {label}")


def to_serializable(value: Any) -> Any:
    """Render ObjectIds as strings and `_id` as `id`, recursively."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [to_serializable(v) for v in value]
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for k, v in value.items():
            out["id" if k == "_id" else k] = to_serializable(v)
        return out
    return value
