"""
MongoDB access helpers.

``db`` is the process-wide pymongo database, or ``None`` when
``DATABASE_URL``/``DATABASE_NAME`` are not configured. Routes receive it
through the ``get_db`` dependency so tests can swap the module attribute.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import get_settings

LOGGER = logging.getLogger(__name__)


def _connect() -> Optional[Database]:
    settings = get_settings()
    if not settings.database_url or not settings.database_name:
        LOGGER.warning("DATABASE_URL or DATABASE_NAME not set; database disabled.")
        return None
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


db: Optional[Database] = _connect()


def utcnow() -> datetime:
    """Current time as naive UTC, the same shape pymongo hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def parse_object_id(value: Any, label: str = "object") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label} id")


def serialize(value: Any) -> Any:
    """Make a document JSON friendly: ``_id`` becomes ``id``, ObjectIds become strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            out["id" if key == "_id" else key] = serialize(item)
        return out
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    return value


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert one document stamped with creation times; return its id."""
    database = get_db()
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    database = get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    """Create the unique indexes the handlers rely on."""
    database["member"].create_index("student_no", unique=True)
    database["announcement"].create_index("slug", unique=True)
    database["registration"].create_index(
        [("event_id", ASCENDING), ("member_id", ASCENDING)], unique=True
    )
    database["forum_vote"].create_index(
        [("member_id", ASCENDING), ("content_type", ASCENDING), ("content_id", ASCENDING)],
        unique=True,
    )
    database["forum_category"].create_index("slug", unique=True)
    database["admin_access"].create_index("member_id", unique=True)
    database["media_kit_token"].create_index("token", unique=True)
    database["comment"].create_index([("content_type", ASCENDING), ("content_id", ASCENDING)])
    database["comment"].create_index([("is_deleted", ASCENDING), ("deleted_at", ASCENDING)])
    LOGGER.info("Database indexes ensured on %s", database.name)
