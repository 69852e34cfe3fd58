"""
MongoDB access for the ShopKart API.

A single client is created at import time from DATABASE_URL / DATABASE_NAME.
When either is missing ``db`` stays ``None`` and every helper below refuses
to run.
"""

import logging
from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import settings
from errors import APIError

logger = logging.getLogger(__name__)

_client = None
db = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    _client = MongoClient(settings.DATABASE_URL)
    db = _client[settings.DATABASE_NAME]
else:
    logger.warning("DATABASE_URL / DATABASE_NAME not set, database disabled")


def now() -> datetime:
    return datetime.now(timezone.utc)


def get_db():
    if db is None:
        raise APIError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def ensure_indexes():
    """Create the indexes the collections rely on (idempotent)."""
    if db is None:
        return
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["order"].create_index([("user_id", ASCENDING)])
    db["wishlist"].create_index([("user_id", ASCENDING)], unique=True)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    data_dict["created_at"] = now()
    data_dict["updated_at"] = now()
    result = get_db()[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def update_document(collection_name: str, filter_dict: dict, update: dict):
    """Apply a Mongo update, refreshing updated_at alongside any $set."""
    update = dict(update)
    update["$set"] = {**update.get("$set", {}), "updated_at": now()}
    return get_db()[collection_name].update_one(filter_dict, update)
