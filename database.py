"""
Database access for the Storefront API

Collections:
- user: customers and admins
- product: catalog rows, soft-deleted through the `active` flag
- cart_item: one row per (user, product)
- order: order headers with their lines embedded
"""

import logging
import os
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

from errors import DatabaseUnavailableError

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise DatabaseUnavailableError("Database not configured")
    return db


def parse_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def create_document(database, collection_name: str, data: Any) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    data = dict(data)
    now = datetime.utcnow()
    data.setdefault("created_at", now)
    data["updated_at"] = now
    inserted_id = database[collection_name].insert_one(data).inserted_id
    return str(inserted_id)


def ensure_indexes(database):
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["cart_item"].create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True
    )
    database["product"].create_index([("active", ASCENDING), ("category", ASCENDING)])
    database["order"].create_index([("user_id", ASCENDING), ("order_date", ASCENDING)])
    logger.info("indexes ensured on %s", database.name)
