"""
Database helpers

MongoDB access for the application. The client is opened and closed by the
application lifespan (see ``main.py``) and the ``Database`` handle is passed
explicitly to every helper and service function.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Union

from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from schemas import Document, SystemSettings

logger = logging.getLogger(__name__)

# Collection names
USERS = "users"
CONVERSATIONS = "conversations"
SUBSCRIPTIONS = "subscriptions"
PLANS = "subscription_plans"
TRANSACTIONS = "transactions"
USAGE_LOGS = "usage_logs"
SETTINGS = "settings"

SYSTEM_SETTINGS_ID = "system"


def connect(url: str, name: str) -> Tuple[MongoClient, Database]:
    client = MongoClient(url, tz_aware=True)
    db = client[name]
    logger.info("Document store client created for database %s", name)
    return client, db


def close(client: Optional[MongoClient]) -> None:
    if client is not None:
        client.close()
        logger.info("Document store client closed")


def ensure_indexes(db: Database) -> None:
    db[CONVERSATIONS].create_index([("user_id", ASCENDING), ("updated_at", DESCENDING)])
    db[SUBSCRIPTIONS].create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    db[SUBSCRIPTIONS].create_index("paystack_ref")
    db[USAGE_LOGS].create_index([("timestamp", DESCENDING)])
    db[USAGE_LOGS].create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)])
    db[USERS].create_index([("created_at", DESCENDING)])


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert one document and return its id as a string."""
    if isinstance(data, Document):
        doc = data.to_doc()
    elif isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def touch(db: Database, collection_name: str, doc_id: str, fields: Dict[str, Any]) -> bool:
    """``$set`` the given fields on one document; False when it does not exist."""
    result = db[collection_name].update_one({"_id": doc_id}, {"$set": fields})
    return result.matched_count > 0


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def load_settings(db: Database) -> SystemSettings:
    return SystemSettings.from_doc(db[SETTINGS].find_one({"_id": SYSTEM_SETTINGS_ID}))
