import logging

from fastapi import APIRouter, Request
from pymongo.errors import PyMongoError

import config
from persona import AI_NAME
from schemas import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

API_VERSION = "1.0.0"


@router.get("/")
def root():
    return {"name": f"{AI_NAME} API", "version": API_VERSION, "docs": "/docs"}


@router.get("/health")
def health():
    return {"status": "healthy", "version": API_VERSION, "timestamp": utcnow().isoformat()}


@router.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = getattr(request.app.state, "db", None)
    if db is not None:
        response["database"] = "✅ Available"
        response["database_name"] = getattr(db, "name", "✅ Connected")
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            logger.warning("Store diagnostics failed: %s", e)
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    else:
        response["database"] = "⚠️  Available but not initialized"

    response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
    return response
