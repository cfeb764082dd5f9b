"""
MongoDB connection helpers.
"""

import logging

from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

_client: MongoClient | None = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        # Import settings lazily to ensure env vars are loaded
        from repo_insight.config import settings

        # tz_aware so staleness windows compare aware datetimes end to end
        _client = MongoClient(settings.MONGODB_URI, tz_aware=True)
        logger.info("Initialized MongoClient for %s", settings.MONGODB_DB_NAME)
    return _client


def get_database() -> Database:
    from repo_insight.config import settings

    client = get_client()
    return client[settings.MONGODB_DB_NAME]


def get_db():
    db = get_database()
    try:
        yield db
    finally:
        # PyMongo manages connection pooling automatically; nothing to close here.
        pass
