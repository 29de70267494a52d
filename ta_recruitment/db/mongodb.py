"""
MongoDB Connection Utility

MongoDB stores every entity of the TA recruitment workflow:
- users and recruitment series (reference data)
- module details with their TA capacity counters
- TA applications
- applied-modules ledgers (remaining weekly hours per user per series)

The workflow writes several of these in one go, so the deployment must be a
replica set: multi-document transactions are not available on a standalone
server.
"""
import logging
from typing import Any, Callable

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.collection import Collection

from ta_recruitment.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(settings.mongodb_uri)
    return _client


def get_mongo_db() -> Database:
    """Get the recruitment database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[settings.mongodb_db]
    return _db


def get_collection(name: str) -> Collection:
    """Get a specific collection by its real name (see COLLECTIONS)."""
    db = get_mongo_db()
    return db[name]


def run_in_transaction(callback: Callable[[ClientSession], Any]) -> Any:
    """
    Run callback(session) inside a multi-document transaction.

    Commits when the callback returns, aborts when it raises; the exception
    is re-raised to the caller. Transient transaction errors are retried by
    pymongo's with_transaction.

    Usage:
        def _work(session):
            coll.update_one(..., session=session)
            return result
        result = run_in_transaction(_work)
    """
    client = get_mongo_client()
    with client.start_session() as session:
        return session.with_transaction(callback)


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except Exception as e:
        logger.warning("MongoDB connection failed: %s", e)
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "users": "users",
    "recruitment_series": "recruitmentseries",
    "modules": "moduledetails",
    "applications": "taapplications",
    "applied_modules": "appliedmodules",
}


def init_mongo_indexes():
    """
    Create indexes for lookups and for the uniqueness rules of the workflow.
    Call this once during app startup.
    """
    db = get_mongo_db()

    # One application per user per module
    db[COLLECTIONS["applications"]].create_index([
        ("userId", ASCENDING),
        ("moduleId", ASCENDING)
    ], unique=True)
    db[COLLECTIONS["applications"]].create_index([("moduleId", ASCENDING), ("status", ASCENDING)])

    # One ledger per user per recruitment series
    db[COLLECTIONS["applied_modules"]].create_index([
        ("userId", ASCENDING),
        ("recSeriesId", ASCENDING)
    ], unique=True)

    db[COLLECTIONS["modules"]].create_index("recruitmentSeriesId")
    db[COLLECTIONS["modules"]].create_index("coordinators")
    db[COLLECTIONS["modules"]].create_index([("createdAt", DESCENDING)])

    logger.info("MongoDB indexes created successfully")
