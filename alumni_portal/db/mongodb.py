"""
MongoDB Connection Utility

MongoDB stores everything the portal owns:
- users (identity, role, cohort attributes)
- session_requests (proposals awaiting an admin)
- sessions (scheduled events)
- session_attendance (one record per session/student pair)
- notifications (fan-out records)
"""
import logging

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from alumni_portal.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

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
    """Get the portal database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[settings.mongodb_db]
    return _db


def get_database() -> Database:
    """
    Dependency for FastAPI route injection.
    Tests override this with an in-memory database.
    """
    return get_mongo_db()


def get_collection(name: str, db: Database = None) -> Collection:
    """Get a specific collection, from `db` when given."""
    db = db if db is not None else get_mongo_db()
    return db[name]


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
    "session_requests": "session_requests",
    "sessions": "sessions",
    "attendance": "session_attendance",
    "notifications": "notifications"
}


def init_mongo_indexes(db: Database = None):
    """
    Create indexes for query performance and integrity.
    Call this once during app startup.
    """
    db = db if db is not None else get_mongo_db()

    # Eligibility bulk query filters on these
    db[COLLECTIONS["users"]].create_index([("role", ASCENDING), ("year_of_study", ASCENDING), ("department", ASCENDING)])

    db[COLLECTIONS["session_requests"]].create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    db[COLLECTIONS["session_requests"]].create_index("user_id")

    db[COLLECTIONS["sessions"]].create_index([("date", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["sessions"]].create_index("session_head")
    db[COLLECTIONS["sessions"]].create_index("session_request_id")

    # One attendance record per (session, student) - the only guard for concurrent upserts
    db[COLLECTIONS["attendance"]].create_index([
        ("session_id", ASCENDING),
        ("student_id", ASCENDING)
    ], unique=True)
    db[COLLECTIONS["attendance"]].create_index("student_id")

    db[COLLECTIONS["notifications"]].create_index([("recipient", ASCENDING), ("created_at", DESCENDING)])

    logger.info("MongoDB indexes created successfully")
