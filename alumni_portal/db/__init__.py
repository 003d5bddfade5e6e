"""
Database module - MongoDB connection.
"""
from alumni_portal.db.mongodb import get_mongo_db, get_database, test_mongo_connection

__all__ = [
    "get_mongo_db",
    "get_database",
    "test_mongo_connection"
]
