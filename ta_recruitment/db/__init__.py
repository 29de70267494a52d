"""
Database module - MongoDB connection and transaction helper.
"""
from ta_recruitment.db.mongodb import (
    get_mongo_db,
    get_collection,
    run_in_transaction,
    test_mongo_connection
)

__all__ = [
    "get_mongo_db",
    "get_collection",
    "run_in_transaction",
    "test_mongo_connection"
]
