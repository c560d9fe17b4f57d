from pymongo import MongoClient

from stampede_guard.config import MONGO_URI, DB_NAME, STORE_COLLECTION

_client = None


def get_db():
    global _client
    if _client is None:
        _client = MongoClient(MONGO_URI)
    return _client[DB_NAME]


def get_store_collection():
    """Collection backing the shared key-value store, one document per key."""
    return get_db()[STORE_COLLECTION]
