import logging

import pymongo

from utils import settings

# Global cache for the MongoDB client to enable connection pooling across invocations
_CLIENT_CACHE = None

CONNECTION_STRING_KEYS = (
    "MongoDb-Connection-String",
    "MONGODB_CONNECTION_STRING",
    "CUSTOMCONNSTR_MongoDb-Connection-String",
    "MongoDbConnectionString",
    "DB_CONNECTION_STRING",
)


def get_db_client(**kwargs):
    """
    Returns a PyMongo client using the connection string from environment variables
    (or Key Vault). Uses a global cache to reuse the client across Azure Function invocations.
    """
    global _CLIENT_CACHE

    if _CLIENT_CACHE is not None:
        return _CLIENT_CACHE

    uri = None
    for key in CONNECTION_STRING_KEYS:
        uri = settings.get_secret(key)
        if uri:
            break

    if not uri:
        # Never fall back to localhost:27017
        error_msg = f"MongoDB Connection String not found. Checked: {list(CONNECTION_STRING_KEYS)}"
        logging.critical(error_msg)
        raise RuntimeError(error_msg)

    kwargs.setdefault("serverSelectionTimeoutMS", 5000)
    try:
        client = pymongo.MongoClient(uri, **kwargs)
    except Exception as e:
        logging.critical(f"Failed to create MongoClient: {e}")
        raise
    _CLIENT_CACHE = client
    return client


def get_db(name: str | None = None):
    """
    Returns the database object.

    SAFETY GUARD: outside prod the production database name is refused so dev/test
    code cannot write to it by accident.
    """
    db_name = name or settings.db_name()
    if not settings.is_production() and db_name == settings.PROD_DB_NAME:
        logging.error(
            f"SAFETY GUARD TRIGGERED: APP_ENV={settings.app_env()} but DB_NAME={db_name} (production)."
        )
        raise RuntimeError(f"Safety guard: cannot use production DB '{db_name}' in non-prod environment.")
    return get_db_client()[db_name]

