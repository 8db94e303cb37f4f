# herbtrace/mongo.py
from __future__ import annotations

import logging

from pymongo import MongoClient
from pymongo.errors import ConfigurationError, PyMongoError

from herbtrace.errors import StorageError

log = logging.getLogger(__name__)

DEFAULT_DB = "herbtrace_db"


def init_mongo(uri: str, timeout_ms: int = 5000, client_factory=MongoClient):
    """
    Connect and return the database named in the URI (or herbtrace_db).
    Pings once so a wrong URI fails at startup, not on the first scan.
    """
    try:
        client = client_factory(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
            tz_aware=True,
        )
        try:
            db = client.get_database()
        except ConfigurationError:
            db = client[DEFAULT_DB]
        client.admin.command("ping")
    except PyMongoError as e:
        raise StorageError(f"Mongo init failed: {e}", cause=e) from e

    log.info("mongo initialized (db=%s)", db.name)
    return db
