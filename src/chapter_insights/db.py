"""MongoDB client helpers.

Centralizes creation of Mongo clients so every store (including the ones
created inside Dask tasks by the CLI) connects the same way.
"""

from __future__ import annotations

from typing import Any
from pymongo import MongoClient
from pymongo.database import Database

import certifi

from chapter_insights.config import Settings


def get_client(uri: str, tls: bool = False) -> MongoClient[dict[str, Any]]:
    """Return a configured PyMongo MongoClient for the provided URI.

    Args:
        uri: MongoDB connection URI.
        tls: Connect over TLS using the certifi CA bundle.

    Returns:
        Configured MongoClient instance.
    """
    options: dict[str, Any] = {
        "serverSelectionTimeoutMS": 30000,
        "socketTimeoutMS": 30000,
        "connectTimeoutMS": 30000,
        "tz_aware": True,
    }
    if tls:
        options.update(tls=True, tlsCAFile=certifi.where())
    return MongoClient(uri, **options)


def get_db(
    client: MongoClient[dict[str, Any]],
    db_name: str,
) -> Database[dict[str, Any]]:
    """Return the named Database instance from a MongoClient.

    Args:
        client: PyMongo MongoClient.
        db_name: Database name.

    Returns:
        A Database object.
    """
    return client[db_name]


def connect(settings: Settings) -> tuple[MongoClient[dict[str, Any]], Database[dict[str, Any]]]:
    """Open a client for `settings` and return it with the configured database."""
    client = get_client(settings.mongo_uri, tls=settings.mongo_tls)
    return client, get_db(client, settings.mongo_db)
