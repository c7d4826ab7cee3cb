"""MongoDB access for the API.

The application keeps its database handle on ``app.state.db`` so tests can
swap in a ``mongomock`` database.
"""
import datetime
import logging
from typing import Any, Dict, Optional

import pymongo
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pymongo.database import Database

from .config import settings

USERS: str = 'users'
EXPENSES: str = 'expenses'

_client: Optional[pymongo.MongoClient] = None


def get_database() -> Database:
    """Return the configured database, creating the client on first use."""
    global _client
    if _client is None:
        logging.info(f'Connecting to MongoDB database "{settings.MONGODB_DB}"')
        _client = pymongo.MongoClient(settings.MONGODB_URI, tz_aware=False)
    return _client[settings.MONGODB_DB]


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index('email', unique=True)
    db[EXPENSES].create_index([('userId', pymongo.ASCENDING), ('date', pymongo.DESCENDING)])


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the application's database."""
    return request.app.state.db


def parse_object_id(value: str) -> Optional[ObjectId]:
    """Return value as an ObjectId, or None if it is not a valid one."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a stored document into its JSON shape.

    ``_id`` becomes ``id``, ObjectIds become strings and datetimes become
    ISO-8601 UTC strings with millisecond precision.
    """
    if not doc:
        return doc
    d = {**doc}
    if d.get('_id') is not None:
        d['id'] = str(d.pop('_id'))
    for key, value in list(d.items()):
        if isinstance(value, ObjectId):
            d[key] = str(value)
        elif isinstance(value, datetime.datetime):
            d[key] = value.isoformat(timespec='milliseconds') + 'Z'
    return d


def utcnow() -> datetime.datetime:
    """Current UTC time as a naive datetime, the form MongoDB hands back."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
