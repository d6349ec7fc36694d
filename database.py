"""
MongoDB access for the Car Hub API.

The client is created on first use and then shared by every request for the
life of the process.
"""
import threading
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, OperationFailure

from config import get_settings
from errors import InvalidInputError
from logger import get_logger

logger = get_logger("database")

PRODUCTS = "products"
IMPORTS = "imports"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def doc_to_dict(doc: dict) -> dict:
    out = {}
    for k, v in doc.items():
        if isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, datetime):
            out[k] = v.isoformat()
        elif isinstance(v, list):
            out[k] = [str(i) if isinstance(i, ObjectId) else i for i in v]
        else:
            out[k] = v
    if "_id" in out:
        out["id"] = out.pop("_id")
    return out


def parse_object_id(value: Any) -> ObjectId:
    """Convert a client supplied id, rejecting malformed ones before any storage access."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidInputError("Invalid ID format")
    return ObjectId(value)


class Database:
    """Process-wide storage handle. No I/O happens until a collection is used."""

    def __init__(
        self,
        uri: Optional[str] = None,
        name: Optional[str] = None,
        client: Optional[MongoClient] = None,
        **client_options: Any,
    ):
        self._uri = uri
        self._name = name
        self._client = client
        self._client_options = client_options
        self._db = None
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._db is not None

    @property
    def db(self):
        if self._db is None:
            with self._lock:
                if self._db is None:
                    self._db = self._connect()
        return self._db

    @property
    def products(self) -> Collection:
        return self.db[PRODUCTS]

    @property
    def imports(self) -> Collection:
        return self.db[IMPORTS]

    def _connect(self):
        if self._client is None:
            logger.info("Connecting to MongoDB...")
            self._client = MongoClient(self._uri, **self._client_options)
        db = self._client[self._name]
        try:
            ensure_indexes(db)
        except ConnectionFailure:
            logger.exception("MongoDB connection failed")
            raise
        logger.info("MongoDB connected (database=%s)", self._name)
        return db

    def ping(self) -> None:
        self.db  # connects on a cold process
        self._client.admin.command("ping")


def ensure_indexes(db) -> bool:
    """
    Create the indexes the stores query by. Returns False when the unique
    ledger index could not be built.

    Collections written before the index existed may hold several import
    records for one (user, product) pair; that blocks the unique index but
    must not make the data unreadable.
    """
    db[PRODUCTS].create_index([("createdAt", DESCENDING)], name="created_at_desc")
    db[PRODUCTS].create_index([("createdBy", ASCENDING)], name="created_by")
    try:
        db[IMPORTS].create_index(
            [("userEmail", ASCENDING), ("productId", ASCENDING)],
            unique=True,
            name="user_product_unique",
        )
    except OperationFailure as exc:
        logger.warning("Unique import index not created on %s, duplicate records present: %s", db.name, exc)
        return False
    logger.debug("Indexes ensured on %s", db.name)
    return True


def create_document(collection: Collection, data: Dict[str, Any]) -> str:
    doc = dict(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = collection.insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection: Collection,
    query: Optional[Dict[str, Any]] = None,
    sort: Optional[List] = None,
    limit: int = 0,
) -> List[dict]:
    cursor = collection.find(query or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [doc_to_dict(d) for d in cursor]


@lru_cache()
def get_database() -> Database:
    settings = get_settings()
    return Database(
        settings.database_url,
        settings.database_name,
        maxPoolSize=settings.max_pool_size,
        minPoolSize=settings.min_pool_size,
        maxIdleTimeMS=settings.max_idle_time_ms,
        serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
        socketTimeoutMS=settings.socket_timeout_ms,
    )
