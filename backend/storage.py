import logging
import re
from typing import Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    NetworkTimeout,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
    WriteError,
    WTimeoutError,
)

from errors import DuplicateRecord, InvalidIdentifier, TransientError

logger = logging.getLogger(__name__)

USERS = "users"
PRODUCTS = "products"
ORDERS = "orders"

object_id_pattern = re.compile(r"^[0-9a-fA-F]{24}$")


def parse_object_id(value, resource: str = "record") -> ObjectId:
    # ObjectId() also accepts 12-byte strings, so check the hex form first
    if isinstance(value, ObjectId):
        return value
    candidate = str(value or "").strip()
    if not object_id_pattern.match(candidate):
        raise InvalidIdentifier(resource)
    return ObjectId(candidate)


def classify_storage_error(exc: Exception) -> str:
    """Bucket a driver failure for the logs; callers never see this value."""
    if isinstance(
        exc,
        (ExecutionTimeout, NetworkTimeout, ServerSelectionTimeoutError, WTimeoutError),
    ):
        return "timeout"
    if isinstance(exc, (ConnectionFailure, AutoReconnect)):
        return "connection"
    if isinstance(exc, (DuplicateKeyError, WriteError)):
        return "constraint"
    if isinstance(exc, OperationFailure):
        return "operation"
    return "unknown"


class DocumentStore:
    """Thin wrapper over a pymongo database exposing the operations the routes use.

    Driver errors are translated here: unique-index violations become
    ``DuplicateRecord``, everything else becomes ``TransientError`` after the
    underlying cause has been logged.
    """

    def __init__(self, database):
        self.db = database

    def _fail(self, operation: str, collection: str, exc: PyMongoError):
        reason = classify_storage_error(exc)
        logger.error(
            "Storage %s on %s failed (%s): %s", operation, collection, reason, exc
        )
        raise TransientError(reason) from exc

    def ensure_indexes(self):
        # registration relies on this index for email uniqueness, so no index means no start-up
        try:
            self.db[USERS].create_index("email", unique=True)
        except PyMongoError as exc:
            logger.error("Unable to ensure unique index for user emails: %s", exc)
            raise

    def find_one(self, collection: str, predicate: Dict) -> Optional[Dict]:
        try:
            return self.db[collection].find_one(predicate)
        except PyMongoError as exc:
            self._fail("find_one", collection, exc)

    def find(self, collection: str, predicate: Optional[Dict] = None) -> List[Dict]:
        try:
            return list(self.db[collection].find(predicate or {}))
        except PyMongoError as exc:
            self._fail("find", collection, exc)

    def insert_one(self, collection: str, record: Dict) -> str:
        try:
            result = self.db[collection].insert_one(record)
        except DuplicateKeyError as exc:
            raise DuplicateRecord(collection, exc.details) from exc
        except PyMongoError as exc:
            self._fail("insert_one", collection, exc)
        return str(result.inserted_id)

    def find_one_and_update(
        self, collection: str, predicate: Dict, patch: Dict
    ) -> Optional[Dict]:
        try:
            return self.db[collection].find_one_and_update(
                predicate, patch, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as exc:
            self._fail("find_one_and_update", collection, exc)

    def find_one_and_delete(self, collection: str, predicate: Dict) -> Optional[Dict]:
        try:
            return self.db[collection].find_one_and_delete(predicate)
        except PyMongoError as exc:
            self._fail("find_one_and_delete", collection, exc)
