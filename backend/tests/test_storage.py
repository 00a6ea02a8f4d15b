from datetime import timedelta

import pytest
from bson import ObjectId
from pymongo.errors import (
    AutoReconnect,
    DuplicateKeyError,
    ExecutionTimeout,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from app import parse_expires_in
from errors import DuplicateRecord, InvalidIdentifier
from storage import classify_storage_error, parse_object_id


def test_parse_object_id_accepts_24_hex_characters():
    raw = "64b7f0c2a1b2c3d4e5f60718"

    assert parse_object_id(raw) == ObjectId(raw)
    assert parse_object_id(f" {raw.upper()} ") == ObjectId(raw)


@pytest.mark.parametrize(
    "value", ["", None, "123", "abcdefghijkl", "64b7f0c2a1b2c3d4e5f6071z", "64b7f0c2a1b2c3d4e5f607180"]
)
def test_parse_object_id_rejects_other_shapes(value):
    with pytest.raises(InvalidIdentifier) as excinfo:
        parse_object_id(value, "order")
    assert excinfo.value.message == "Invalid order ID"


@pytest.mark.parametrize(
    "exc, reason",
    [
        (ServerSelectionTimeoutError("no servers"), "timeout"),
        (ExecutionTimeout("slow"), "timeout"),
        (AutoReconnect("dropped"), "connection"),
        (DuplicateKeyError("dup"), "constraint"),
        (OperationFailure("bad op"), "operation"),
        (PyMongoError("other"), "unknown"),
    ],
)
def test_classify_storage_error(exc, reason):
    assert classify_storage_error(exc) == reason


def test_unique_email_index_is_enforced(store):
    store.insert_one("users", {"email": "ada@example.com"})

    with pytest.raises(DuplicateRecord):
        store.insert_one("users", {"email": "ada@example.com"})


def test_find_one_and_update_returns_updated_document(store):
    inserted_id = store.insert_one("products", {"name": "Tee", "price": 10})

    updated = store.find_one_and_update(
        "products", {"_id": ObjectId(inserted_id)}, {"$set": {"price": 12}}
    )

    assert updated["price"] == 12


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, timedelta(hours=1)),
        ("3600", timedelta(seconds=3600)),
        ("15m", timedelta(minutes=15)),
        ("1h", timedelta(hours=1)),
        ("7d", timedelta(days=7)),
    ],
)
def test_parse_expires_in(value, expected):
    assert parse_expires_in(value) == expected


def test_parse_expires_in_rejects_garbage():
    with pytest.raises(ValueError):
        parse_expires_in("soon")
