from datetime import datetime, timezone

import pytest
from bson import ObjectId

from envelope import (
    INVALID_BODY,
    MISSING_BODY,
    UNPARSEABLE_BODY,
    coerce_value,
    envelope,
    load_body,
    serialize,
)
from errors import ValidationError


def test_envelope_shape():
    assert envelope("OK", [1]) == {"message": "OK", "data": [1]}
    assert envelope("Task Deleted") == {"message": "Task Deleted", "data": {}}
    assert envelope("OK", 0) == {"message": "OK", "data": 0}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("true", True),
        ("FALSE", False),
        ("42", 42),
        ("-3.5", -3.5),
        ("1e3", "1e3"),
        ("007", "007"),
        ("123456789012345678901e23", "123456789012345678901e23"),
        ("0.25", 0.25),
        ("  7 ", 7),
        ("", ""),
        ("12abc", "12abc"),
        ("Alice", "Alice"),
        (["1", "2"], ["1", "2"]),
    ],
)
def test_coerce_value(raw, expected):
    assert coerce_value(raw) == expected


@pytest.mark.parametrize(
    "raw, message",
    [
        (None, MISSING_BODY),
        ("   ", MISSING_BODY),
        ("{name:", UNPARSEABLE_BODY),
        ("{}", INVALID_BODY),
        ("[1]", INVALID_BODY),
        ({}, INVALID_BODY),
    ],
)
def test_load_body_rejections(raw, message):
    with pytest.raises(ValidationError) as exc:
        load_body(raw)
    assert exc.value.status_code == 400
    assert exc.value.message == message


def test_load_body_normalizes_fields():
    body = load_body('{"name": "T", "completed": "true", "deadline": "1700000000000", "tags": ["1"]}')
    assert body == {"name": "T", "completed": True, "deadline": 1700000000000, "tags": ["1"]}


def test_serialize_stringifies_ids_and_dates():
    oid = ObjectId()
    doc = {"_id": oid, "dateCreated": datetime(2030, 1, 1), "name": "x"}
    out = serialize(doc)
    assert out["_id"] == str(oid)
    assert out["dateCreated"] == "2030-01-01T00:00:00+00:00"
    assert out["name"] == "x"

    aware = serialize({"when": datetime(2030, 1, 1, tzinfo=timezone.utc)})
    assert aware["when"] == "2030-01-01T00:00:00+00:00"
