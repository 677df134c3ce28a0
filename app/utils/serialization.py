from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a 24-hex id string, returning None when it is malformed"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_value(value: Any) -> Any:
    """Recursively serialize non-JSON-serializable values"""
    if isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, timedelta):
        return str(value)
    elif isinstance(value, ObjectId):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [serialize_value(item) for item in value]
    return value


def convert_document_to_json(document: dict) -> dict:
    """Convert a Mongo document to JSON, exposing _id as id"""
    document = dict(document)
    if "_id" in document:
        document["id"] = str(document.pop("_id"))
    return {key: serialize_value(value) for key, value in document.items()}
