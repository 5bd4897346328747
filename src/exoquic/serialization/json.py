"""
JSON serialization utilities for exoquic.

Subscription requests are application data, so they may contain UUIDs and
datetimes that the standard encoder rejects. Event batches arrive from the
server as JSON text and are stored in the replay cache as JSON text.

Example:
    >>> from exoquic.serialization import canonical_json, json_loads
    >>> canonical_json({"b": 1, "a": 2})
    '{"a":2,"b":1}'
"""

import json
from datetime import datetime
from typing import Any
from uuid import UUID

from exoquic.exceptions import SerializationError


class ExoquicJSONEncoder(json.JSONEncoder):
    """
    Custom JSON encoder that handles UUID and datetime objects.

    - UUID objects: Converted to string representation
    - datetime objects: Converted to ISO 8601 format string
    """

    def default(self, obj: Any) -> Any:
        """
        Convert non-serializable objects to JSON-serializable formats.

        Raises:
            TypeError: If object type is not supported
        """
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """
    Serialize object to JSON string with UUID and datetime support.

    Raises:
        SerializationError: If the object contains unsupported types
    """
    try:
        return json.dumps(obj, cls=ExoquicJSONEncoder)
    except (TypeError, ValueError) as e:
        raise SerializationError(type(obj).__name__, str(e)) from e


def json_loads(s: str | bytes) -> Any:
    """
    Deserialize JSON text to Python object.

    Raises:
        SerializationError: If the text is not valid JSON
    """
    try:
        return json.loads(s)
    except (TypeError, ValueError) as e:
        raise SerializationError("payload", str(e)) from e


def canonical_json(obj: Any) -> str:
    """
    Serialize object to its canonical JSON form.

    Keys are sorted and separators are compact, so two objects with the
    same content always produce the same text regardless of key order.

    Args:
        obj: Object to serialize

    Returns:
        Canonical JSON string

    Raises:
        SerializationError: If the object contains unsupported types
    """
    try:
        return json.dumps(
            obj,
            cls=ExoquicJSONEncoder,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(type(obj).__name__, str(e)) from e


__all__ = [
    "ExoquicJSONEncoder",
    "canonical_json",
    "json_dumps",
    "json_loads",
]
