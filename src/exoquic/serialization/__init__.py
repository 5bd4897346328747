"""
Serialization utilities for exoquic.

Example:
    >>> from exoquic.serialization import json_dumps, canonical_json
    >>> from uuid import uuid4
    >>>
    >>> json_str = json_dumps({"id": uuid4()})
"""

from exoquic.serialization.json import (
    ExoquicJSONEncoder,
    canonical_json,
    json_dumps,
    json_loads,
)

__all__ = [
    "ExoquicJSONEncoder",
    "canonical_json",
    "json_dumps",
    "json_loads",
]
