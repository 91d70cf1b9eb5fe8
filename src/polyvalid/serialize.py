"""Conversion of Python values to JSON-compatible trees.

The schema strategy validates JSON documents, so dataclasses, pydantic
models and common scalar types are turned into plain dicts, lists, strings
and numbers first. Dataclass fields use the same JSON names as error paths
(the ``json`` field metadata).
"""

import base64
import dataclasses
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

__all__ = ["JSON_METADATA_KEY", "json_field_name", "to_jsonable"]

# dataclasses.field(metadata=...) key holding the JSON name ("name" or "name,omitempty")
JSON_METADATA_KEY = "json"


def _json_tag(field: dataclasses.Field) -> tuple[str, bool]:
    tag = field.metadata.get(JSON_METADATA_KEY, "")
    name, _, opts = str(tag).partition(",")
    return name, "omitempty" in opts.split(",")


def json_field_name(field: dataclasses.Field) -> str:
    """Return the JSON name of a dataclass field.

    Falls back to the attribute name when no name is given or the field is
    excluded from JSON with ``"-"``.
    """
    name, _ = _json_tag(field)
    if not name or name == "-":
        return field.name
    return name


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, str | bytes | list | tuple | dict | set | frozenset):
        return len(value) == 0
    return False


def to_jsonable(obj: Any) -> Any:
    """Convert ``obj`` into a tree of dicts, lists and JSON scalars.

    Raises:
        TypeError: If a value has no JSON representation
    """
    if obj is None or isinstance(obj, bool | int | str):
        return obj
    if isinstance(obj, float):
        return obj
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        result: dict[str, Any] = {}
        for field in dataclasses.fields(obj):
            name, omitempty = _json_tag(field)
            if name == "-":
                continue
            value = getattr(obj, field.name)
            if omitempty and _is_empty(value):
                continue
            result[name or field.name] = to_jsonable(value)
        return result
    if isinstance(obj, dict):
        return {_json_key(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, list | tuple | set | frozenset):
        return [to_jsonable(item) for item in obj]
    if isinstance(obj, Enum):
        return to_jsonable(obj.value)
    if isinstance(obj, datetime | date | time):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes | bytearray):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if hasattr(obj, "isoformat"):
        # Handle any other datetime-like objects
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _json_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, bool | int | float | UUID) or isinstance(key, Enum):
        return str(key.value if isinstance(key, Enum) else key)
    raise TypeError(f"Keys of type {type(key).__name__} are not JSON serializable")


