"""Type definitions shared across polyvalid modules."""

from collections.abc import Callable, Mapping, Sequence, Set
from dataclasses import dataclass, is_dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .context import ValidationContext

__all__ = [
    "Strategy",
    "FieldKind",
    "FieldLevel",
    "InterfaceKind",
    "SelfValidating",
    "ContextValidating",
    "SchemaProviding",
    "Redactor",
    "FieldNameMapper",
    "MessageFunc",
    "TagFunc",
    "CustomValidator",
    "kind_of",
]


class Strategy(Enum):
    """Validation technique to apply.

    - AUTO: pick per value; priority is interface, tags, then JSON Schema
    - TAGS: declarative rules attached to dataclass fields
    - JSON_SCHEMA: a JSON Schema document
    - INTERFACE: the value's own ``validate`` / ``validate_context`` method
    """

    AUTO = "auto"
    TAGS = "tags"
    JSON_SCHEMA = "json_schema"
    INTERFACE = "interface"


class FieldKind(Enum):
    """Underlying kind of a field value, handed to message functions."""

    NONE = "none"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    BYTES = "bytes"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    STRUCT = "struct"
    OTHER = "other"


class InterfaceKind(Enum):
    """Which user validation method a type offers, resolved once per type."""

    NONE = "none"
    VALUE = "value"
    CONTEXT = "context"


def kind_of(value: Any) -> FieldKind:
    """Classify a value into a `FieldKind`."""
    if value is None:
        return FieldKind.NONE
    if isinstance(value, bool):
        return FieldKind.BOOL
    if isinstance(value, int):
        return FieldKind.INT
    if isinstance(value, float):
        return FieldKind.FLOAT
    if isinstance(value, str):
        return FieldKind.STRING
    if isinstance(value, bytes | bytearray):
        return FieldKind.BYTES
    if isinstance(value, Mapping):
        return FieldKind.MAPPING
    if isinstance(value, Sequence | Set):
        return FieldKind.SEQUENCE
    if is_dataclass(value) and not isinstance(value, type):
        return FieldKind.STRUCT
    return FieldKind.OTHER


@dataclass(frozen=True)
class FieldLevel:
    """Everything a tag function knows about the field it checks.

    Attributes:
        value: The field value.
        param: The tag parameter (``"3"`` for ``min=3``), empty if none.
        path: Dot path of the field.
        parent: The dataclass instance holding the field, if any.
        kind: Underlying kind of ``value``.
    """

    value: Any
    param: str = ""
    path: str = ""
    parent: Any = None
    kind: FieldKind = FieldKind.OTHER


@runtime_checkable
class SelfValidating(Protocol):
    """A value that validates itself."""

    def validate(self) -> Any: ...


@runtime_checkable
class ContextValidating(Protocol):
    """A value that validates itself using the validation context."""

    def validate_context(self, ctx: "ValidationContext") -> Any: ...


@runtime_checkable
class SchemaProviding(Protocol):
    """A value that supplies its own JSON Schema as ``(id, schema_text)``."""

    def json_schema(self) -> tuple[str, str]: ...


# Returns True if the field at the given path must be redacted
Redactor = Callable[[str], bool]
FieldNameMapper = Callable[[str], str]
# Builds a message from the tag parameter and the field kind
MessageFunc = Callable[[str, FieldKind], str]
TagFunc = Callable[[FieldLevel], bool]
CustomValidator = Callable[[Any], Any]
