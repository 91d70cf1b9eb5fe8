"""Tag-based validation for dataclasses.

Constraints are declared per field as a rule string in the field
metadata, next to the field's JSON name:

```python
from dataclasses import dataclass
from polyvalid import rules

@dataclass
class CreateUser:
    email: str = rules("required,email", json="email")
    age: int = rules("gte=18", json="age", default=0)
    tags: list[str] = rules("max=5,dive,slug", json="tags", default_factory=list)
```

Rule grammar:
- rules are comma separated, each ``name`` or ``name=param``
- ``a|b`` passes if either alternative passes
- ``omitempty`` stops checking an empty value
- ``dive`` applies the remaining rules to every element of a list, tuple
  or set, or every value of a dict

Only the first failing rule of a field is reported. Nested dataclass
values are validated recursively; list elements only through ``dive``.
"""

import ipaddress
import logging
import re
import threading
import weakref
from collections.abc import Callable, Mapping, Sequence, Set
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse

from ._types import FieldKind, FieldLevel, TagFunc, kind_of
from .caching import TypeCache
from .context import ValidationContext
from .errors import REDACTED, ConfigurationError, TagRegistrationFrozenError, ValidationErrors
from .models import ValidatorConfig, check_tag_name
from .presence import PresenceMap
from .serialize import json_field_name

logger = logging.getLogger(__name__)

__all__ = [
    "VALIDATE_METADATA_KEY",
    "rules",
    "TagEngine",
    "TagStrategy",
    "default_message",
]

# dataclasses.field(metadata=...) key holding the rule string
VALIDATE_METADATA_KEY = "validate"

_OMITEMPTY = "omitempty"
_DIVE = "dive"


def rules(spec: str, *, json: str | None = None, **field_kwargs: Any) -> Any:
    """Declare a dataclass field with validation rules.

    Args:
        spec: Rule string, e.g. ``"required,min=3"``
        json: JSON name of the field, used in error paths
        **field_kwargs: Passed through to `dataclasses.field`
            (``default``, ``default_factory``, ...)

    Returns:
        A `dataclasses.field` carrying the rules in its metadata
    """
    metadata = dict(field_kwargs.pop("metadata", None) or {})
    metadata[VALIDATE_METADATA_KEY] = spec
    if json is not None:
        metadata["json"] = json
    return field(metadata=metadata, **field_kwargs)


# ---------------------------------------------------------------------------
# Rule parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Rule:
    """One comma-separated rule; several alternatives when written ``a|b``."""

    tag: str
    alternatives: tuple[tuple[str, str], ...]

    @property
    def param(self) -> str:
        return self.alternatives[0][1] if len(self.alternatives) == 1 else ""


@lru_cache(maxsize=1024)
def _parse_rules(spec: str) -> tuple[_Rule, ...]:
    parsed = []
    for raw in spec.split(","):
        raw = raw.strip()
        if not raw:
            continue
        alternatives = []
        for alt in raw.split("|"):
            name, _, param = alt.partition("=")
            alternatives.append((name.strip(), param.strip()))
        parsed.append(_Rule(tag=raw if len(alternatives) > 1 else alternatives[0][0],
                            alternatives=tuple(alternatives)))
    return tuple(parsed)


def _split_dive(parsed: tuple[_Rule, ...]) -> tuple[_Rule, ...] | None:
    for i, rule in enumerate(parsed):
        if rule.tag == _DIVE:
            return parsed[i + 1 :]
    return None


@dataclass(frozen=True)
class _FieldInfo:
    attr: str
    json_name: str
    rules: tuple[_Rule, ...]
    element_rules: tuple[_Rule, ...] | None  # rules after "dive", None without dive


@dataclass(frozen=True)
class _StructInfo:
    fields: tuple[_FieldInfo, ...]
    by_json: Mapping[str, _FieldInfo]
    has_rules: bool


def _build_struct_info(cls: type) -> _StructInfo:
    infos = []
    for f in fields(cls):
        spec = f.metadata.get(VALIDATE_METADATA_KEY, "")
        parsed = _parse_rules(spec) if spec else ()
        infos.append(
            _FieldInfo(
                attr=f.name,
                json_name=json_field_name(f),
                rules=parsed,
                element_rules=_split_dive(parsed),
            )
        )
    return _StructInfo(
        fields=tuple(infos),
        by_json={info.json_name: info for info in infos},
        has_rules=any(info.rules for info in infos),
    )


def _is_struct(value: Any) -> bool:
    return is_dataclass(value) and not isinstance(value, type)


# ---------------------------------------------------------------------------
# Built-in tags
# ---------------------------------------------------------------------------

_RE_USERNAME = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
_RE_SLUG = re.compile(r"^[a-z0-9-]+$")
_RE_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_RE_URI = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:.*$")
_RE_ALPHA = re.compile(r"^[a-zA-Z]+$")
_RE_ALPHANUM = re.compile(r"^[a-zA-Z0-9]+$")
_RE_NUMERIC = re.compile(r"^[-+]?[0-9]+(?:\.[0-9]+)?$")
_RE_NUMBER = re.compile(r"^[0-9]+$")
_RE_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_BOOLEAN_STRINGS = frozenset({"1", "0", "t", "f", "true", "false", "TRUE", "FALSE", "True", "False"})


def is_empty(value: Any) -> bool:
    """True for None, empty strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str | bytes | bytearray | Sequence | Mapping | Set):
        return len(value) == 0
    return False


def _size(value: Any) -> float | None:
    """Length of strings and collections, value of numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return value
    if isinstance(value, str | bytes | bytearray | Sequence | Mapping | Set):
        return len(value)
    return None


def _compare(op: Callable[[float, float], bool]) -> TagFunc:
    def check(fl: FieldLevel) -> bool:
        size = _size(fl.value)
        return size is not None and op(size, float(fl.param))

    return check


def _matches(pattern: re.Pattern[str]) -> TagFunc:
    def check(fl: FieldLevel) -> bool:
        return isinstance(fl.value, str) and pattern.match(fl.value) is not None

    return check


def _string_check(predicate: Callable[[str, str], bool]) -> TagFunc:
    def check(fl: FieldLevel) -> bool:
        return isinstance(fl.value, str) and predicate(fl.value, fl.param)

    return check


def _eq(fl: FieldLevel) -> bool:
    value = fl.value
    if isinstance(value, str):
        return value == fl.param
    if isinstance(value, bool):
        return str(value).lower() == fl.param.lower()
    size = _size(value)
    return size is not None and size == float(fl.param)


def _oneof(fl: FieldLevel) -> bool:
    value = fl.value.value if isinstance(fl.value, Enum) else fl.value
    if isinstance(value, bool) or not isinstance(value, str | int | float):
        return False
    return str(value) in fl.param.split()


def _url(fl: FieldLevel) -> bool:
    if not isinstance(fl.value, str):
        return False
    parsed = urlparse(fl.value)
    return bool(parsed.scheme) and (bool(parsed.netloc) or parsed.scheme == "file")


def _ip(version: int | None) -> TagFunc:
    def check(fl: FieldLevel) -> bool:
        if not isinstance(fl.value, str):
            return False
        try:
            address = ipaddress.ip_address(fl.value)
        except ValueError:
            return False
        return version is None or address.version == version

    return check


def _boolean(fl: FieldLevel) -> bool:
    return isinstance(fl.value, bool) or (
        isinstance(fl.value, str) and fl.value in _BOOLEAN_STRINGS
    )


def _numeric(fl: FieldLevel) -> bool:
    if isinstance(fl.value, bool):
        return False
    if isinstance(fl.value, int | float):
        return True
    return isinstance(fl.value, str) and _RE_NUMERIC.match(fl.value) is not None


BUILTIN_TAGS: dict[str, TagFunc] = {
    "required": lambda fl: not is_empty(fl.value),
    "email": _matches(_RE_EMAIL),
    "url": _url,
    "uri": _matches(_RE_URI),
    "min": _compare(lambda size, p: size >= p),
    "max": _compare(lambda size, p: size <= p),
    "len": _compare(lambda size, p: size == p),
    "gt": _compare(lambda size, p: size > p),
    "gte": _compare(lambda size, p: size >= p),
    "lt": _compare(lambda size, p: size < p),
    "lte": _compare(lambda size, p: size <= p),
    "eq": _eq,
    "ne": lambda fl: not _eq(fl),
    "oneof": _oneof,
    "alpha": _matches(_RE_ALPHA),
    "alphanum": _matches(_RE_ALPHANUM),
    "numeric": _numeric,
    "number": lambda fl: (isinstance(fl.value, int) and not isinstance(fl.value, bool) and fl.value >= 0)
    or (isinstance(fl.value, str) and _RE_NUMBER.match(fl.value) is not None),
    "lowercase": _string_check(lambda s, _: s != "" and s == s.lower()),
    "uppercase": _string_check(lambda s, _: s != "" and s == s.upper()),
    "contains": _string_check(lambda s, p: p in s),
    "excludes": _string_check(lambda s, p: p not in s),
    "startswith": _string_check(lambda s, p: s.startswith(p)),
    "endswith": _string_check(lambda s, p: s.endswith(p)),
    "uuid": _matches(_RE_UUID),
    "ip": _ip(None),
    "ipv4": _ip(4),
    "ipv6": _ip(6),
    "boolean": _boolean,
    "username": _matches(_RE_USERNAME),
    "slug": _matches(_RE_SLUG),
    "strong_password": lambda fl: isinstance(fl.value, str) and len(fl.value) >= 8,
}


def _sized_message(verb: str, param: str, kind: FieldKind) -> str:
    if kind is FieldKind.STRING:
        return f"must be {verb} {param} characters"
    if kind in (FieldKind.SEQUENCE, FieldKind.MAPPING):
        return f"must contain {verb} {param} items"
    return f"must be {verb} {param}"


_SIZED_VERBS = {
    "min": "at least",
    "gte": "at least",
    "max": "at most",
    "lte": "at most",
    "len": "exactly",
    "gt": "more than",
    "lt": "less than",
}

_MESSAGES = {
    "required": "is required",
    "email": "must be a valid email address",
    "url": "must be a valid URL",
    "uri": "must be a valid URI",
    "eq": "must be equal to {param}",
    "ne": "must not be equal to {param}",
    "oneof": "must be one of [{param}]",
    "alpha": "must contain only letters",
    "alphanum": "must contain only letters and numbers",
    "numeric": "must be a numeric value",
    "number": "must be a non-negative whole number",
    "lowercase": "must be lowercase",
    "uppercase": "must be uppercase",
    "contains": "must contain '{param}'",
    "excludes": "must not contain '{param}'",
    "startswith": "must start with '{param}'",
    "endswith": "must end with '{param}'",
    "uuid": "must be a valid UUID",
    "ip": "must be a valid IP address",
    "ipv4": "must be a valid IPv4 address",
    "ipv6": "must be a valid IPv6 address",
    "boolean": "must be a boolean value",
    "username": "must be 3-20 alphanumeric characters or underscore",
    "slug": "must be lowercase letters, numbers, and hyphens",
    "strong_password": "must be at least 8 characters",
}


def default_message(tag: str, param: str, kind: FieldKind) -> str:
    """Built-in English message for a failed tag.

    Size tags mention characters for strings and items for collections.
    """
    if tag in _SIZED_VERBS:
        return _sized_message(_SIZED_VERBS[tag], param, kind)
    template = _MESSAGES.get(tag)
    if template is None:
        return f"failed validation ({tag})"
    return template.format(param=param)


class TagEngine:
    """Registry of tag functions; read-only once built."""

    def __init__(self) -> None:
        self._tags: dict[str, TagFunc] = dict(BUILTIN_TAGS)

    def register(self, name: str, fn: TagFunc) -> None:
        self._tags[name] = fn

    def __contains__(self, name: object) -> bool:
        return name in self._tags

    def unknown(self, rule: _Rule) -> list[str]:
        """Names in ``rule`` that are not registered."""
        return [name for name, _ in rule.alternatives if name not in self._tags]

    def check(self, rule: _Rule, fl_base: FieldLevel) -> bool:
        """Evaluate a rule; any passing alternative satisfies it.

        Callers check `unknown` first.
        """
        for name, param in rule.alternatives:
            fn = self._tags[name]
            fl = FieldLevel(
                value=fl_base.value,
                param=param,
                path=fl_base.path,
                parent=fl_base.parent,
                kind=fl_base.kind,
            )
            try:
                if fn(fl):
                    return True
            except (ValueError, TypeError) as e:
                logger.warning(f"Tag '{name}' failed on '{fl.path}': {e}")
        return False


# ---------------------------------------------------------------------------
# Tag strategy
# ---------------------------------------------------------------------------


class _EngineState(Enum):
    UNBUILT = "unbuilt"
    BUILDING = "building"
    FROZEN = "frozen"


class _Resolve(Enum):
    FOUND = "found"
    UNKNOWN_FIELD = "unknown_field"
    UNRESOLVABLE = "unresolvable"


@dataclass
class _Resolution:
    status: _Resolve
    value: Any = None
    info: _FieldInfo | None = None
    parent: Any = None
    # Index/key segments walked since the last dataclass field
    steps_below_field: int = 0


class TagStrategy:
    """Runs tag validation for one `Validator`.

    The tag engine moves through UNBUILT -> BUILDING -> FROZEN exactly once,
    on first use. Tags can be registered only while UNBUILT.
    """

    def __init__(self, custom_tags: Mapping[str, TagFunc] | None = None):
        self._pending: dict[str, TagFunc] = dict(custom_tags or {})
        self._state = _EngineState.UNBUILT
        self._engine: TagEngine | None = None
        self._lock = threading.Lock()
        self._structs: TypeCache[type, _StructInfo] = TypeCache("tag-structs")

    @property
    def frozen(self) -> bool:
        return self._state is _EngineState.FROZEN

    def register(self, name: str, fn: TagFunc) -> None:
        """Register a custom tag before the engine is built.

        Raises:
            TagRegistrationFrozenError: If the engine was already built
            ConfigurationError: If the name is invalid or ``fn`` is not callable
        """
        try:
            check_tag_name(name)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if not callable(fn):
            raise ConfigurationError(f"tag function for '{name}' must be callable")
        with self._lock:
            if self._state is not _EngineState.UNBUILT:
                raise TagRegistrationFrozenError(name)
            self._pending[name] = fn

    def engine(self) -> TagEngine:
        """Return the tag engine, building and freezing it on first call."""
        if self._state is _EngineState.FROZEN and self._engine is not None:
            return self._engine
        with self._lock:
            if self._state is _EngineState.FROZEN and self._engine is not None:
                return self._engine
            self._state = _EngineState.BUILDING
            engine = TagEngine()
            for name, fn in self._pending.items():
                engine.register(name, fn)
            self._engine = engine
            self._state = _EngineState.FROZEN
            logger.debug(f"Tag engine built with {len(self._pending)} custom tag(s)")
            return engine

    def struct_info(self, cls: type) -> _StructInfo:
        return self._structs.get_or_compute(cls, _build_struct_info)

    def is_applicable(self, value: Any) -> bool:
        """True for dataclass instances with at least one rule."""
        return _is_struct(value) and self.struct_info(type(value)).has_rules

    def validate(
        self, value: Any, config: ValidatorConfig, ctx: ValidationContext | None
    ) -> ValidationErrors | None:
        """Validate a dataclass instance; non-dataclass values pass."""
        if not _is_struct(value):
            return None

        engine = self.engine()
        errors = ValidationErrors(limit=config.max_errors)
        presence = config.presence

        if config.disallow_unknown_fields and presence is not None:
            self._check_unknown_fields(value, presence, config, errors)

        if config.partial and presence is not None:
            self._validate_leaves(engine, value, presence, config, errors)
        else:
            self._validate_struct(engine, value, "", config, errors)

        if not errors.has_errors():
            return None
        errors.sort()
        return errors

    def _validate_struct(
        self,
        engine: TagEngine,
        obj: Any,
        prefix: str,
        config: ValidatorConfig,
        errors: ValidationErrors,
    ) -> None:
        for info in self.struct_info(type(obj)).fields:
            if errors.truncated:
                return
            path = _join(prefix, info.json_name)
            value = getattr(obj, info.attr)
            self._check_value(engine, value, info.rules, path, obj, config, errors, recurse=True)

    def _check_value(
        self,
        engine: TagEngine,
        value: Any,
        parsed: tuple[_Rule, ...],
        path: str,
        parent: Any,
        config: ValidatorConfig,
        errors: ValidationErrors,
        recurse: bool,
    ) -> None:
        kind = kind_of(value)
        base = FieldLevel(value=value, path=path, parent=parent, kind=kind)

        for i, rule in enumerate(parsed):
            if rule.tag == _OMITEMPTY:
                if is_empty(value):
                    return
                continue
            if rule.tag == _DIVE:
                self._dive(engine, value, parsed[i + 1 :], path, parent, config, errors, recurse)
                return
            unknown = engine.unknown(rule)
            if unknown:
                self._add(
                    errors, config, path, "tag_error", f"unknown validation tag '{unknown[0]}'", None
                )
                return
            if not engine.check(rule, base):
                self._report(errors, config, path, rule, value, kind)
                return

        if recurse and _is_struct(value):
            self._validate_struct(engine, value, path, config, errors)

    def _dive(
        self,
        engine: TagEngine,
        value: Any,
        parsed: tuple[_Rule, ...],
        path: str,
        parent: Any,
        config: ValidatorConfig,
        errors: ValidationErrors,
        recurse: bool,
    ) -> None:
        if isinstance(value, Mapping):
            items: Any = ((str(k), v) for k, v in value.items())
        elif isinstance(value, Sequence | Set) and not isinstance(value, str | bytes | bytearray):
            items = ((str(i), v) for i, v in enumerate(value))
        else:
            return
        for key, element in items:
            if errors.truncated:
                return
            self._check_value(
                engine, element, parsed, _join(path, key), parent, config, errors, recurse
            )

    def _validate_leaves(
        self,
        engine: TagEngine,
        obj: Any,
        presence: PresenceMap,
        config: ValidatorConfig,
        errors: ValidationErrors,
    ) -> None:
        leaves = presence.leaf_paths()
        cap = config.effective_max_fields
        if len(leaves) > cap:
            logger.warning(f"Partial validation capped at {cap} of {len(leaves)} fields")
            leaves = leaves[:cap]

        for path in leaves:
            if errors.truncated:
                return
            res = self._resolve(obj, path)
            if res.status is not _Resolve.FOUND or res.info is None:
                continue
            if res.steps_below_field == 0:
                parsed = res.info.rules
            elif res.steps_below_field == 1 and res.info.element_rules is not None:
                parsed = res.info.element_rules
            else:
                continue
            if parsed:
                self._check_value(
                    engine, res.value, parsed, path, res.parent, config, errors, recurse=False
                )

    def _check_unknown_fields(
        self,
        obj: Any,
        presence: PresenceMap,
        config: ValidatorConfig,
        errors: ValidationErrors,
    ) -> None:
        paths = sorted(presence)[: config.effective_max_fields]
        for path in paths:
            res = self._resolve(obj, path)
            if res.status is _Resolve.UNKNOWN_FIELD:
                self._add(errors, config, path, "unknown_field", "is not a recognized field", None)

    def _resolve(self, obj: Any, path: str) -> _Resolution:
        """Walk ``path`` through dataclasses, sequences and dicts.

        Weak references are dereferenced, numeric segments index sequences,
        names select dataclass fields by JSON name and string keys index
        dicts. A missing dataclass field on the final segment reports
        UNKNOWN_FIELD; anything else that cannot be walked is UNRESOLVABLE.
        """
        segments = path.split(".")
        current = obj
        info: _FieldInfo | None = None
        parent: Any = None
        steps = 0

        for i, segment in enumerate(segments):
            while isinstance(current, weakref.ref):
                current = current()
            if current is None:
                return _Resolution(_Resolve.UNRESOLVABLE)

            if _is_struct(current):
                found = self.struct_info(type(current)).by_json.get(segment)
                if found is None:
                    status = _Resolve.UNKNOWN_FIELD if i == len(segments) - 1 else _Resolve.UNRESOLVABLE
                    return _Resolution(status)
                parent = current
                info = found
                current = getattr(current, found.attr)
                steps = 0
            elif isinstance(current, Sequence) and not isinstance(current, str | bytes | bytearray):
                if not segment.isdigit() or int(segment) >= len(current):
                    return _Resolution(_Resolve.UNRESOLVABLE)
                current = current[int(segment)]
                steps += 1
            elif isinstance(current, Mapping):
                if segment not in current:
                    return _Resolution(_Resolve.UNRESOLVABLE)
                current = current[segment]
                steps += 1
            else:
                return _Resolution(_Resolve.UNRESOLVABLE)

        return _Resolution(_Resolve.FOUND, current, info, parent, steps)

    def _report(
        self,
        errors: ValidationErrors,
        config: ValidatorConfig,
        path: str,
        rule: _Rule,
        value: Any,
        kind: FieldKind,
    ) -> None:
        tag, param = rule.tag, rule.param
        if tag in config.messages:
            message = config.messages[tag]
        elif tag in config.message_funcs:
            message = config.message_funcs[tag](param, kind)
        else:
            message = default_message(tag, param, kind)
        self._add(
            errors,
            config,
            path,
            f"tag.{tag}",
            message,
            {"tag": tag, "param": param, "value": "" if value is None else str(value)},
        )

    def _add(
        self,
        errors: ValidationErrors,
        config: ValidatorConfig,
        path: str,
        code: str,
        message: str,
        meta: dict[str, Any] | None,
    ) -> None:
        if config.field_name_mapper is not None and path:
            path = config.field_name_mapper(path)
        if meta is not None and config.redactor is not None and config.redactor(path):
            meta, message = redact(meta, message)
        errors.add(path, code, message, meta)


def redact(meta: dict[str, Any], message: str, raw: str | None = None) -> tuple[dict[str, Any], str]:
    """Replace a sensitive value in error metadata and message text.

    Args:
        meta: Error metadata holding the raw value under ``"value"``
        message: Rendered message
        raw: Extra textual form of the value to scrub from the message

    Returns:
        The redacted metadata (a copy) and message
    """
    forms = {str(meta.get("value", "")), raw or ""}
    for form in sorted(forms, key=len, reverse=True):
        if form:
            message = message.replace(form, REDACTED)
    return {**meta, "value": REDACTED}, message


def _join(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key
