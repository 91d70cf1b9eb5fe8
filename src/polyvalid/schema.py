"""JSON Schema validation strategy.

A value opts in by providing ``json_schema() -> (schema_id, schema_text)``,
or a caller supplies ``custom_schema`` (and optionally ``custom_schema_id``)
per call. Compiled schemas are cached per `Validator` by id.

The validated document is the raw request body from the validation context
when one is attached, otherwise the value converted with
`polyvalid.serialize.to_jsonable`. In partial mode the document is pruned
to the paths in the presence map first.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any

from jsonschema import FormatChecker
from jsonschema.exceptions import SchemaError
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError
from jsonschema.protocols import Validator as JsonSchemaValidator
from jsonschema.validators import Draft202012Validator, validator_for
from referencing import Registry, Resource
from referencing.exceptions import NoSuchAnchor, PointerToNowhere, Unresolvable
from referencing.jsonschema import DRAFT202012, specification_with

from ._types import SchemaProviding
from .caching import SchemaCache
from .context import ValidationContext, raw_json_from
from .errors import ValidationErrors
from .models import ValidatorConfig
from .presence import MAX_RECURSION_DEPTH, PresenceMap
from .serialize import to_jsonable
from .tags import redact

logger = logging.getLogger(__name__)

__all__ = ["SchemaCompileError", "SchemaStrategy", "compile_schema", "prune_by_presence"]

_SCALARS = (str, int, float, bool, type(None))


class SchemaCompileError(ValueError):
    """Raised when a schema document cannot be parsed or is not a valid schema."""

    pass


def compile_schema(schema: str | bytes | Mapping[str, Any]) -> JsonSchemaValidator:
    """Compile a JSON Schema document into a validator.

    The draft is picked from ``$schema`` (2020-12 when absent) and formats
    are checked.

    Args:
        schema: Schema as JSON text or an already decoded document

    Returns:
        A `jsonschema` validator instance

    Raises:
        SchemaCompileError: If the document is not valid JSON, not a valid
            schema, or holds a local ``$ref`` that points nowhere
    """
    if isinstance(schema, str | bytes):
        try:
            document: Any = json.loads(schema)
        except json.JSONDecodeError as e:
            raise SchemaCompileError(f"invalid schema JSON: {e}") from e
    else:
        document = dict(schema)

    if not isinstance(document, dict | bool):
        raise SchemaCompileError("schema must be a JSON object or boolean")

    cls = validator_for(document, default=Draft202012Validator)
    try:
        cls.check_schema(document)
    except SchemaError as e:
        raise SchemaCompileError(f"invalid schema: {e.message}") from e
    if isinstance(document, dict):
        _check_references(document, cls)
    return cls(document, format_checker=FormatChecker())


def _check_references(document: dict[str, Any], cls: type[JsonSchemaValidator]) -> None:
    """Resolve every ``$ref`` in the document once so broken ones fail at compile time.

    References to other documents are left to validation time.
    """
    dialect = cls.META_SCHEMA.get("$schema", "")
    resource = specification_with(dialect, default=DRAFT202012).create_resource(document)
    base_uri = resource.id() or ""
    registry = Registry().with_resource(base_uri, resource).crawl()
    _walk_references(registry.resolver(base_uri=base_uri), resource)


def _walk_references(resolver: Any, resource: Resource[Any]) -> None:
    contents = resource.contents
    ref = contents.get("$ref") if isinstance(contents, Mapping) else None
    if isinstance(ref, str):
        try:
            resolver.lookup(ref)
        except (PointerToNowhere, NoSuchAnchor) as e:
            raise SchemaCompileError(f"unresolvable reference '{ref}': {e}") from e
        except Unresolvable:
            logger.debug(f"Reference '{ref}' names another document; resolved during validation")
    for sub in resource.subresources():
        _walk_references(resolver.in_subresource(sub), sub)


def prune_by_presence(data: Any, presence: PresenceMap, prefix: str = "", depth: int = 0) -> Any:
    """Drop the parts of a decoded document that were not sent.

    Object keys outside the presence map are removed and array elements
    outside it become ``None`` placeholders so indexes stay stable. Below
    `MAX_RECURSION_DEPTH` subtrees are returned unchanged.
    """
    if depth > MAX_RECURSION_DEPTH:
        return data
    if isinstance(data, dict):
        out = {}
        for key, value in data.items():
            path = _join(prefix, str(key))
            if presence.has_prefix(path):
                out[key] = prune_by_presence(value, presence, path, depth + 1)
        return out
    if isinstance(data, list):
        items = []
        for i, value in enumerate(data):
            path = _join(prefix, str(i))
            if presence.has_prefix(path):
                items.append(prune_by_presence(value, presence, path, depth + 1))
            else:
                items.append(None)
        return items
    return data


class SchemaStrategy:
    """Runs JSON Schema validation for one `Validator`."""

    def __init__(self, capacity: int):
        self.cache = SchemaCache(capacity)

    def is_applicable(self, value: Any) -> bool:
        """True for values providing a ``json_schema()`` method."""
        return isinstance(value, SchemaProviding)

    def validate(
        self, value: Any, config: ValidatorConfig, ctx: ValidationContext | None
    ) -> ValidationErrors | None:
        source = self._schema_source(value, config)
        if source is None:
            return None
        schema_id, schema_doc = source

        errors = ValidationErrors(limit=config.max_errors)
        try:
            validator = self.cache.get_or_compile(schema_id, lambda: compile_schema(schema_doc))
        except SchemaCompileError as e:
            errors.add("", "schema_compile_error", f"failed to compile schema: {e}")
            return errors

        document, failed = self._document(value, ctx, errors)
        if failed:
            return errors

        if config.partial and config.presence is not None:
            document = prune_by_presence(document, config.presence)

        try:
            for error in validator.iter_errors(document):
                for leaf in _leaves(error):
                    if not self._add(errors, config, leaf):
                        break
                if errors.truncated:
                    break
        except (SchemaError, Unresolvable, RecursionError) as e:
            # Unresolvable references surface only while validating
            logger.debug(f"Schema '{schema_id}' failed during validation: {e}")
            errors = ValidationErrors(limit=config.max_errors)
            errors.add("", "schema_validation_error", f"schema validation failed: {e}")
            return errors

        if not errors.has_errors():
            return None
        errors.sort()
        return errors

    def _schema_source(
        self, value: Any, config: ValidatorConfig
    ) -> tuple[str, str | bytes | Mapping[str, Any]] | None:
        if config.custom_schema is not None:
            return config.custom_schema_id, config.custom_schema
        if isinstance(value, SchemaProviding):
            schema_id, schema_text = value.json_schema()
            return schema_id, schema_text
        return None

    def _document(
        self, value: Any, ctx: ValidationContext | None, errors: ValidationErrors
    ) -> tuple[Any, bool]:
        raw = raw_json_from(ctx)
        if raw is not None:
            try:
                return json.loads(raw), False
            except (ValueError, RecursionError) as e:
                errors.add("", "unmarshal_error", f"failed to decode raw JSON: {e}")
                return None, True
        try:
            return to_jsonable(value), False
        except (TypeError, ValueError) as e:
            errors.add("", "marshal_error", f"failed to serialize value: {e}")
            return None, True

    def _add(
        self, errors: ValidationErrors, config: ValidatorConfig, error: JsonSchemaValidationError
    ) -> bool:
        path = ".".join(str(p) for p in error.absolute_path)
        if config.field_name_mapper is not None and path:
            path = config.field_name_mapper(path)
        keyword = str(error.validator)
        meta: dict[str, Any] = {
            "kind": keyword,
            "schema_path": "#/" + "/".join(str(p) for p in error.absolute_schema_path),
        }
        if isinstance(error.instance, _SCALARS):
            meta["value"] = error.instance
        message = error.message
        if config.redactor is not None and config.redactor(path):
            meta, message = redact(meta, message, raw=repr(error.instance))
        return errors.add(path, f"schema.{keyword}", message, meta)


def _leaves(error: JsonSchemaValidationError) -> list[JsonSchemaValidationError]:
    """Depth-first leaf errors; combinators like anyOf carry their causes in ``context``."""
    if not error.context:
        return [error]
    leaves = []
    for sub in error.context:
        leaves.extend(_leaves(sub))
    return leaves


def _join(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key
