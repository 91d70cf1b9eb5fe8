"""Pydantic models for polyvalid.

This module contains the validator configuration snapshot and the wire
models for serialized error reports.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ._types import CustomValidator, FieldNameMapper, MessageFunc, Redactor, Strategy, TagFunc
from .context import ValidationContext
from .errors import ConfigurationError, ValidationErrors
from .presence import PresenceMap

DEFAULT_MAX_FIELDS = 10000
DEFAULT_MAX_CACHED_SCHEMAS = 1024

# Options that only make sense while the tag engine is being built
CONSTRUCTION_ONLY_OPTIONS = frozenset({"custom_tags", "max_cached_schemas"})

_RESERVED_TAG_CHARS = frozenset(",=| ")


class PolyvalidBaseModel(BaseModel):
    """Base model for all polyvalid Pydantic models.

    - extra="forbid": Rejects any fields not defined in the model
    - frozen=True: Makes instances immutable for thread safety
    """

    model_config = ConfigDict(extra="forbid", frozen=True)


class ValidatorConfig(PolyvalidBaseModel):
    """Immutable snapshot of validation options.

    A `Validator` keeps one base snapshot built at construction. Per-call
    options never touch it: `with_overrides` returns a new snapshot whose
    option-bearing containers are copies.

    Attributes:
        strategy: Validation strategy, AUTO by default.
        run_all: Run every applicable strategy and merge their errors.
        require_any: With run_all, succeed when any applicable strategy passed.
        partial: Validate only the fields recorded in `presence`.
        max_errors: Maximum errors reported (0 means unlimited).
        max_fields: Maximum presence leaves checked in partial mode (0 means 10000).
        max_cached_schemas: Compiled schema cache capacity (0 means 1024).
        disallow_unknown_fields: Report payload fields the dataclass does not declare.
        context: Context override, wins over the context passed to validate().
        presence: Presence map for partial validation.
        custom_schema_id: Cache id for `custom_schema`.
        custom_schema: JSON Schema text (or decoded document) to validate against.
        custom_validator: Callback run before every strategy.
        field_name_mapper: Transforms error paths.
        redactor: Returns True for paths whose values must not be echoed.
        custom_tags: Additional tag functions keyed by tag name.
        messages: Static message overrides keyed by tag name.
        message_funcs: Parametric message builders keyed by tag name.

    Example:
        >>> config = ValidatorConfig(max_errors=5)
        >>> config.with_overrides(partial=True).partial
        True
        >>> config.partial
        False
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    strategy: Strategy = Strategy.AUTO
    run_all: bool = False
    require_any: bool = False
    partial: bool = False
    max_errors: int = Field(default=0, ge=0)
    max_fields: int = Field(default=0, ge=0)
    max_cached_schemas: int = Field(default=0, ge=0)
    disallow_unknown_fields: bool = False
    # Typed loosely so pydantic leaves the instances untouched; see the validators below
    context: Any = None
    presence: Any = None
    custom_schema_id: str = ""
    custom_schema: str | dict[str, Any] | None = None
    custom_validator: CustomValidator | None = None
    field_name_mapper: FieldNameMapper | None = None
    redactor: Redactor | None = None
    custom_tags: dict[str, TagFunc] = Field(default_factory=dict)
    messages: dict[str, str] = Field(default_factory=dict)
    message_funcs: dict[str, MessageFunc] = Field(default_factory=dict)

    @field_validator("presence", mode="before")
    @classmethod
    def coerce_presence(cls, value: Any) -> Any:
        """Accept any iterable of paths (or a path -> bool mapping) as a presence map."""
        presence = _to_presence(value)
        if presence is not None and not isinstance(presence, PresenceMap):
            raise ValueError("presence must be a PresenceMap or an iterable of paths")
        return presence

    @field_validator("context")
    @classmethod
    def check_context(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, ValidationContext):
            raise ValueError("context must be a ValidationContext")
        return value

    @field_validator("custom_tags")
    @classmethod
    def check_tag_names(cls, value: dict[str, TagFunc]) -> dict[str, TagFunc]:
        """Reject tag names that cannot appear in a rule string."""
        for name in value:
            check_tag_name(name)
        return value

    @property
    def effective_max_fields(self) -> int:
        return self.max_fields if self.max_fields > 0 else DEFAULT_MAX_FIELDS

    @property
    def effective_max_cached_schemas(self) -> int:
        return self.max_cached_schemas if self.max_cached_schemas > 0 else DEFAULT_MAX_CACHED_SCHEMAS

    @classmethod
    def from_options(cls, **options: Any) -> ValidatorConfig:
        """Build a snapshot from `Validator` keyword options.

        Raises:
            TypeError: If an option name is unknown
            ConfigurationError: If an option value is invalid
        """
        _check_option_names(options)
        return cls._build(options)

    def with_overrides(self, **overrides: Any) -> ValidatorConfig:
        """Return a new snapshot with per-call options applied.

        The result is validated like a fresh config and owns copies of the
        option-bearing dicts.

        Args:
            **overrides: Option names and values

        Returns:
            A fresh snapshot; ``self`` is left untouched

        Raises:
            TypeError: If an option name is unknown or construction-only
            ConfigurationError: If an option value is invalid
        """
        _check_option_names(overrides)
        late = set(overrides) & CONSTRUCTION_ONLY_OPTIONS
        if late:
            raise TypeError(
                f"Option(s) {', '.join(sorted(late))} can only be set when creating a Validator"
            )
        return self._build({**dict(self), **overrides})

    @classmethod
    def _build(cls, values: dict[str, Any]) -> ValidatorConfig:
        try:
            return cls.model_validate(values)
        except PydanticValidationError as e:
            raise ConfigurationError(_format_validation_error(e)) from e


def _check_option_names(options: Mapping[str, Any]) -> None:
    unknown = set(options) - set(ValidatorConfig.model_fields)
    if unknown:
        raise TypeError(f"Unknown validation option(s): {', '.join(sorted(unknown))}")


def _format_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(part) for part in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "invalid validator options: " + "; ".join(parts)


def check_tag_name(name: str) -> None:
    """Validate a custom tag name.

    Raises:
        ValueError: If the name is empty or contains rule separators
    """
    if not name or not isinstance(name, str):
        raise ValueError("tag name must be a non-empty string")
    if _RESERVED_TAG_CHARS & set(name):
        raise ValueError(f"tag name '{name}' must not contain any of: , = | or spaces")


def _to_presence(value: Any) -> Any:
    if value is None or isinstance(value, PresenceMap):
        return value
    if isinstance(value, Mapping):
        return PresenceMap(path for path, present in value.items() if present)
    if isinstance(value, Iterable) and not isinstance(value, str | bytes):
        return PresenceMap(value)
    return value


class FieldErrorModel(PolyvalidBaseModel):
    """Wire model for a single field error."""

    path: str
    code: str
    message: str
    meta: dict[str, Any] | None = None


class ErrorReportModel(PolyvalidBaseModel):
    """Wire model for a validation error report.

    Serializes as ``{"errors": [...], "truncated": bool}``.

    Example:
        >>> report = ErrorReportModel.from_errors(errs)
        >>> report.model_dump(exclude_none=True)
    """

    errors: list[FieldErrorModel] = Field(default_factory=list)
    truncated: bool = False

    @classmethod
    def from_errors(cls, errors: ValidationErrors) -> ErrorReportModel:
        return cls.model_validate(errors.to_dict())
