"""Validation orchestrator.

`Validator` picks a strategy for each value, runs it and raises a single
`ValidationErrors` aggregate on failure.

Strategy selection with ``strategy=Strategy.AUTO`` (the default):
1. Interface: the value's type defines ``validate`` or ``validate_context``
2. Tags: the value is a dataclass with field rules
3. JSON Schema: a schema is configured or the value provides ``json_schema()``
4. Tags otherwise

With ``run_all=True`` every applicable strategy runs in that order and the
errors are merged.
"""

import logging
import threading
import weakref
from typing import Any

from ._types import Strategy, TagFunc
from .context import ValidationContext, get_validation_context, raw_json_from
from .errors import ValidationErrors
from .interface import InterfaceStrategy, coerce_result
from .models import ValidatorConfig
from .presence import PresenceMap, compute_presence
from .schema import SchemaStrategy
from .tags import TagStrategy
from .telemetry import record_counter, traced_operation

logger = logging.getLogger(__name__)

__all__ = ["Validator", "default_validator", "validate", "validate_partial", "register_tag"]

# Order used by AUTO detection and by run_all
STRATEGY_PRIORITY = (Strategy.INTERFACE, Strategy.TAGS, Strategy.JSON_SCHEMA)


def _single_error(code: str, message: str) -> ValidationErrors:
    errors = ValidationErrors()
    errors.add("", code, message)
    return errors


class Validator:
    """Multi-strategy validator.

    A Validator is safe to share between threads. Options given to the
    constructor become its base configuration; options given to `validate`
    apply to that call only.

    Example usage:
        >>> from polyvalid import Validator, ValidationErrors
        >>>
        >>> validator = Validator(max_errors=10, redactor=lambda path: path == "password")
        >>> try:
        ...     validator.validate(user)
        ... except ValidationErrors as errs:
        ...     print(errs.to_dict())
        >>>
        >>> # Per-call options
        >>> validator.validate_partial(user, presence, disallow_unknown_fields=True)

    Raises:
        TypeError: For unknown option names
        ConfigurationError: For invalid option values
    """

    def __init__(self, **options: Any):
        self.config = ValidatorConfig.from_options(**options)
        self._tags = TagStrategy(self.config.custom_tags)
        self._schema = SchemaStrategy(self.config.effective_max_cached_schemas)
        self._interface = InterfaceStrategy()
        self._strategies = {
            Strategy.INTERFACE: self._interface,
            Strategy.TAGS: self._tags,
            Strategy.JSON_SCHEMA: self._schema,
        }

    def register_tag(self, name: str, fn: TagFunc) -> None:
        """Register a custom tag.

        Only allowed until the first validation builds the tag engine.

        Raises:
            TagRegistrationFrozenError: If called after the first validation
            ConfigurationError: If the name or function is invalid
        """
        self._tags.register(name, fn)

    def validate(self, value: Any, ctx: ValidationContext | None = None, **options: Any) -> None:
        """Validate a value.

        Args:
            value: The value to validate
            ctx: Request context; see `ValidationContext`
            **options: Per-call options overriding the validator's configuration

        Raises:
            ValidationErrors: If validation fails
            TypeError: For unknown option names
            ConfigurationError: For invalid option values
        """
        config = self.config.with_overrides(**options) if options else self.config

        with traced_operation(
            "polyvalid.validate",
            {
                "polyvalid.strategy": config.strategy.value,
                "polyvalid.partial": config.partial,
                "polyvalid.run_all": config.run_all,
                "polyvalid.value_type": type(value).__name__,
            },
        ) as span:
            errors = self._run(value, ctx, config)
            if errors is not None:
                span.set_attribute("polyvalid.error_count", len(errors))
                span.set_attribute("polyvalid.truncated", errors.truncated)

        if errors is not None:
            record_counter(
                "polyvalid.validation.failures",
                attributes={"strategy": config.strategy.value},
                description="Number of failed validation calls",
            )
            logger.debug(f"Validation of {type(value).__name__} failed with {len(errors)} error(s)")
            raise errors

    def validate_partial(
        self,
        value: Any,
        presence: PresenceMap | Any,
        ctx: ValidationContext | None = None,
        **options: Any,
    ) -> None:
        """Validate only the fields recorded in ``presence`` (PATCH semantics).

        Same as ``validate(value, ctx, partial=True, presence=presence, **options)``.
        """
        options["partial"] = True
        options["presence"] = presence
        self.validate(value, ctx, **options)

    def is_applicable(self, value: Any, strategy: Strategy, config: ValidatorConfig | None = None) -> bool:
        """Return True if ``strategy`` can validate ``value``."""
        config = config or self.config
        if strategy is Strategy.JSON_SCHEMA:
            return config.custom_schema is not None or self._schema.is_applicable(value)
        if strategy in self._strategies:
            return bool(self._strategies[strategy].is_applicable(value))
        return False

    def detect_strategy(self, value: Any, config: ValidatorConfig | None = None) -> Strategy:
        """Resolve AUTO for ``value``."""
        for strategy in STRATEGY_PRIORITY:
            if self.is_applicable(value, strategy, config):
                return strategy
        return Strategy.TAGS

    def _run(
        self, value: Any, ctx: ValidationContext | None, config: ValidatorConfig
    ) -> ValidationErrors | None:
        if value is None:
            return _single_error("nil", "cannot validate nil value")

        while isinstance(value, weakref.ref):
            value = value()
            if value is None:
                return _single_error("nil_pointer", "cannot validate nil pointer")

        ctx = self._effective_context(ctx, config)
        config = self._with_presence(config, ctx)

        if config.custom_validator is not None:
            try:
                result = config.custom_validator(value)
            except ValueError as e:
                result = e
            errors = coerce_result(result, config.max_errors)
            if errors is not None:
                logger.debug("Custom validator rejected the value")
                return errors

        if config.run_all:
            return self._run_all(value, ctx, config)

        strategy = config.strategy
        if strategy is Strategy.AUTO:
            strategy = self.detect_strategy(value, config)
        logger.debug(f"Validating {type(value).__name__} with strategy '{strategy.value}'")
        return self._strategies[strategy].validate(value, config, ctx)

    def _run_all(
        self, value: Any, ctx: ValidationContext, config: ValidatorConfig
    ) -> ValidationErrors | None:
        combined = ValidationErrors(limit=config.max_errors)
        passed = 0
        for strategy in STRATEGY_PRIORITY:
            if not self.is_applicable(value, strategy, config):
                continue
            # With require_any the remaining strategies still decide pass/fail
            if combined.truncated and not config.require_any:
                break
            errors = self._strategies[strategy].validate(value, config, ctx)
            logger.debug(
                f"Strategy '{strategy.value}' reported {len(errors) if errors else 0} error(s)"
            )
            if errors is None or not errors.has_errors():
                passed += 1
                continue
            combined.add_error(errors)

        if config.require_any and passed > 0:
            return None
        if not combined.has_errors():
            return None
        combined.sort()
        return combined

    @staticmethod
    def _effective_context(
        ctx: ValidationContext | None, config: ValidatorConfig
    ) -> ValidationContext:
        if config.context is not None:
            return config.context  # type: ignore[no-any-return]
        if ctx is not None:
            return ctx
        return get_validation_context() or ValidationContext()

    @staticmethod
    def _with_presence(config: ValidatorConfig, ctx: ValidationContext) -> ValidatorConfig:
        """Fill in the presence map from the raw request body when one is needed."""
        if config.presence is not None or not (config.partial or config.disallow_unknown_fields):
            return config
        raw = raw_json_from(ctx)
        if raw is None:
            return config
        try:
            presence = compute_presence(raw)
        except ValueError as e:
            logger.debug(f"Cannot compute presence from raw JSON: {e}")
            return config
        return config.model_copy(update={"presence": presence})


# Process-wide default validator, created on first use
_default_validator: Validator | None = None
_default_lock = threading.Lock()


def default_validator() -> Validator:
    """Return the shared default `Validator`."""
    global _default_validator
    if _default_validator is None:
        with _default_lock:
            if _default_validator is None:
                _default_validator = Validator()
    return _default_validator


def validate(value: Any, ctx: ValidationContext | None = None, **options: Any) -> None:
    """Validate ``value`` with the default validator."""
    default_validator().validate(value, ctx, **options)


def validate_partial(
    value: Any, presence: PresenceMap | Any, ctx: ValidationContext | None = None, **options: Any
) -> None:
    """Partially validate ``value`` with the default validator."""
    default_validator().validate_partial(value, presence, ctx, **options)


def register_tag(name: str, fn: TagFunc) -> None:
    """Register a custom tag on the default validator."""
    default_validator().register_tag(name, fn)
