"""Validation context for polyvalid.

`ValidationContext` carries request-scoped data into validation: the raw
JSON body for the schema strategy and arbitrary key-value state for
context-aware ``validate_context`` methods (tenant, locale, clock, ...).

A context can be passed explicitly to `Validator.validate`, or installed
for the current task/thread with `use_validation_context` so that
middleware can attach the request body once and every validation call
below it picks it up.

The engine never checks for cancellation: the context is metadata, not a
control mechanism.
"""

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "ValidationContext",
    "get_validation_context",
    "set_validation_context",
    "reset_validation_context",
    "use_validation_context",
    "inject_raw_json",
    "raw_json_from",
]


@dataclass
class ValidationContext:
    """Request-scoped context for validation.

    Example usage:
        >>> from polyvalid import ValidationContext
        >>>
        >>> ctx = ValidationContext(raw_json=request_body)
        >>> ctx.set("tenant", "acme")
        >>> ctx.get("tenant")
        'acme'
        >>> ctx.get("locale", default="en")
        'en'
    """

    # Original request bytes, validated by the schema strategy instead of
    # re-serializing the decoded value
    raw_json: bytes | None = None

    # Simple key-value storage
    _data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by key.

        Args:
            key: The key to look up
            default: Default value if key not found

        Returns:
            The value for the key, or default if not found
        """
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a value for a key.

        Args:
            key: The key to set
            value: The value to store
        """
        self._data[key] = value

    def copy(self, **kwargs: Any) -> "ValidationContext":
        """Create a copy of this context with optional field updates.

        Args:
            **kwargs: Fields to update in the new context

        Returns:
            A new ValidationContext with updated fields
        """
        new_context = ValidationContext(raw_json=self.raw_json, _data=self._data.copy())

        for key, value in kwargs.items():
            if hasattr(new_context, key):
                setattr(new_context, key, value)
            else:
                raise ValueError(f"Invalid field: {key}")

        return new_context


def inject_raw_json(ctx: ValidationContext | None, raw: bytes | str) -> ValidationContext:
    """Return a copy of ``ctx`` carrying the raw JSON body.

    Args:
        ctx: The context to extend, or None for a fresh one
        raw: The raw request body

    Returns:
        A new context; ``ctx`` is not modified
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    if ctx is None:
        return ValidationContext(raw_json=raw)
    return ctx.copy(raw_json=raw)


def raw_json_from(ctx: ValidationContext | None) -> bytes | None:
    """Return the raw JSON body attached to ``ctx``, if any non-empty one is."""
    if ctx is None or not ctx.raw_json:
        return None
    return ctx.raw_json


# Context variable holding the ambient validation context for the current
# task or thread. The default is None, meaning no context was installed.
validation_context_var = contextvars.ContextVar[ValidationContext | None](
    "validation_context", default=None
)


def get_validation_context() -> ValidationContext | None:
    """
    Get the validation context installed for the current task or thread.

    Returns:
        The ValidationContext if available, None otherwise.
    """
    return validation_context_var.get()


def set_validation_context(
    context: ValidationContext | None,
) -> "contextvars.Token[ValidationContext | None]":
    """
    Install a validation context for the current task or thread.

    Args:
        context: The ValidationContext to set

    Returns:
        A token that can be used to reset the context
    """
    return validation_context_var.set(context)


def reset_validation_context(token: "contextvars.Token[ValidationContext | None]") -> None:
    """
    Reset the validation context using a token.

    Args:
        token: The token returned by set_validation_context
    """
    validation_context_var.reset(token)


@contextmanager
def use_validation_context(context: ValidationContext) -> Iterator[ValidationContext]:
    """Install ``context`` for the duration of a ``with`` block.

    Example:
        >>> with use_validation_context(ValidationContext(raw_json=body)):
        ...     validator.validate(payload)
    """
    token = set_validation_context(context)
    try:
        yield context
    finally:
        reset_validation_context(token)
