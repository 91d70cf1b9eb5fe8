"""Error model for polyvalid.

Every validation failure is a `ValidationError`. Strategies report
individual problems as `FieldError` values and the orchestrator hands
callers a single `ValidationErrors` aggregate, so ``except ValidationError``
catches everything the engine raises for bad input.

Configuration problems (negative limits, late tag registration) are a
separate family rooted at `ConfigurationError` and are only raised while
building or configuring a `Validator`.
"""

from typing import Any

__all__ = [
    "REDACTED",
    "ValidationError",
    "FieldError",
    "ValidationErrors",
    "ConfigurationError",
    "TagRegistrationFrozenError",
]

# Marker substituted for sensitive values in error output
REDACTED = "***REDACTED***"

# Unprocessable Entity
HTTP_UNPROCESSABLE = 422


class ValidationError(ValueError):
    """Root of every validation failure raised by polyvalid."""

    http_status = HTTP_UNPROCESSABLE


class FieldError(ValidationError):
    """A single validation failure.

    Attributes:
        path: Dot-delimited field path (e.g. ``items.2.price``). Empty for
            value-level errors.
        code: Stable, namespaced code (e.g. ``tag.required``, ``schema.type``).
        message: Human-readable message.
        meta: Extra details such as the tag, its parameter or the value.

    Example:
        >>> err = FieldError("email", "tag.required", "is required", {"tag": "required"})
        >>> str(err)
        'email: is required'
    """

    def __init__(
        self,
        path: str = "",
        code: str = "",
        message: str = "",
        meta: dict[str, Any] | None = None,
    ):
        self.path = path
        self.code = code
        self.message = message
        self.meta = meta
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if not self.path:
            return self.message
        return f"{self.path}: {self.message}"

    def __repr__(self) -> str:
        return f"FieldError(path={self.path!r}, code={self.code!r}, message={self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldError):
            return NotImplemented
        return (self.path, self.code, self.message, self.meta) == (
            other.path,
            other.code,
            other.message,
            other.meta,
        )

    def __hash__(self) -> int:
        return hash((self.path, self.code, self.message))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape; ``meta`` is omitted when empty."""
        result: dict[str, Any] = {"path": self.path, "code": self.code, "message": self.message}
        if self.meta:
            result["meta"] = dict(self.meta)
        return result


class ValidationErrors(ValidationError):
    """Aggregate of `FieldError` values returned by one validation call.

    Once `truncated` is set the aggregate refuses further errors: the limit
    is a hard stop for the call that produced it.

    Attributes:
        fields: Collected field errors.
        truncated: True if errors were dropped because of the error limit.
        limit: Maximum number of errors to accept (0 means unlimited).

    Example:
        >>> errs = ValidationErrors()
        >>> errs.add("email", "tag.required", "is required")
        True
        >>> errs.has("email")
        True
    """

    code = "validation_error"

    def __init__(
        self,
        fields: list[FieldError] | None = None,
        truncated: bool = False,
        limit: int = 0,
    ):
        self.fields: list[FieldError] = list(fields or [])
        self.truncated = truncated
        self.limit = limit
        super().__init__()

    def __str__(self) -> str:
        if not self.fields:
            return ""
        if len(self.fields) == 1:
            return str(self.fields[0])
        suffix = " (truncated)" if self.truncated else ""
        return f"validation failed: {'; '.join(str(f) for f in self.fields)}{suffix}"

    def __repr__(self) -> str:
        return f"ValidationErrors(fields={self.fields!r}, truncated={self.truncated})"

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self):
        return iter(self.fields)

    def __bool__(self) -> bool:
        return True

    def _accept(self) -> bool:
        if self.truncated:
            return False
        if self.limit > 0 and len(self.fields) >= self.limit:
            self.truncated = True
            return False
        return True

    def add(
        self, path: str, code: str, message: str, meta: dict[str, Any] | None = None
    ) -> bool:
        """Append a new field error.

        Returns:
            False if the error was refused because the limit was reached.
        """
        return self.add_field(FieldError(path, code, message, meta))

    def add_field(self, field: FieldError) -> bool:
        """Append an existing `FieldError`, honouring the limit."""
        if not self._accept():
            return False
        self.fields.append(field)
        return True

    def add_error(self, err: BaseException | None) -> None:
        """Add any error, flattening aggregates.

        `ValidationErrors` contribute all their fields and their truncation
        flag, `FieldError` is appended as-is and any other exception becomes
        a ``validation_error`` entry carrying its message.
        """
        if err is None:
            return
        if isinstance(err, ValidationErrors):
            for field in err.fields:
                if not self.add_field(field):
                    break
            if err.truncated:
                self.truncated = True
            return
        if isinstance(err, FieldError):
            self.add_field(err)
            return
        self.add("", "validation_error", str(err))

    def has_errors(self) -> bool:
        return len(self.fields) > 0

    def has_code(self, code: str) -> bool:
        """Return True if any error carries the given code."""
        return any(f.code == code for f in self.fields)

    def has(self, path: str) -> bool:
        """Return True if the given path has at least one error."""
        return any(f.path == path for f in self.fields)

    def get_field(self, path: str) -> FieldError | None:
        """Return the first error for a path, or None."""
        for f in self.fields:
            if f.path == path:
                return f
        return None

    def sort(self) -> None:
        """Sort errors in place by path, then by code."""
        self.fields.sort(key=lambda f: (f.path, f.code))

    def truncate(self, limit: int) -> None:
        """Cut the aggregate down to ``limit`` errors, marking it truncated."""
        if limit > 0 and len(self.fields) > limit:
            del self.fields[limit:]
            self.truncated = True

    def details(self) -> list[FieldError]:
        return self.fields

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{"errors": [...], "truncated": bool}``."""
        return {
            "errors": [f.to_dict() for f in self.fields],
            "truncated": self.truncated,
        }


class ConfigurationError(ValueError):
    """Raised when a `Validator` is configured with invalid options."""

    pass


class TagRegistrationFrozenError(ConfigurationError):
    """Raised when a tag is registered after the tag engine was built."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"cannot register tag '{name}': tag registration is frozen after first validation"
        )
