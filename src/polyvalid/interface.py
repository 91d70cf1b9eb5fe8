"""Interface validation strategy.

A type takes part by defining one of these instance methods:

```python
@dataclass
class Transfer:
    amount: int

    def validate(self):
        if self.amount <= 0:
            raise ValueError("amount must be positive")

    def validate_context(self, ctx: ValidationContext):
        if self.amount > ctx.get("limit", 1000):
            return FieldError("amount", "over_limit", "exceeds account limit")
```

A failing method raises `ValueError` (every polyvalid `ValidationError`
is one) or returns an exception. Other return values mean success.
"""

import inspect
import logging
from typing import Any, cast

from ._types import ContextValidating, InterfaceKind, SelfValidating
from .caching import TypeCache
from .context import ValidationContext
from .errors import FieldError, ValidationErrors
from .models import ValidatorConfig

logger = logging.getLogger(__name__)

__all__ = ["InterfaceStrategy", "detect_interface", "coerce_result"]


def _has_instance_method(cls: type, name: str) -> bool:
    try:
        attr = inspect.getattr_static(cls, name)
    except AttributeError:
        return False
    # classmethods/staticmethods (e.g. pydantic's BaseModel.validate) are not hooks
    return inspect.isfunction(attr)


def detect_interface(cls: type) -> InterfaceKind:
    """Decide which validation method ``cls`` offers; ``validate_context`` wins."""
    if _has_instance_method(cls, "validate_context"):
        return InterfaceKind.CONTEXT
    if _has_instance_method(cls, "validate"):
        return InterfaceKind.VALUE
    return InterfaceKind.NONE


def coerce_result(result: Any, limit: int = 0) -> ValidationErrors | None:
    """Normalize what a validation method produced into an aggregate.

    Args:
        result: Raised or returned object
        limit: Maximum number of errors kept (0 means unlimited)

    Returns:
        None for success, otherwise a sorted `ValidationErrors`
    """
    if not isinstance(result, BaseException):
        return None
    if isinstance(result, ValidationErrors):
        if not result.has_errors():
            return None
        errors = ValidationErrors(result.fields, truncated=result.truncated)
        errors.truncate(limit)
    elif isinstance(result, FieldError):
        errors = ValidationErrors([result])
    else:
        errors = ValidationErrors()
        errors.add("", "validation_error", str(result))
    errors.sort()
    return errors


class InterfaceStrategy:
    """Dispatches to ``validate`` / ``validate_context`` defined by the value's type."""

    def __init__(self) -> None:
        self._kinds: TypeCache[type, InterfaceKind] = TypeCache("interface-kinds")

    def kind(self, value: Any) -> InterfaceKind:
        return self._kinds.get_or_compute(type(value), detect_interface)

    def is_applicable(self, value: Any) -> bool:
        return self.kind(value) is not InterfaceKind.NONE

    def validate(
        self, value: Any, config: ValidatorConfig, ctx: ValidationContext | None
    ) -> ValidationErrors | None:
        kind = self.kind(value)
        if kind is InterfaceKind.NONE:
            return None
        try:
            if kind is InterfaceKind.CONTEXT:
                ctx = ctx if ctx is not None else ValidationContext()
                result = cast(ContextValidating, value).validate_context(ctx)
            else:
                result = cast(SelfValidating, value).validate()
        except ValueError as e:
            result = e
        return coerce_result(result, config.max_errors)
