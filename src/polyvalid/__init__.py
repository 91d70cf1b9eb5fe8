"""polyvalid - multi-strategy validation for Python values.

One `Validator` validates dataclasses with declarative field rules, JSON
documents against JSON Schema, and objects that know how to validate
themselves, and reports every failure in the same shape.

## Key Components

### Core Classes
- `Validator`: Orchestrator; picks and runs strategies
- `ValidationErrors`: Aggregate raised on failure
- `FieldError`: A single failure with path, code, message and meta
- `PresenceMap`: Paths sent by the client, for PATCH-style partial validation
- `ValidationContext`: Request-scoped context (raw JSON body, key-value state)

### Strategies
- Tags: `rules()` on dataclass fields (`required`, `email`, `min=3`, `dive`, ...)
- JSON Schema: ``custom_schema=`` or a ``json_schema()`` method
- Interface: a ``validate()`` or ``validate_context(ctx)`` method

## Quick Examples

### Tag Validation
```python
from dataclasses import dataclass
from polyvalid import Validator, ValidationErrors, rules

@dataclass
class User:
    email: str = rules("required,email", json="email")
    age: int = rules("min=18", json="age", default=0)

validator = Validator()
try:
    validator.validate(User(email="invalid", age=15))
except ValidationErrors as errs:
    print(errs.to_dict())
# {"errors": [{"path": "age", "code": "tag.min", ...},
#             {"path": "email", "code": "tag.email", ...}], "truncated": False}
```

### Partial Validation
```python
from polyvalid import compute_presence

presence = compute_presence(request_body)
validator.validate_partial(patch, presence)
```

### JSON Schema
```python
validator.validate(
    payload,
    strategy=Strategy.JSON_SCHEMA,
    custom_schema_id="user-v1",
    custom_schema='{"type": "object", "required": ["email"]}',
)
```
"""

from ._types import (
    ContextValidating,
    FieldKind,
    FieldLevel,
    InterfaceKind,
    SchemaProviding,
    SelfValidating,
    Strategy,
)
from .context import (
    ValidationContext,
    get_validation_context,
    inject_raw_json,
    raw_json_from,
    use_validation_context,
)
from .core import Validator, default_validator, register_tag, validate, validate_partial
from .errors import (
    REDACTED,
    ConfigurationError,
    FieldError,
    TagRegistrationFrozenError,
    ValidationError,
    ValidationErrors,
)
from .loaders import load_schema, load_schema_from_file
from .models import ErrorReportModel, FieldErrorModel, ValidatorConfig
from .presence import PresenceMap, compute_presence
from .tags import rules
from .version import PACKAGE_NAME, PACKAGE_VERSION

__version__ = PACKAGE_VERSION

__all__ = [
    # Core
    "Validator",
    "ValidatorConfig",
    "Strategy",
    "default_validator",
    "validate",
    "validate_partial",
    "register_tag",
    # Errors
    "ValidationError",
    "FieldError",
    "ValidationErrors",
    "ConfigurationError",
    "TagRegistrationFrozenError",
    "REDACTED",
    "ErrorReportModel",
    "FieldErrorModel",
    # Presence
    "PresenceMap",
    "compute_presence",
    # Context
    "ValidationContext",
    "get_validation_context",
    "use_validation_context",
    "inject_raw_json",
    "raw_json_from",
    # Tags
    "rules",
    "FieldKind",
    "FieldLevel",
    # Interfaces
    "InterfaceKind",
    "SelfValidating",
    "ContextValidating",
    "SchemaProviding",
    # Loaders
    "load_schema",
    "load_schema_from_file",
    # Version
    "PACKAGE_NAME",
    "PACKAGE_VERSION",
]
