"""Schema loading utilities for polyvalid.

JSON Schemas are often kept next to the code as YAML or JSON files. These
helpers load them into dicts that can be passed as ``custom_schema`` or
returned from a ``json_schema()`` method (after ``json.dumps``).
"""

import json
from pathlib import Path
from typing import Any

import yaml
from jsonschema.exceptions import SchemaError
from jsonschema.validators import Draft202012Validator, validator_for

__all__ = ["load_schema", "load_schema_from_file", "check_schema_document"]


def load_schema(content: str, format: str = "yaml") -> dict[str, Any]:
    """Load a schema document from string content.

    Args:
        content: Schema content as string
        format: Format of the content ('yaml' or 'json')

    Returns:
        Schema dictionary

    Raises:
        ValueError: If format is not supported, parsing fails or the
            document is not a mapping
    """
    if format == "yaml":
        try:
            document = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse YAML: {e}") from e
    elif format == "json":
        try:
            document = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse JSON: {e}") from e
    else:
        raise ValueError(f"Unsupported format: {format}. Use 'yaml' or 'json'")

    if not isinstance(document, dict):
        raise ValueError("Schema document must be a mapping")
    return document


def load_schema_from_file(path: str | Path, check: bool = True) -> dict[str, Any]:
    """Load a schema document from a YAML or JSON file.

    Args:
        path: Path to the schema file
        check: Also verify the document against its JSON Schema metaschema

    Returns:
        Schema dictionary

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is not supported, parsing fails or the
            document is not a valid JSON Schema
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")

    # Determine format from extension
    if path.suffix.lower() in [".yaml", ".yml"]:
        format = "yaml"
    elif path.suffix.lower() == ".json":
        format = "json"
    else:
        raise ValueError(f"Unsupported file extension: {path.suffix}. Use .yaml, .yml, or .json")

    document = load_schema(path.read_text(encoding="utf-8"), format=format)
    if check:
        check_schema_document(document)
    return document


def check_schema_document(schema: dict[str, Any]) -> None:
    """Verify a schema document against the metaschema of its draft.

    Raises:
        ValueError: If the document is not a valid JSON Schema
    """
    cls = validator_for(schema, default=Draft202012Validator)
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        if e.absolute_path:
            location = ".".join(str(p) for p in e.absolute_path)
            raise ValueError(f"Invalid schema at '{location}': {e.message}") from e
        raise ValueError(f"Invalid schema: {e.message}") from e
