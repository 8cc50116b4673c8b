"""
JSON Schema validation service.

Collects all errors rather than failing on the first one.
"""

from typing import Any

import jsonschema


def validate_against_schema(data: dict[str, Any], schema: dict[str, Any]) -> list[str]:
    """
    Validate a dict against a JSON schema.
    Returns a list of "field: message" strings (empty list = valid).
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    messages = []
    for error in errors:
        location = ".".join(str(p) for p in error.path)
        messages.append(f"{location}: {error.message}" if location else error.message)
    return messages
