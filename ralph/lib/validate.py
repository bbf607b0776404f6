"""
JSON Schema checks for everything ralph persists.

Schemas ship as package data in ralph/schemas/<name>.schema.json. Every
reader validates after decoding and every writer validates before the file
is touched, so a malformed prd.json, run.status.json, workspaces.json or
event line is reported at the boundary instead of deep inside the loop.
"""

import functools
import json
from importlib import resources
from pathlib import Path

import jsonschema
from jsonschema.exceptions import best_match


class ValidationError(Exception):
    """Data did not match its schema."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


@functools.cache
def _validator(schema_name: str):
    schema_file = resources.files("ralph") / "schemas" / f"{schema_name}.schema.json"
    if not schema_file.is_file():
        raise ValidationError(schema_name, "no such schema")
    schema = json.loads(schema_file.read_text(encoding="utf-8"))
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def validate(data, schema_name: str) -> None:
    """
    Validate decoded JSON against a named schema.

    Args:
        data: Decoded JSON value
        schema_name: "prd", "run_status", "workspace", "workspaces" or "event"

    Raises:
        ValidationError: Naming the most relevant failing field
    """
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    raise ValidationError(schema_name, error.message, path)


def validate_before_write(data, schema_name: str, filepath: Path) -> None:
    """Like validate, but the error names the file that would have been written."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(
            schema_name,
            f"refusing to write invalid data to {filepath}: {e}",
            e.path,
        ) from None
