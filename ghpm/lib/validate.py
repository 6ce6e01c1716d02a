"""
jsonschema checks for ghpm's data files.

project.env is checked after parsing, before it becomes a ProjectConfig;
tasks.json is checked on load and again before every save.
"""

import json
from functools import lru_cache
from pathlib import Path

import jsonschema

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"
SCHEMA_NAMES = ("project", "tasks")


class ValidationError(Exception):
    """Data does not match its schema, or is not JSON at all."""

    def __init__(self, schema_name: str, message: str, path: str | None = None):
        self.schema_name = schema_name
        self.message = message
        self.path = path
        super().__init__(f"{schema_name}: {message}" + (f" (at {path})" if path else ""))


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> jsonschema.Draft7Validator:
    if schema_name not in SCHEMA_NAMES:
        raise ValueError(f"Unknown schema '{schema_name}'")
    schema = json.loads((SCHEMAS_DIR / f"{schema_name}.schema.json").read_text())
    return jsonschema.Draft7Validator(schema)


def _location(error: jsonschema.ValidationError) -> str:
    """tasks[0].status style location of a schema error."""
    location = ""
    for part in error.absolute_path:
        if isinstance(part, int):
            location += f"[{part}]"
        else:
            location += f".{part}" if location else str(part)
    return location or "(root)"


def validate(data: dict, schema_name: str) -> None:
    """Raise ValidationError for the most relevant schema violation in data."""
    error = jsonschema.exceptions.best_match(_validator(schema_name).iter_errors(data))
    if error is not None:
        raise ValidationError(schema_name, error.message, _location(error))


def load_validated(path: Path, schema_name: str) -> dict:
    """Read a JSON file and validate it."""
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        raise ValidationError(schema_name, f"{path} does not exist") from None
    except json.JSONDecodeError as e:
        raise ValidationError(schema_name, f"{path} is not valid JSON (line {e.lineno}: {e.msg})") from None

    validate(data, schema_name)
    return data


def validate_for_write(data: dict, schema_name: str, path: Path) -> None:
    """Validate data about to be written to path; the file is left alone on failure."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, f"{path} not saved: {e.message}", e.path) from None
