from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

ANALYSIS_SCHEMA_NAME = "analysis_result.schema.json"
SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"

# Keywords the Gemini response schema understands; everything else is dropped.
_GEMINI_SCHEMA_KEYS = {
    "type",
    "description",
    "enum",
    "properties",
    "required",
    "items",
    "minimum",
    "maximum",
    "pattern",
    "nullable",
}


def load_schema(schema_path: str | Path) -> Dict[str, Any]:
    schema_path = Path(schema_path)
    with schema_path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


@lru_cache(maxsize=None)
def _packaged_schema_text(name: str) -> str:
    return (SCHEMAS_DIR / name).read_text(encoding="utf-8")


def analysis_result_schema() -> Dict[str, Any]:
    """Return a fresh copy of the bundled AnalysisResult JSON schema."""
    return json.loads(_packaged_schema_text(ANALYSIS_SCHEMA_NAME))


def schema_errors(data: Any, schema: Dict[str, Any]) -> List[str]:
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    messages = []
    for err in errors:
        loc = ".".join([str(p) for p in err.path]) or "$"
        messages.append(f"{loc}: {err.message}")
    return messages


def validate_json(data: Any, schema_path: str | Path) -> None:
    schema_path = Path(schema_path)
    messages = schema_errors(data, load_schema(schema_path))
    if messages:
        raise ValueError(f"Schema validation failed for {schema_path.name}: " + "; ".join(messages))


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a JSON schema into the OpenAPI subset accepted as a Gemini response schema."""
    converted: Dict[str, Any] = {}
    for key, value in schema.items():
        if key not in _GEMINI_SCHEMA_KEYS:
            continue
        if key == "type":
            converted[key] = str(value).upper()
        elif key == "properties":
            converted[key] = {name: to_gemini_schema(sub) for name, sub in value.items()}
        elif key == "items":
            converted[key] = to_gemini_schema(value)
        else:
            converted[key] = value
    return converted
