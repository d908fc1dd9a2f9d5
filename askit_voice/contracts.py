"""JSON Schema contracts for payloads handed to the embedding application."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

INTENT_ANALYSIS_SCHEMA = "intent_analysis.schema.json"


def schemas_dir() -> Path:
    return Path(__file__).resolve().parent / "schemas"


@lru_cache()
def load_schema(name: str) -> dict[str, Any]:
    p = schemas_dir() / name
    return json.loads(p.read_text(encoding="utf-8"))


@lru_cache()
def _validator(name: str) -> jsonschema.protocols.Validator:
    schema = load_schema(name)
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def validate_or_raise(payload: dict[str, Any], schema_name: str = INTENT_ANALYSIS_SCHEMA) -> None:
    """Raise jsonschema.ValidationError (best match) if `payload` breaks the contract."""
    error = jsonschema.exceptions.best_match(_validator(schema_name).iter_errors(payload))
    if error is not None:
        raise error
