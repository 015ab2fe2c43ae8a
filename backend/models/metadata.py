"""Typed document metadata.

Metadata attached to documents and chunks is free-form, but it is always a
JSON value: a string, number, boolean, null, list or object of JSON values.
Values coming out of the vector index or the relational store are coerced
into that shape once, at the collaborator boundary, so the rest of the
pipeline never handles arbitrary objects.
"""
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from pydantic import JsonValue, TypeAdapter

Metadata = Dict[str, JsonValue]

_metadata_adapter: TypeAdapter = TypeAdapter(Metadata)


def _to_json_value(value: Any) -> Any:
    """Convert the few non-JSON types stores commonly return into JSON values."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (tuple, set, frozenset)):
        return [_to_json_value(v) for v in value]
    if isinstance(value, list):
        return [_to_json_value(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _to_json_value(v) for k, v in value.items()}
    return value


def normalize_metadata(raw: Optional[Mapping[str, Any]]) -> Metadata:
    """
    Validate a raw metadata mapping as a JSON object.

    Args:
        raw: Mapping returned by a store, or None

    Returns:
        Dictionary of JSON values (empty when raw is None)

    Raises:
        pydantic.ValidationError: If a value cannot be represented as JSON
    """
    if not raw:
        return {}
    return _metadata_adapter.validate_python(_to_json_value(raw))
