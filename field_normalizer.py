"""
Field Normalizer - decodes raw Jira issue JSON into canonical records.

Jira custom fields arrive as plain scalars, option objects ({"value": ...}),
user objects ({"displayName": ...}), lists of those, or null. The decode step
runs once per issue right after fetch, so the aggregation code downstream
only ever sees strings or None.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional
import logging

from errors import MalformedAttribute

logger = logging.getLogger(__name__)

# Keys checked, in order, when unwrapping an object-shaped attribute
_WRAPPED_VALUE_KEYS = ("value", "displayName", "name")


@dataclass(frozen=True)
class Record:
    """One issue fetched from the tracker, with every custom attribute decoded."""

    key: str
    kind: Optional[str] = None
    status: Optional[str] = None
    summary: Optional[str] = None
    created_at: Optional[str] = None
    due_date: Optional[date] = None
    parent_key: Optional[str] = None
    attributes: Dict[str, Optional[str]] = field(default_factory=dict)


def _decode_strict(value: Any) -> Optional[str]:
    if value is None:
        return None

    # bool is an int subclass, keep it ahead of the number branch
    if isinstance(value, bool):
        return str(value).lower() if value else None

    if isinstance(value, (int, float)):
        if not value:
            return None
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None

    if isinstance(value, Mapping):
        for wrapped_key in _WRAPPED_VALUE_KEYS:
            decoded = _decode_strict(value.get(wrapped_key))
            if decoded is not None:
                return decoded
        return None

    if isinstance(value, (list, tuple)):
        parts = [_decode_strict(item) for item in value]
        joined = ", ".join(part for part in parts if part)
        return joined or None

    raise MalformedAttribute(f"Unsupported attribute shape: {type(value).__name__}")


def decode_field_value(value: Any) -> Optional[str]:
    """
    Decode a raw attribute value into a canonical string, or None when unset.

    Never raises: shapes that cannot be decoded are treated as unset.
    """
    try:
        return _decode_strict(value)
    except MalformedAttribute as e:
        logger.debug(f"Treating malformed attribute as unset: {e.message}")
        return None


def normalize_value(value: Any, fallback: str) -> str:
    decoded = decode_field_value(value)
    return decoded if decoded is not None else fallback


def normalize(record: Record, attribute: str, fallback: str) -> str:
    """
    Return the canonical value of a decoded record attribute.

    Args:
        record: Decoded record
        attribute: Logical attribute name (e.g. "year", "riskLevel")
        fallback: Label returned when the attribute is absent

    Returns:
        The attribute value, or fallback
    """
    value = record.attributes.get(attribute)
    return value if value else fallback


def parse_date(value: Any) -> Optional[date]:
    """Parse a Jira date ("2024-05-01") or timestamp; anything else yields None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug(f"Ignoring unparseable date value: {text!r}")
        return None


def decode_issue(raw: Mapping[str, Any], custom_fields: Mapping[str, str]) -> Record:
    """
    Build a Record from one Jira issue JSON object.

    Args:
        raw: Issue object as returned by the Jira search API
        custom_fields: Logical attribute name -> Jira field id

    Returns:
        Decoded Record
    """
    fields = raw.get("fields")
    if not isinstance(fields, Mapping):
        fields = {}

    parent = fields.get("parent")
    parent_key = parent.get("key") if isinstance(parent, Mapping) else None

    attributes = {
        name: decode_field_value(fields.get(field_id))
        for name, field_id in custom_fields.items()
    }

    return Record(
        key=str(raw.get("key")),
        kind=decode_field_value(fields.get("issuetype")),
        status=decode_field_value(fields.get("status")),
        summary=decode_field_value(fields.get("summary")),
        created_at=decode_field_value(fields.get("created")),
        due_date=parse_date(fields.get("duedate")),
        parent_key=decode_field_value(parent_key),
        attributes=attributes,
    )
