"""
Record Linker - parent/child relationships between fetched records.

Actions point at their finding and sub-tasks at their task through the Jira
parent field. A parent reference may dangle (the parent was filtered out of the
parent fetch, or lives elsewhere); lookups return None instead of raising.
"""

from typing import Dict, Iterable, Optional

from field_normalizer import Record, normalize


def index_records(records: Iterable[Record]) -> Dict[str, Record]:
    """Build a key -> record lookup in one pass. A later duplicate key replaces an earlier one."""
    return {record.key: record for record in records}


def find_parent(child: Record, parent_index: Dict[str, Record]) -> Optional[Record]:
    if not child.parent_key:
        return None
    return parent_index.get(child.parent_key)


def build_child_counts(children: Iterable[Record]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for child in children:
        if child.parent_key:
            counts[child.parent_key] = counts.get(child.parent_key, 0) + 1
    return counts


def count_children(parent_key: str, children: Iterable[Record]) -> int:
    return sum(1 for child in children if child.parent_key == parent_key)


def resolve_parent_attribute(
    child: Record,
    parent_index: Dict[str, Record],
    attribute: str,
    fallback: str,
) -> str:
    """
    Look up an attribute on the child's parent.

    Returns fallback when the parent is missing or the attribute is unset.
    """
    parent = find_parent(child, parent_index)
    if parent is None:
        return fallback
    return normalize(parent, attribute, fallback)


def effective_attribute(
    child: Record,
    parent_index: Dict[str, Record],
    attribute: str,
    fallback: str,
) -> Optional[str]:
    """
    Resolve an attribute from the child itself, else through its parent.

    Returns None only when the child has no value of its own and its parent
    cannot be found, so callers can exclude it.
    """
    own_value = child.attributes.get(attribute)
    if own_value:
        return own_value

    parent = find_parent(child, parent_index)
    if parent is None:
        return None
    return normalize(parent, attribute, fallback)
