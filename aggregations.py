"""
Aggregation engines for the findings dashboard.

Pure functions over decoded Records. Anything time-dependent takes "now" or
"today" as an argument so one response is computed against a single instant.
"""

from __future__ import annotations

from bisect import bisect_right
from datetime import date, datetime, time
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence
import logging

from field_normalizer import Record, normalize
from record_linker import build_child_counts, effective_attribute, find_parent, resolve_parent_attribute

logger = logging.getLogger(__name__)

RISK_LEVELS = ("Critical", "High", "Medium", "Low")
_RISK_LEVEL_LOOKUP = {level.lower(): level for level in RISK_LEVELS}

STATUS_COMPLETED = "Completed"
STATUS_OPEN = "Open"
STATUS_OVERDUE = "Overdue"
STATUS_CATEGORIES = (STATUS_COMPLETED, STATUS_OPEN, STATUS_OVERDUE)

TOTAL_LABEL = "Total"
GRAND_TOTAL_LABEL = "Grand Total"

# Age buckets on the signed day offset (today - reference date), each one [low, high).
# The first bucket has no lower bound and the last no upper bound.
AGE_BUCKETS = (
    ("-720–-360", None),
    ("-360–-180", -360),
    ("-180–-90", -180),
    ("-90–-30", -90),
    ("-30–0", -30),
    ("0–30", 0),
    ("30–90", 30),
    ("90–180", 90),
    ("180–360", 180),
    ("360–720", 360),
    ("720+", 720),
)
AGE_BUCKET_LABELS = tuple(label for label, _ in AGE_BUCKETS)
_AGE_BUCKET_LOWER_BOUNDS = [low for _, low in AGE_BUCKETS[1:]]


class AttributeMatch(NamedTuple):
    """Equality predicate on a normalized attribute."""

    attribute: str
    value: str
    fallback: str

    def matches(self, record: Record) -> bool:
        return normalize(record, self.attribute, self.fallback) == self.value


class RiskLevelMatch(NamedTuple):
    """Risk level predicate using the same case-insensitive reading as the risk cross-tabs."""

    value: str

    def matches(self, record: Record) -> bool:
        wanted = canonical_risk_level(self.value)
        return wanted is not None and canonical_risk_level(record.attributes.get("riskLevel")) == wanted


# =============================================================================
# FILTERS
# =============================================================================


def filter_by_attribute(
    records: Iterable[Record],
    attribute: str,
    allowed: Optional[Iterable[str]],
    fallback: str,
) -> List[Record]:
    """Keep records whose normalized attribute is in the allow-list. No allow-list keeps everything."""
    allowed_values = set(allowed) if allowed else None
    if not allowed_values:
        return list(records)
    return [record for record in records if normalize(record, attribute, fallback) in allowed_values]


def filter_by_status(records: Iterable[Record], statuses: Iterable[str]) -> List[Record]:
    """Keep records whose raw status is exactly one of the given labels."""
    allowed = set(statuses)
    return [record for record in records if record.status in allowed]


def filter_by_status_category(records: Iterable[Record], categories: Iterable[str], now: datetime) -> List[Record]:
    allowed = set(categories)
    return [record for record in records if categorize_status(record, now) in allowed]


# =============================================================================
# FLAT PROJECTIONS
# =============================================================================


def project_records(records: Iterable[Record], matches: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    """
    Map records to {key, summary}, keeping only those that satisfy every predicate
    (any object with a matches(record) method).
    """
    return [
        {"key": record.key, "summary": record.summary}
        for record in records
        if all(match.matches(record) for match in matches)
    ]


def list_records(records: Iterable[Record]) -> List[Dict[str, Any]]:
    return [
        {
            "key": record.key,
            "summary": record.summary,
            "issueType": record.kind,
            "status": record.status,
            "dueDate": record.due_date.isoformat() if record.due_date else None,
            "parentKey": record.parent_key,
        }
        for record in records
    ]


def summarize_with_child_counts(
    parents: Iterable[Record],
    children: Iterable[Record],
    count_field: str,
) -> List[Dict[str, Any]]:
    """Map each parent to {key, summary, <count_field>} counting the children that reference it."""
    child_counts = build_child_counts(children)
    return [
        {"key": parent.key, "summary": parent.summary, count_field: child_counts.get(parent.key, 0)}
        for parent in parents
    ]


# =============================================================================
# COUNT MAPS
# =============================================================================


def count_by(records: Iterable[Record], key_of: Callable[[Record], Optional[str]]) -> Dict[str, int]:
    """Count records per key in first-seen order. Records whose key is None are skipped."""
    counts: Dict[str, int] = {}
    for record in records:
        key = key_of(record)
        if key is None:
            continue
        counts[key] = counts.get(key, 0) + 1
    return counts


def count_by_status(records: Iterable[Record], fallback: str = "Unknown") -> Dict[str, int]:
    return count_by(records, lambda record: record.status or fallback)


def count_by_attribute(records: Iterable[Record], attribute: str, fallback: str) -> Dict[str, int]:
    return count_by(records, lambda record: normalize(record, attribute, fallback))


def count_by_parent_attribute(
    children: Iterable[Record],
    parent_index: Dict[str, Record],
    attribute: str,
    fallback: str,
    prefer_own: bool = False,
) -> Dict[str, int]:
    """
    Count children by an attribute read from their parent.

    With prefer_own the child's own value is used when it has one. Children that
    resolve to nothing (no own value and no parent in the index) are left out.
    """
    counts: Dict[str, int] = {}
    excluded = 0
    for child in children:
        if prefer_own:
            key = effective_attribute(child, parent_index, attribute, fallback)
        elif find_parent(child, parent_index) is not None:
            key = resolve_parent_attribute(child, parent_index, attribute, fallback)
        else:
            key = None

        if key is None:
            excluded += 1
            continue
        counts[key] = counts.get(key, 0) + 1

    if excluded:
        logger.info(f"Excluded {excluded} record(s) without a fetched parent from '{attribute}' counts")
    return counts


def unique_count_by_year(records: Iterable[Record], fallback: str) -> List[Dict[str, Any]]:
    """
    Count records per normalized year, each record key once.

    Years are sorted as strings, descending.
    """
    seen_keys = set()
    counts: Dict[str, int] = {}
    for record in records:
        if record.key in seen_keys:
            continue
        seen_keys.add(record.key)
        year = normalize(record, "year", fallback)
        counts[year] = counts.get(year, 0) + 1

    return [{"year": year, "count": counts[year]} for year in sorted(counts, reverse=True)]


# =============================================================================
# CROSS-TABULATION
# =============================================================================


def canonical_risk_level(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return _RISK_LEVEL_LOOKUP.get(value.strip().lower())


def cross_tabulate(
    records: Iterable[Record],
    row_of: Callable[[Record], Optional[str]],
    column_of: Callable[[Record], Optional[str]],
    row_label_name: str,
    columns: Sequence[str] = RISK_LEVELS,
) -> List[Dict[str, Any]]:
    """
    Two-key count table with a Total column and a synthetic totals row.

    Rows appear in first-seen order. Records whose row resolves to None or whose
    column is not one of the declared columns are left out. Every row carries
    every column, zero-filled.
    """
    rows: Dict[str, Dict[str, Any]] = {}
    for record in records:
        row_label = row_of(record)
        column = column_of(record)
        if row_label is None or column not in columns:
            continue

        row = rows.get(row_label)
        if row is None:
            row = {row_label_name: row_label}
            row.update({name: 0 for name in columns})
            row[TOTAL_LABEL] = 0
            rows[row_label] = row

        row[column] += 1
        row[TOTAL_LABEL] += 1

    totals_label = GRAND_TOTAL_LABEL if TOTAL_LABEL in rows else TOTAL_LABEL
    totals_row: Dict[str, Any] = {row_label_name: totals_label}
    for name in columns:
        totals_row[name] = sum(row[name] for row in rows.values())
    totals_row[TOTAL_LABEL] = sum(row[TOTAL_LABEL] for row in rows.values())

    return list(rows.values()) + [totals_row]


def risk_cross_tab(
    records: Iterable[Record],
    row_attribute: str,
    row_fallback: str,
    row_label_name: str,
) -> List[Dict[str, Any]]:
    """Cross-tabulate records by a normalized attribute against their risk level."""
    return cross_tabulate(
        records,
        row_of=lambda record: normalize(record, row_attribute, row_fallback),
        column_of=lambda record: canonical_risk_level(record.attributes.get("riskLevel")),
        row_label_name=row_label_name,
    )


def parent_risk_cross_tab(
    children: Iterable[Record],
    parent_index: Dict[str, Record],
    row_attribute: str,
    row_fallback: str,
    row_label_name: str,
) -> List[Dict[str, Any]]:
    """Cross-tabulate children by their parent's attribute against their parent's risk level."""

    def row_of(child: Record) -> Optional[str]:
        parent = find_parent(child, parent_index)
        if parent is None:
            return None
        return normalize(parent, row_attribute, row_fallback)

    def column_of(child: Record) -> Optional[str]:
        parent = find_parent(child, parent_index)
        if parent is None:
            return None
        return canonical_risk_level(parent.attributes.get("riskLevel"))

    return cross_tabulate(children, row_of, column_of, row_label_name)


# =============================================================================
# STATUS BY YEAR
# =============================================================================


def categorize_status(record: Record, now: datetime) -> str:
    """
    Completed when the status reads "completed" in any case, Overdue when not
    completed and the due date (midnight) is before now, otherwise Open.
    """
    status = record.status or ""
    if status.lower() == "completed":
        return STATUS_COMPLETED

    if record.due_date is not None:
        due_at = datetime.combine(record.due_date, time.min, tzinfo=now.tzinfo)
        if due_at < now:
            return STATUS_OVERDUE

    return STATUS_OPEN


def status_by_year(records: Iterable[Record], now: datetime, year_fallback: str) -> Dict[str, Dict[str, int]]:
    """Count records per year and status category. Years keep first-seen order."""
    result: Dict[str, Dict[str, int]] = {}
    for record in records:
        year = normalize(record, "year", year_fallback)
        if year not in result:
            result[year] = {category: 0 for category in STATUS_CATEGORIES}
        result[year][categorize_status(record, now)] += 1
    return result


# =============================================================================
# AGE HISTOGRAM
# =============================================================================


def day_offset(today: date, reference: date) -> int:
    """Whole days from reference to today; positive once the reference date has passed."""
    return (today - reference).days


def bucket_for_offset(offset: int) -> str:
    return AGE_BUCKET_LABELS[bisect_right(_AGE_BUCKET_LOWER_BOUNDS, offset)]


def age_histogram(
    records: Iterable[Record],
    today: date,
    reference_of: Callable[[Record], Optional[date]] = lambda record: record.due_date,
) -> Dict[str, int]:
    """
    Count records per age bucket of (today - reference date).

    Every bucket is present in the result. Records without a usable reference
    date are skipped.
    """
    histogram = {label: 0 for label in AGE_BUCKET_LABELS}
    skipped = 0
    for record in records:
        reference = reference_of(record)
        if reference is None:
            skipped += 1
            continue
        histogram[bucket_for_offset(day_offset(today, reference))] += 1

    if skipped:
        logger.debug(f"Age histogram skipped {skipped} record(s) without a reference date")
    return histogram
