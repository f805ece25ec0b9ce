"""Tests for field_normalizer - attribute decode and normalization."""

from datetime import date

import pytest

import config
from field_normalizer import Record, decode_field_value, decode_issue, normalize, normalize_value, parse_date
from conftest import make_issue


# =============================================================================
# decode_field_value / normalize_value
# =============================================================================


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "Unassigned"),
        ("", "Unassigned"),
        ("   ", "Unassigned"),
        ("High", "High"),
        ("  Medium ", "Medium"),
        (2023, "2023"),
        (2023.0, "2023"),
        (2.5, "2.5"),
        (0, "Unassigned"),
        ({"value": "Critical"}, "Critical"),
        ({"value": 2024}, "2024"),
        ({}, "Unassigned"),
        ({"value": None}, "Unassigned"),
        ({"displayName": "Jane Auditor"}, "Jane Auditor"),
        ({"name": "Done", "id": "10001"}, "Done"),
        ([{"value": "IT"}, {"value": "Finance"}], "IT, Finance"),
        ([], "Unassigned"),
        (object(), "Unassigned"),
    ],
)
def test_normalize_value_is_total(value, expected):
    assert normalize_value(value, "Unassigned") == expected


def test_nested_option_is_unwrapped():
    assert decode_field_value({"value": {"value": "Low"}}) == "Low"


def test_option_value_wins_over_name():
    assert decode_field_value({"value": "Option", "name": "Other"}) == "Option"


def test_booleans():
    assert decode_field_value(True) == "true"
    assert decode_field_value(False) is None


def test_fallback_is_caller_supplied():
    assert normalize_value(None, "Unknown") == "Unknown"
    assert normalize_value(None, "Unassigned") == "Unassigned"


# =============================================================================
# normalize
# =============================================================================


def test_normalize_reads_decoded_attribute():
    record = Record(key="F-1", attributes={"year": "2023", "riskLevel": None})
    assert normalize(record, "year", "Unknown") == "2023"
    assert normalize(record, "riskLevel", "Unassigned") == "Unassigned"
    assert normalize(record, "notMapped", "Unknown") == "Unknown"


# =============================================================================
# parse_date
# =============================================================================


def test_parse_date_accepts_dates_and_timestamps():
    assert parse_date("2024-05-01") == date(2024, 5, 1)
    assert parse_date("2024-05-01T10:00:00.000+0000") == date(2024, 5, 1)
    assert parse_date(date(2024, 5, 1)) == date(2024, 5, 1)


@pytest.mark.parametrize("value", [None, "", "not a date", "2024-13-45", 20240501, {"value": "2024-05-01"}])
def test_parse_date_rejects_garbage(value):
    assert parse_date(value) is None


# =============================================================================
# decode_issue
# =============================================================================


def test_decode_issue_maps_standard_and_custom_fields():
    raw = make_issue(
        "FINDINGS-7",
        issue_type="Finding Action",
        status="In Progress",
        duedate="2024-03-31",
        parent="FINDINGS-1",
        summary="Fix access reviews",
        year={"value": "2023"},
        riskLevel={"value": "High"},
        auditLead={"displayName": "Jane Auditor"},
    )

    record = decode_issue(raw, config.JIRA_CUSTOM_FIELDS)

    assert record.key == "FINDINGS-7"
    assert record.kind == "Finding Action"
    assert record.status == "In Progress"
    assert record.summary == "Fix access reviews"
    assert record.due_date == date(2024, 3, 31)
    assert record.parent_key == "FINDINGS-1"
    assert record.attributes["year"] == "2023"
    assert record.attributes["riskLevel"] == "High"
    assert record.attributes["auditLead"] == "Jane Auditor"
    assert record.attributes["controlCategory"] is None


def test_decode_issue_tolerates_missing_fields():
    record = decode_issue({"key": "FINDINGS-9"}, config.JIRA_CUSTOM_FIELDS)

    assert record.key == "FINDINGS-9"
    assert record.status is None
    assert record.due_date is None
    assert record.parent_key is None
    assert set(record.attributes) == set(config.JIRA_CUSTOM_FIELDS)


def test_decode_issue_ignores_non_object_parent():
    raw = make_issue("FINDINGS-3")
    raw["fields"]["parent"] = "FINDINGS-1"
    assert decode_issue(raw, config.JIRA_CUSTOM_FIELDS).parent_key is None
