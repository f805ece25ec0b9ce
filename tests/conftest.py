"""Shared fixtures and builders for the findings dashboard tests."""

from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

import config
from errors import DashboardError
from field_normalizer import Record, decode_issue
from jira_client import get_jira_client
from main import app


def make_issue(
    key: str,
    issue_type: str = "Audit Finding",
    status: Optional[str] = "Open",
    duedate: Optional[str] = None,
    parent: Optional[str] = None,
    summary: Optional[str] = None,
    **attributes: Any,
) -> Dict[str, Any]:
    """Build a raw Jira issue; keyword attributes use logical names (year, riskLevel, ...)."""
    fields: Dict[str, Any] = {
        "summary": summary or f"Summary of {key}",
        "status": {"name": status} if status is not None else None,
        "issuetype": {"name": issue_type},
        "duedate": duedate,
        "created": "2024-01-15T09:30:00.000+0000",
    }
    if parent:
        fields["parent"] = {"key": parent}
    for name, value in attributes.items():
        fields[config.JIRA_CUSTOM_FIELDS[name]] = value
    return {"key": key, "fields": fields}


def make_record(key: str, **kwargs: Any) -> Record:
    return decode_issue(make_issue(key, **kwargs), config.JIRA_CUSTOM_FIELDS)


class FakeJiraClient:
    """Stands in for JiraClient; answers fetch_records from canned issues keyed by JQL."""

    def __init__(self, responses: Optional[Dict[str, List[Dict[str, Any]]]] = None, error: Optional[DashboardError] = None):
        self.responses = responses or {}
        self.error = error
        self.calls: List[str] = []

    async def fetch_records(self, jql: str) -> List[Record]:
        self.calls.append(jql)
        if self.error is not None:
            raise self.error
        return [decode_issue(raw, config.JIRA_CUSTOM_FIELDS) for raw in self.responses.get(jql, [])]


@pytest.fixture
def fake_jira():
    return FakeJiraClient()


@pytest.fixture
def client(fake_jira):
    app.dependency_overrides[get_jira_client] = lambda: fake_jira
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
