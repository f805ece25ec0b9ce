"""Tests for view_definitions - query building, parameter checks and the catalogue."""

from datetime import datetime, timezone

import pytest

from errors import MissingParameter
from view_definitions import (
    FINDINGS_QUERY,
    OPEN_FINDINGS_QUERY,
    TASKS_PROJECT_QUERY,
    VIEW_DEFINITIONS,
    IssueQuery,
    ViewContext,
    get_supported_views,
    get_view_definition,
)


def test_jql_for_single_issue_type():
    assert FINDINGS_QUERY.to_jql() == 'project = FINDINGS AND issuetype = "Audit Finding" ORDER BY created DESC'


def test_jql_for_several_issue_types_and_excluded_statuses():
    assert TASKS_PROJECT_QUERY.to_jql() == 'project = AUDITTASKS AND issuetype in ("Task", "Sub-task") ORDER BY created DESC'
    assert OPEN_FINDINGS_QUERY.to_jql() == (
        'project = FINDINGS AND issuetype = "Audit Finding" AND status not in ("Completed") ORDER BY created DESC'
    )


def test_jql_without_order_and_with_quotes():
    query = IssueQuery("FINDINGS", ('Say "hi"',), order_by=None)
    assert query.to_jql() == 'project = FINDINGS AND issuetype = "Say \\"hi\\""'


def test_required_params_are_checked():
    definition = get_view_definition("finding-details")

    with pytest.raises(MissingParameter, match="Missing year or status parameter"):
        definition.check_required_params({"year": ["2023"]})

    definition.check_required_params({"year": ["2023"], "status": ["Open"]})


def test_default_missing_parameter_message():
    definition = get_view_definition("finding-category-details")
    with pytest.raises(MissingParameter, match="controlCategory"):
        definition.check_required_params({})


def test_catalogue_ids_are_unique_and_resolvable():
    ids = [definition.view_id for definition in VIEW_DEFINITIONS]
    assert len(ids) == len(set(ids))
    assert get_supported_views() == ids
    assert get_view_definition("no-such-view") is None


def test_catalogue_shapes():
    shapes = {definition.shape for definition in VIEW_DEFINITIONS}
    assert shapes == {"list", "count_map", "cross_tab", "histogram", "status_by_year"}


def test_view_context_accessors():
    now = datetime(2024, 6, 15, 23, 30, tzinfo=timezone.utc)
    context = ViewContext(params={"auditType": ["Internal", "External"]}, now=now)

    assert context.value("auditType") == "Internal"
    assert context.allow_list("auditType") == ["Internal", "External"]
    assert context.allow_list("missing") is None
    assert context.value("missing") is None
    assert context.today == now.date()


def test_view_context_default_now_is_utc():
    assert ViewContext().now.tzinfo is timezone.utc
