"""
View definitions and data dispatchers for the findings dashboard.

Each view is a declarative descriptor: which Jira queries to run, which
aggregation to apply, which query parameters it needs. findings_service.py
interprets the descriptors with one generic handler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

import config
from aggregations import (
    STATUS_OPEN,
    STATUS_OVERDUE,
    AttributeMatch,
    RiskLevelMatch,
    age_histogram,
    categorize_status,
    count_by_parent_attribute,
    count_by_status,
    filter_by_attribute,
    filter_by_status,
    filter_by_status_category,
    list_records,
    parent_risk_cross_tab,
    project_records,
    risk_cross_tab,
    status_by_year,
    summarize_with_child_counts,
    unique_count_by_year,
)
from errors import MissingParameter
from field_normalizer import Record, normalize, parse_date
from record_linker import index_records

logger = logging.getLogger(__name__)

ALL_YEARS = "all"
DELAYED_STATUS = "Delayed"


@dataclass(frozen=True)
class IssueQuery:
    """A JQL query over one project, optionally narrowed to issue types and away from statuses."""

    project: str
    issue_types: Tuple[str, ...] = ()
    exclude_statuses: Tuple[str, ...] = ()
    order_by: Optional[str] = "created DESC"

    def to_jql(self) -> str:
        clauses = [f"project = {self.project}"]
        if len(self.issue_types) == 1:
            clauses.append(f"issuetype = {_quote(self.issue_types[0])}")
        elif self.issue_types:
            clauses.append(f"issuetype in ({', '.join(_quote(t) for t in self.issue_types)})")
        if self.exclude_statuses:
            clauses.append(f"status not in ({', '.join(_quote(s) for s in self.exclude_statuses)})")

        jql = " AND ".join(clauses)
        if self.order_by:
            jql += f" ORDER BY {self.order_by}"
        return jql


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass
class ViewContext:
    """Per-request inputs to an aggregation: parsed query parameters and a single "now"."""

    params: Dict[str, List[str]] = field(default_factory=dict)
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def today(self) -> date:
        return self.now.date()

    def value(self, name: str) -> Optional[str]:
        values = self.params.get(name)
        return values[0] if values else None

    def allow_list(self, name: str) -> Optional[List[str]]:
        values = self.params.get(name)
        return list(values) if values else None


Datasets = Dict[str, List[Record]]
ViewAggregate = Callable[[Datasets, ViewContext], Any]


@dataclass(frozen=True)
class ViewDefinition:
    view_id: str
    description: str
    shape: str
    queries: Tuple[Tuple[str, IssueQuery], ...]
    aggregate: ViewAggregate
    error_message: str
    required_params: Tuple[str, ...] = ()
    missing_params_message: Optional[str] = None

    def check_required_params(self, params: Dict[str, List[str]]) -> None:
        """
        Raises:
            MissingParameter: If any required parameter is absent or blank
        """
        missing = [name for name in self.required_params if not params.get(name)]
        if missing:
            message = self.missing_params_message or f"Missing required parameter(s): {', '.join(missing)}"
            raise MissingParameter(message)


# =============================================================================
# QUERIES
# =============================================================================

FINDINGS_PROJECT_QUERY = IssueQuery(config.FINDINGS_PROJECT_KEY)
FINDINGS_QUERY = IssueQuery(config.FINDINGS_PROJECT_KEY, (config.ISSUE_TYPE_FINDING,))
OPEN_FINDINGS_QUERY = IssueQuery(
    config.FINDINGS_PROJECT_KEY,
    (config.ISSUE_TYPE_FINDING,),
    exclude_statuses=("Completed",),
)
ACTIONS_QUERY = IssueQuery(config.FINDINGS_PROJECT_KEY, (config.ISSUE_TYPE_ACTION,))
INVESTIGATIONS_QUERY = IssueQuery(config.INVESTIGATIONS_PROJECT_KEY, (config.ISSUE_TYPE_INVESTIGATION,))
TASKS_PROJECT_QUERY = IssueQuery(config.TASKS_PROJECT_KEY, (config.ISSUE_TYPE_TASK, config.ISSUE_TYPE_SUBTASK))
TASKS_QUERY = IssueQuery(config.TASKS_PROJECT_KEY, (config.ISSUE_TYPE_TASK,))


# =============================================================================
# AGGREGATES
# =============================================================================


def _of_kind(records: List[Record], kind: str) -> List[Record]:
    return [record for record in records if record.kind == kind]


def _by_audit_type(records: List[Record], context: ViewContext) -> List[Record]:
    return filter_by_attribute(records, "auditType", context.allow_list("auditType"), config.UNASSIGNED_LABEL)


def _year_matches(record: Record, year: str) -> bool:
    if year.lower() == ALL_YEARS:
        return True
    record_year = normalize(record, "year", config.UNKNOWN_LABEL)
    if record_year == config.UNKNOWN_LABEL:
        return year in (config.NOT_ASSIGNED_YEAR_LABEL, config.UNKNOWN_LABEL)
    return record_year == year


def _details_by_year_and_status(records: List[Record], context: ViewContext) -> List[Dict[str, Any]]:
    """Several years or statuses may be given; a record matching any of each is kept."""
    years = context.allow_list("year") or []
    statuses = set(context.allow_list("status") or [])
    matching = [
        record
        for record in records
        if any(_year_matches(record, year) for year in years)
        and categorize_status(record, context.now) in statuses
    ]
    return project_records(matching)


def _issues(datasets: Datasets, context: ViewContext) -> Any:
    return list_records(datasets["issues"])


def _finding_summary(datasets: Datasets, context: ViewContext) -> Any:
    issues = datasets["issues"]
    findings = _of_kind(issues, config.ISSUE_TYPE_FINDING)
    actions = _of_kind(issues, config.ISSUE_TYPE_ACTION)
    return summarize_with_child_counts(findings, actions, "actionCount")


def _finding_status_by_year(datasets: Datasets, context: ViewContext) -> Any:
    findings = _by_audit_type(datasets["findings"], context)
    return status_by_year(findings, context.now, config.UNKNOWN_LABEL)


def _finding_details(datasets: Datasets, context: ViewContext) -> Any:
    return _details_by_year_and_status(datasets["findings"], context)


def _status_counts(dataset: str) -> ViewAggregate:
    def aggregate(datasets: Datasets, context: ViewContext) -> Any:
        return count_by_status(datasets[dataset], config.UNKNOWN_LABEL)

    return aggregate


def _finding_count_by_year(datasets: Datasets, context: ViewContext) -> Any:
    findings = _by_audit_type(datasets["findings"], context)
    return unique_count_by_year(findings, config.UNKNOWN_LABEL)


def _finding_risk_by(row_attribute: str, row_fallback: str, row_label_name: str) -> ViewAggregate:
    def aggregate(datasets: Datasets, context: ViewContext) -> Any:
        findings = _by_audit_type(datasets["findings"], context)
        return risk_cross_tab(findings, row_attribute, row_fallback, row_label_name)

    return aggregate


def _finding_category_details(datasets: Datasets, context: ViewContext) -> Any:
    matches = [AttributeMatch("controlCategory", context.value("controlCategory"), config.UNASSIGNED_LABEL)]
    risk_level = context.value("riskLevel")
    if risk_level:
        matches.append(RiskLevelMatch(risk_level))
    return project_records(datasets["findings"], matches)


def _open_aging(dataset: str) -> ViewAggregate:
    def aggregate(datasets: Datasets, context: ViewContext) -> Any:
        pending = filter_by_status_category(datasets[dataset], (STATUS_OPEN, STATUS_OVERDUE), context.now)
        return age_histogram(pending, context.today)

    return aggregate


def _action_delayed_aging(datasets: Datasets, context: ViewContext) -> Any:
    delayed = filter_by_status(datasets["actions"], (DELAYED_STATUS,))
    return age_histogram(
        delayed,
        context.today,
        reference_of=lambda record: parse_date(record.attributes.get("revisedDueDate")),
    )


def _action_count_by_category(datasets: Datasets, context: ViewContext) -> Any:
    parent_index = index_records(datasets["findings"])
    return count_by_parent_attribute(datasets["actions"], parent_index, "controlCategory", config.UNASSIGNED_LABEL)


def _action_count_by_audit_lead(datasets: Datasets, context: ViewContext) -> Any:
    parent_index = index_records(datasets["findings"])
    return count_by_parent_attribute(
        datasets["actions"], parent_index, "auditLead", config.UNASSIGNED_LABEL, prefer_own=True
    )


def _action_risk_by_category(datasets: Datasets, context: ViewContext) -> Any:
    parent_index = index_records(datasets["findings"])
    return parent_risk_cross_tab(
        datasets["actions"], parent_index, "controlCategory", config.UNASSIGNED_LABEL, "category"
    )


def _investigation_status_by_year(datasets: Datasets, context: ViewContext) -> Any:
    return status_by_year(datasets["investigations"], context.now, config.UNKNOWN_LABEL)


def _investigation_details(datasets: Datasets, context: ViewContext) -> Any:
    return _details_by_year_and_status(datasets["investigations"], context)


def _task_summary(datasets: Datasets, context: ViewContext) -> Any:
    issues = datasets["tasks"]
    tasks = _of_kind(issues, config.ISSUE_TYPE_TASK)
    subtasks = _of_kind(issues, config.ISSUE_TYPE_SUBTASK)
    return summarize_with_child_counts(tasks, subtasks, "subTaskCount")


# =============================================================================
# CATALOGUE
# =============================================================================

VIEW_DEFINITIONS: Tuple[ViewDefinition, ...] = (
    ViewDefinition(
        view_id="issues",
        description="All issues in the findings project",
        shape="list",
        queries=(("issues", FINDINGS_PROJECT_QUERY),),
        aggregate=_issues,
        error_message="Jira issues could not be fetched",
    ),
    ViewDefinition(
        view_id="finding-summary",
        description="Audit findings with the number of actions raised against each",
        shape="list",
        queries=(("issues", FINDINGS_PROJECT_QUERY),),
        aggregate=_finding_summary,
        error_message="Failed to fetch finding summary",
    ),
    ViewDefinition(
        view_id="finding-status-by-year",
        description="Finding counts per year split into Completed, Open and Overdue",
        shape="status_by_year",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_finding_status_by_year,
        error_message="Failed to calculate findings by year",
    ),
    ViewDefinition(
        view_id="finding-details",
        description="Findings of one year (or 'all') in one status category",
        shape="list",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_finding_details,
        error_message="Failed to fetch finding details",
        required_params=("year", "status"),
        missing_params_message="Missing year or status parameter",
    ),
    ViewDefinition(
        view_id="finding-status-counts",
        description="Finding counts per Jira status",
        shape="count_map",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_status_counts("findings"),
        error_message="Failed to count findings by status",
    ),
    ViewDefinition(
        view_id="finding-count-by-year",
        description="Number of findings per year",
        shape="list",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_finding_count_by_year,
        error_message="Failed to count findings by year",
    ),
    ViewDefinition(
        view_id="finding-risk-by-category",
        description="Findings per control category and risk level",
        shape="cross_tab",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_finding_risk_by("controlCategory", config.UNASSIGNED_LABEL, "category"),
        error_message="Failed to build risk matrix by control category",
    ),
    ViewDefinition(
        view_id="finding-risk-by-audit-lead",
        description="Findings per audit lead and risk level",
        shape="cross_tab",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_finding_risk_by("auditLead", config.UNASSIGNED_LABEL, "auditLead"),
        error_message="Failed to build risk matrix by audit lead",
    ),
    ViewDefinition(
        view_id="finding-risk-by-year",
        description="Findings per year and risk level",
        shape="cross_tab",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_finding_risk_by("year", config.UNKNOWN_LABEL, "year"),
        error_message="Failed to build risk matrix by year",
    ),
    ViewDefinition(
        view_id="finding-category-details",
        description="Findings of one control category, optionally of one risk level",
        shape="list",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_finding_category_details,
        error_message="Failed to fetch finding category details",
        required_params=("controlCategory",),
        missing_params_message="Missing controlCategory parameter",
    ),
    ViewDefinition(
        view_id="finding-aging",
        description="Open and overdue findings bucketed by days since due date",
        shape="histogram",
        queries=(("findings", FINDINGS_QUERY),),
        aggregate=_open_aging("findings"),
        error_message="Failed to calculate finding aging",
    ),
    ViewDefinition(
        view_id="action-status-counts",
        description="Finding action counts per Jira status",
        shape="count_map",
        queries=(("actions", ACTIONS_QUERY),),
        aggregate=_status_counts("actions"),
        error_message="Failed to count actions by status",
    ),
    ViewDefinition(
        view_id="action-aging",
        description="Open and overdue actions bucketed by days since due date",
        shape="histogram",
        queries=(("actions", ACTIONS_QUERY),),
        aggregate=_open_aging("actions"),
        error_message="Failed to calculate action aging",
    ),
    ViewDefinition(
        view_id="action-delayed-aging",
        description="Delayed actions bucketed by days since revised due date",
        shape="histogram",
        queries=(("actions", ACTIONS_QUERY),),
        aggregate=_action_delayed_aging,
        error_message="Failed to calculate delayed action aging",
    ),
    ViewDefinition(
        view_id="action-count-by-category",
        description="Actions of not-completed findings per the finding's control category",
        shape="count_map",
        queries=(("findings", OPEN_FINDINGS_QUERY), ("actions", ACTIONS_QUERY)),
        aggregate=_action_count_by_category,
        error_message="Failed to count actions by control category",
    ),
    ViewDefinition(
        view_id="action-count-by-audit-lead",
        description="Actions per audit lead, taken from the action or else from its finding",
        shape="count_map",
        queries=(("findings", FINDINGS_QUERY), ("actions", ACTIONS_QUERY)),
        aggregate=_action_count_by_audit_lead,
        error_message="Failed to count actions by audit lead",
    ),
    ViewDefinition(
        view_id="action-risk-by-category",
        description="Actions of not-completed findings per the finding's control category and risk level",
        shape="cross_tab",
        queries=(("findings", OPEN_FINDINGS_QUERY), ("actions", ACTIONS_QUERY)),
        aggregate=_action_risk_by_category,
        error_message="Failed to build action risk matrix",
    ),
    ViewDefinition(
        view_id="investigation-status-counts",
        description="Investigation counts per Jira status",
        shape="count_map",
        queries=(("investigations", INVESTIGATIONS_QUERY),),
        aggregate=_status_counts("investigations"),
        error_message="Failed to count investigations by status",
    ),
    ViewDefinition(
        view_id="investigation-status-by-year",
        description="Investigation counts per year split into Completed, Open and Overdue",
        shape="status_by_year",
        queries=(("investigations", INVESTIGATIONS_QUERY),),
        aggregate=_investigation_status_by_year,
        error_message="Failed to calculate investigations by year",
    ),
    ViewDefinition(
        view_id="investigation-details",
        description="Investigations of one year (or 'all') in one status category",
        shape="list",
        queries=(("investigations", INVESTIGATIONS_QUERY),),
        aggregate=_investigation_details,
        error_message="Failed to fetch investigation details",
        required_params=("year", "status"),
        missing_params_message="Missing year or status parameter",
    ),
    ViewDefinition(
        view_id="task-summary",
        description="Audit tasks with the number of sub-tasks under each",
        shape="list",
        queries=(("tasks", TASKS_PROJECT_QUERY),),
        aggregate=_task_summary,
        error_message="Failed to fetch task summary",
    ),
    ViewDefinition(
        view_id="task-aging",
        description="Open and overdue tasks bucketed by days since due date",
        shape="histogram",
        queries=(("tasks", TASKS_QUERY),),
        aggregate=_open_aging("tasks"),
        error_message="Failed to calculate task aging",
    ),
)

_VIEWS_BY_ID: Dict[str, ViewDefinition] = {definition.view_id: definition for definition in VIEW_DEFINITIONS}


def get_view_definition(view_id: str) -> Optional[ViewDefinition]:
    return _VIEWS_BY_ID.get(view_id)


def get_supported_views() -> List[str]:
    """
    Return the ids of every view in the catalogue.
    """
    return list(_VIEWS_BY_ID.keys())
