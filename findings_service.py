"""
Findings Service - read-only JSON views over audit findings, actions,
investigations and tasks fetched from Jira.

Every route is generated from a ViewDefinition; one generic handler validates
parameters, fetches each query in turn and applies the view's aggregation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from errors import DashboardError, MissingParameter
from jira_client import JiraClient, get_jira_client
from view_definitions import VIEW_DEFINITIONS, ViewContext, ViewDefinition

logger = logging.getLogger(__name__)

findings_router = APIRouter()


class ViewSummary(BaseModel):
    """Catalogue entry for one view"""
    view_id: str = Field(..., description="View identifier, also the route path")
    path: str = Field(..., description="Route path under the API prefix")
    description: str
    shape: str = Field(..., description="list, count_map, cross_tab, histogram or status_by_year")
    required_params: List[str] = Field(default_factory=list, description="Query parameters the view cannot run without")
    queries: Dict[str, str] = Field(default_factory=dict, description="Dataset name to JQL, fetched in this order")


def _normalize_multi_value(values: Optional[List[str]]) -> Optional[List[str]]:
    if not values:
        return None
    normalized: List[str] = []
    for value in values:
        if value is None:
            continue
        parts = [part.strip() for part in value.split(",") if part.strip()]
        normalized.extend(parts)
    return normalized if normalized else None


def parse_view_params(request: Request) -> Dict[str, List[str]]:
    """
    Collect query parameters as lists; comma-separated and repeated values both accumulate.
    """
    raw_params: Dict[str, List[str]] = {}
    for key, value in request.query_params.multi_items():
        raw_params.setdefault(key, []).append(value)

    params: Dict[str, List[str]] = {}
    for key, values in raw_params.items():
        normalized = _normalize_multi_value(values)
        if normalized:
            params[key] = normalized
    return params


async def resolve_view(
    definition: ViewDefinition,
    params: Dict[str, List[str]],
    jira: JiraClient,
    now: Optional[datetime] = None,
) -> Any:
    """
    Resolve one view: validate parameters, fetch its queries sequentially, aggregate.

    Raises:
        MissingParameter: Before any fetch, if a required parameter is absent
        SourceUnavailable, FetchIncomplete: From the fetcher
    """
    definition.check_required_params(params)

    datasets = {}
    for dataset_name, query in definition.queries:
        datasets[dataset_name] = await jira.fetch_records(query.to_jql())

    context = ViewContext(params=params, now=now or datetime.now(timezone.utc))
    logger.info(
        f"Aggregating view '{definition.view_id}' over "
        + ", ".join(f"{name}={len(records)}" for name, records in datasets.items())
    )
    return definition.aggregate(datasets, context)


def _make_view_endpoint(definition: ViewDefinition):
    async def view_endpoint(request: Request, jira: JiraClient = Depends(get_jira_client)):
        params = parse_view_params(request)
        try:
            return await resolve_view(definition, params, jira)
        except MissingParameter as e:
            raise HTTPException(status_code=e.status_code, detail=e.message) from e
        except DashboardError as e:
            logger.error(f"View '{definition.view_id}' failed: {type(e).__name__}: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=definition.error_message) from e
        except Exception as e:
            logger.error(f"Unexpected error building view '{definition.view_id}': {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=definition.error_message) from e

    view_endpoint.__name__ = "get_" + definition.view_id.replace("-", "_")
    view_endpoint.__doc__ = definition.description
    return view_endpoint


@findings_router.get("/views", response_model=List[ViewSummary])
async def list_views():
    """
    Return the catalogue of available views.
    """
    return [
        {
            "view_id": definition.view_id,
            "path": f"/{definition.view_id}",
            "description": definition.description,
            "shape": definition.shape,
            "required_params": list(definition.required_params),
            "queries": {name: query.to_jql() for name, query in definition.queries},
        }
        for definition in VIEW_DEFINITIONS
    ]


for _definition in VIEW_DEFINITIONS:
    findings_router.add_api_route(
        f"/{_definition.view_id}",
        _make_view_endpoint(_definition),
        methods=["GET"],
        summary=_definition.description,
    )
