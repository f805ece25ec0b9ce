"""
Sheets Service - republishes fixed ranges of the audit reporting spreadsheet.

Values are passed through verbatim, turned into header-keyed rows, or unpacked
from known single cells. No aggregation happens here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

import config
from errors import DashboardError, SourceUnavailable
from sheets_client import SheetsClient, get_sheets_client

logger = logging.getLogger(__name__)

sheets_router = APIRouter()


class SheetReportSummary(BaseModel):
    """Catalogue entry for one spreadsheet report"""
    report_id: str
    description: str
    shape: str = Field(..., description="values, table or cells")
    ranges: List[str] = Field(..., description="A1 ranges read for the report")


@dataclass(frozen=True)
class SheetReport:
    report_id: str
    description: str
    shape: str  # "values" | "table" | "cells"
    ranges: Tuple[Tuple[str, str], ...]  # (name, A1 range)
    error_message: str


SHEET_REPORTS: Dict[str, SheetReport] = {
    report.report_id: report
    for report in (
        SheetReport(
            report_id="audit-plan",
            description="Annual audit plan, one object per planned audit",
            shape="table",
            ranges=(("plan", "Audit Plan!A1:H200"),),
            error_message="Failed to fetch audit plan",
        ),
        SheetReport(
            report_id="audit-plan-raw",
            description="Annual audit plan cells as stored",
            shape="values",
            ranges=(("plan", "Audit Plan!A1:H200"),),
            error_message="Failed to fetch audit plan",
        ),
        SheetReport(
            report_id="risk-register",
            description="Risk register, one object per risk",
            shape="table",
            ranges=(("register", "Risk Register!A1:F500"),),
            error_message="Failed to fetch risk register",
        ),
        SheetReport(
            report_id="kpi-summary",
            description="Headline audit KPIs",
            shape="cells",
            ranges=(
                ("plannedAudits", "KPI!B2"),
                ("completedAudits", "KPI!B3"),
                ("completionRate", "KPI!B4"),
                ("openFindings", "KPI!B5"),
                ("overdueActions", "KPI!B6"),
            ),
            error_message="Failed to fetch KPI summary",
        ),
    )
}


def rows_to_table(rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Use the first row as headers and turn the rest into objects.

    The API trims trailing empty cells, so short rows are padded with "".
    Columns without a header are dropped.
    """
    if not rows:
        return []

    headers = [str(header).strip() for header in rows[0]]
    table = []
    for row in rows[1:]:
        if not any(str(cell).strip() for cell in row):
            continue
        padded = list(row) + [""] * (len(headers) - len(row))
        table.append({header: padded[index] for index, header in enumerate(headers) if header})
    return table


def unpack_cells(names: Sequence[str], value_ranges: Sequence[Sequence[Sequence[Any]]]) -> Dict[str, Any]:
    """Take the first cell of each range; an empty range yields None."""
    result: Dict[str, Any] = {}
    for name, values in zip(names, value_ranges):
        first_row = values[0] if values else []
        result[name] = first_row[0] if first_row else None
    return result


async def resolve_sheet_report(report: SheetReport, sheets: SheetsClient, document_id: Optional[str]) -> Any:
    """
    Raises:
        SourceUnavailable: If no document is configured or the Sheets API fails
    """
    if not document_id:
        raise SourceUnavailable("GOOGLE_SHEET_ID is not configured")

    if report.shape == "cells":
        names = [name for name, _ in report.ranges]
        value_ranges = await sheets.read_ranges(document_id, [range_spec for _, range_spec in report.ranges])
        return unpack_cells(names, value_ranges)

    _, range_spec = report.ranges[0]
    rows = await sheets.read_range(document_id, range_spec)
    if report.shape == "table":
        return rows_to_table(rows)
    return rows


@sheets_router.get(f"{config.SHEETS_SERVICE_PREFIX}/reports", response_model=List[SheetReportSummary])
async def list_sheet_reports():
    """
    Return the catalogue of spreadsheet reports.
    """
    return [
        {
            "report_id": report.report_id,
            "description": report.description,
            "shape": report.shape,
            "ranges": [range_spec for _, range_spec in report.ranges],
        }
        for report in SHEET_REPORTS.values()
    ]


@sheets_router.get(f"{config.SHEETS_SERVICE_PREFIX}/reports/{{report_id}}")
async def get_sheet_report(report_id: str, sheets: SheetsClient = Depends(get_sheets_client)):
    """
    Read one spreadsheet report.

    Available report IDs:
    - audit-plan
    - audit-plan-raw
    - risk-register
    - kpi-summary
    """
    report = SHEET_REPORTS.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report '{report_id}' not found")

    try:
        return await resolve_sheet_report(report, sheets, config.GOOGLE_SHEET_ID)
    except DashboardError as e:
        logger.error(f"Sheet report '{report_id}' failed: {type(e).__name__}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=report.error_message) from e
