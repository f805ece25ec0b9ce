"""Tests for the Google Sheets client and the spreadsheet report routes."""

import httpx
import pytest
from google.auth.exceptions import RefreshError

import config
from errors import SourceUnavailable
from main import app
from sheets_client import SheetsClient, get_sheets_client, load_service_account_credentials
from sheets_service import SHEET_REPORTS, resolve_sheet_report, rows_to_table, unpack_cells


class FakeCredentials:
    def __init__(self, valid=True, token="t", error=None):
        self.valid = valid
        self.token = token
        self.error = error
        self.refreshed = 0

    def refresh(self, request):
        self.refreshed += 1
        if self.error is not None:
            raise self.error
        self.valid = True
        self.token = "refreshed"


class FakeSheetsClient:
    def __init__(self, rows=None, value_ranges=None):
        self.rows = rows or []
        self.value_ranges = value_ranges or []
        self.calls = []

    async def read_range(self, document_id, range_spec):
        self.calls.append((document_id, range_spec))
        return self.rows

    async def read_ranges(self, document_id, range_specs):
        self.calls.append((document_id, list(range_specs)))
        return self.value_ranges


def _sheets_client(handler, credentials=None):
    return SheetsClient(
        credentials=credentials or FakeCredentials(),
        base_url="https://sheets.example.test/v4/spreadsheets",
        transport=httpx.MockTransport(handler),
    )


# =============================================================================
# CLIENT
# =============================================================================


async def test_read_range_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, json={"values": [["Audit", "Owner"], ["IT General", "Jane"]]})

    client = _sheets_client(handler)
    rows = await client.read_range("doc-1", "Audit Plan!A1:H200")
    await client.aclose()

    assert rows == [["Audit", "Owner"], ["IT General", "Jane"]]
    assert seen["auth"] == "Bearer t"
    assert "/v4/spreadsheets/doc-1/values/" in seen["path"]


async def test_read_range_without_values_is_empty():
    client = _sheets_client(lambda request: httpx.Response(200, json={"range": "KPI!B2"}))
    assert await client.read_range("doc-1", "KPI!B2") == []
    await client.aclose()


async def test_read_ranges_uses_batch_get_and_pads():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["ranges"] = request.url.params.get_list("ranges")
        return httpx.Response(200, json={"valueRanges": [{"values": [["12"]]}]})

    client = _sheets_client(handler)
    result = await client.read_ranges("doc-1", ["KPI!B2", "KPI!B3"])
    await client.aclose()

    assert seen["path"].endswith("/doc-1/values:batchGet")
    assert seen["ranges"] == ["KPI!B2", "KPI!B3"]
    assert result == [[["12"]], []]


async def test_expired_credentials_are_refreshed():
    credentials = FakeCredentials(valid=False, token=None)
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"values": []})

    client = _sheets_client(handler, credentials)
    await client.read_range("doc-1", "KPI!B2")
    await client.aclose()

    assert credentials.refreshed == 1
    assert seen["auth"] == "Bearer refreshed"


async def test_refresh_failure_is_source_unavailable():
    credentials = FakeCredentials(valid=False, error=RefreshError("invalid_grant"))
    client = _sheets_client(lambda request: httpx.Response(200, json={}), credentials)

    with pytest.raises(SourceUnavailable, match="authenticate"):
        await client.read_range("doc-1", "KPI!B2")
    await client.aclose()


async def test_http_error_is_source_unavailable():
    client = _sheets_client(lambda request: httpx.Response(403, json={"error": {"message": "denied"}}))

    with pytest.raises(SourceUnavailable, match="HTTP 403"):
        await client.read_range("doc-1", "KPI!B2")
    await client.aclose()


def test_missing_or_invalid_service_account_key():
    with pytest.raises(SourceUnavailable, match="not configured"):
        load_service_account_credentials("")
    with pytest.raises(SourceUnavailable, match="invalid"):
        load_service_account_credentials("not json")


# =============================================================================
# SHAPING
# =============================================================================


def test_rows_to_table_pads_and_skips_blank_rows():
    rows = [
        ["Audit", "Owner", "", "Status"],
        ["IT General", "Jane"],
        ["", " "],
        ["Payroll", "Omar", "x", "Planned"],
    ]

    assert rows_to_table(rows) == [
        {"Audit": "IT General", "Owner": "Jane", "Status": ""},
        {"Audit": "Payroll", "Owner": "Omar", "Status": "Planned"},
    ]
    assert rows_to_table([]) == []


def test_unpack_cells_takes_first_cell():
    assert unpack_cells(["a", "b", "c"], [[["12", "ignored"]], [], [[]]]) == {"a": "12", "b": None, "c": None}


async def test_resolve_without_document_id():
    with pytest.raises(SourceUnavailable):
        await resolve_sheet_report(SHEET_REPORTS["audit-plan"], FakeSheetsClient(), None)


# =============================================================================
# ROUTES
# =============================================================================


def test_table_report_route(client, monkeypatch):
    fake = FakeSheetsClient(rows=[["Risk", "Rating"], ["Vendor lock-in", "High"]])
    app.dependency_overrides[get_sheets_client] = lambda: fake
    monkeypatch.setattr(config, "GOOGLE_SHEET_ID", "doc-1")

    response = client.get("/api/v1/sheets/reports/risk-register")

    assert response.status_code == 200
    assert response.json() == [{"Risk": "Vendor lock-in", "Rating": "High"}]
    assert fake.calls == [("doc-1", "Risk Register!A1:F500")]


def test_cells_report_route(client, monkeypatch):
    fake = FakeSheetsClient(value_ranges=[[["40"]], [["31"]], [["77.5%"]], [], [["4"]]])
    app.dependency_overrides[get_sheets_client] = lambda: fake
    monkeypatch.setattr(config, "GOOGLE_SHEET_ID", "doc-1")

    assert client.get("/api/v1/sheets/reports/kpi-summary").json() == {
        "plannedAudits": "40",
        "completedAudits": "31",
        "completionRate": "77.5%",
        "openFindings": None,
        "overdueActions": "4",
    }


def test_unknown_report_and_missing_document(client, monkeypatch):
    app.dependency_overrides[get_sheets_client] = lambda: FakeSheetsClient()
    monkeypatch.setattr(config, "GOOGLE_SHEET_ID", None)

    unknown = client.get("/api/v1/sheets/reports/nope")
    missing = client.get("/api/v1/sheets/reports/audit-plan")

    assert unknown.status_code == 404
    assert unknown.json() == {"error": "Report 'nope' not found"}
    assert missing.status_code == 500
    assert missing.json() == {"error": "Failed to fetch audit plan"}


def test_report_catalogue(client):
    reports = client.get("/api/v1/sheets/reports").json()
    assert {report["report_id"] for report in reports} == set(SHEET_REPORTS)
