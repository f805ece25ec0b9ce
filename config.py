# FILE: config.py
# Central configuration file for the Findings Dashboard Backend
import os
from dotenv import load_dotenv

# Load environment variables from .env file (for local development)
load_dotenv()

# --- API Configuration ---
API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"

# --- Jira Configuration ---
JIRA_DOMAIN = (os.getenv("JIRA_DOMAIN") or "https://example.atlassian.net").rstrip("/")
JIRA_EMAIL = os.getenv("JIRA_EMAIL") or ""
JIRA_API_TOKEN = os.getenv("JIRA_API_TOKEN") or ""
JIRA_SEARCH_PATH = os.getenv("JIRA_SEARCH_PATH") or "/rest/api/3/search"

# Pagination: page size per search call and a hard cap on page requests per fetch
JIRA_PAGE_SIZE = int(os.getenv("JIRA_PAGE_SIZE") or "100")
JIRA_MAX_PAGES = int(os.getenv("JIRA_MAX_PAGES") or "500")
JIRA_TIMEOUT_SECONDS = float(os.getenv("JIRA_TIMEOUT_SECONDS") or "30")

# --- Project Keys ---
FINDINGS_PROJECT_KEY = os.getenv("FINDINGS_PROJECT_KEY") or "FINDINGS"
INVESTIGATIONS_PROJECT_KEY = os.getenv("INVESTIGATIONS_PROJECT_KEY") or "INVESTIGATIONS"
TASKS_PROJECT_KEY = os.getenv("TASKS_PROJECT_KEY") or "AUDITTASKS"

# --- Issue Type Names ---
ISSUE_TYPE_FINDING = os.getenv("ISSUE_TYPE_FINDING") or "Audit Finding"
ISSUE_TYPE_ACTION = os.getenv("ISSUE_TYPE_ACTION") or "Finding Action"
ISSUE_TYPE_INVESTIGATION = os.getenv("ISSUE_TYPE_INVESTIGATION") or "Investigation"
ISSUE_TYPE_TASK = os.getenv("ISSUE_TYPE_TASK") or "Task"
ISSUE_TYPE_SUBTASK = os.getenv("ISSUE_TYPE_SUBTASK") or "Sub-task"

# --- Custom Field Mapping ---
# Logical attribute name -> Jira custom field id (ids differ per Jira instance)
JIRA_CUSTOM_FIELDS = {
    "year": os.getenv("JIRA_FIELD_YEAR") or "customfield_16447",
    "riskLevel": os.getenv("JIRA_FIELD_RISK_LEVEL") or "customfield_16448",
    "controlCategory": os.getenv("JIRA_FIELD_CONTROL_CATEGORY") or "customfield_16449",
    "auditLead": os.getenv("JIRA_FIELD_AUDIT_LEAD") or "customfield_16450",
    "auditType": os.getenv("JIRA_FIELD_AUDIT_TYPE") or "customfield_16451",
    "revisedDueDate": os.getenv("JIRA_FIELD_REVISED_DUE_DATE") or "customfield_16452",
}

# --- Normalization Fallbacks ---
UNASSIGNED_LABEL = "Unassigned"
UNKNOWN_LABEL = "Unknown"
NOT_ASSIGNED_YEAR_LABEL = "Not Assigned"

# --- Google Sheets Configuration ---
GOOGLE_SERVICE_ACCOUNT_KEY = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY")  # JSON string of the service account key
GOOGLE_SHEET_ID = os.getenv("GOOGLE_SHEET_ID")
GOOGLE_SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_TIMEOUT_SECONDS = float(os.getenv("SHEETS_TIMEOUT_SECONDS") or "30")

# --- Service Configuration ---
# Sheets Service
SHEETS_SERVICE_PREFIX = "/sheets"

# --- Error Handling Configuration ---
DEFAULT_ERROR_MESSAGE = "Internal server error"
DEFAULT_ERROR_CODE = 500

# --- Logging Configuration ---
LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# --- CORS Configuration ---
CORS_ORIGINS = ["*"]  # Open internal proxy
CORS_METHODS = ["*"]
CORS_HEADERS = ["*"]

# --- Server Configuration ---
DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
