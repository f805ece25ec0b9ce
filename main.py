from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import logging
import time

import config
from errors import DashboardError

# Import service modules
from findings_service import findings_router
from sheets_service import sheets_router

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

# ANSI color codes for terminal output
class Colors:
    RESET = '\033[0m'
    BOLD = '\033[1m'
    # HTTP Method colors
    GET = '\033[92m'      # Bright Green
    DEFAULT = '\033[90m'  # Gray
    # HTTP Status code colors
    STATUS_SUCCESS = '\033[92m'      # Bright Green (for 2xx)
    STATUS_CLIENT_ERROR = '\033[93m' # Yellow (for 4xx)
    STATUS_SERVER_ERROR = '\033[91m' # Red (for 5xx)

# Emoji mapping for HTTP methods
METHOD_EMOJIS = {
    'GET': '📥',
    'OPTIONS': '🔎',
}

def get_method_style(method: str) -> tuple[str, str]:
    """Returns (color_code, emoji) for HTTP method"""
    method_upper = method.upper()
    emoji = METHOD_EMOJIS.get(method_upper, '📡')
    color = Colors.GET if method_upper == 'GET' else Colors.DEFAULT
    return color, emoji


def get_status_code_colors(status_code: int, method_color: str) -> tuple[str, str]:
    """
    Returns (log_line_color, status_code_color) based on status code.

    - 2xx: method color for the line, green status code
    - 4xx: yellow line
    - 5xx: red line
    - Other: method color, gray status code
    """
    if 200 <= status_code < 300:
        return method_color, Colors.STATUS_SUCCESS
    elif 400 <= status_code < 500:
        return Colors.STATUS_CLIENT_ERROR, Colors.STATUS_CLIENT_ERROR
    elif status_code >= 500:
        return Colors.STATUS_SERVER_ERROR, Colors.STATUS_SERVER_ERROR
    else:
        return method_color, Colors.DEFAULT


app = FastAPI(
    title="Findings Dashboard Backend",
    description="Read-only aggregation API over audit findings, actions, investigations and tasks in Jira",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=config.CORS_METHODS,
    allow_headers=config.CORS_HEADERS,
)

# Paths that should skip START and END message logging
_SKIP_LOG_PATHS = {"/health"}

# Add timing middleware to log request/response times
@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start_time = time.time()
    color, emoji = get_method_style(request.method)
    request_path = request.url.path

    if request_path not in _SKIP_LOG_PATHS:
        logger.info(f"{color}{emoji} REQUEST: {request.method} {request_path} - START{Colors.RESET}")

    response = await call_next(request)

    duration = time.time() - start_time
    status_code = response.status_code

    # Always log errors (4xx, 5xx) even for suppressed paths
    if request_path not in _SKIP_LOG_PATHS or status_code >= 400:
        log_line_color, status_color = get_status_code_colors(status_code, color)
        bold_prefix = Colors.BOLD if status_code >= 400 else ""
        status_bold = Colors.BOLD if status_code >= 200 else ""
        logger.info(
            f"{log_line_color}{bold_prefix}{emoji} REQUEST: {request.method} {request_path} - "
            f"END (Duration: {duration:.3f}s) - Status: {status_color}{status_bold}{status_code}{Colors.RESET}"
        )

    return response

# Include service routers
app.include_router(findings_router, prefix=config.API_PREFIX, tags=["findings"])
app.include_router(sheets_router, prefix=config.API_PREFIX, tags=["sheets"])

@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Findings Dashboard Backend API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "views": f"{config.API_PREFIX}/views"
    }

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Findings Dashboard Backend"}

# Exception handlers: every error body is a flat {"error": "<message>"}
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for consistent error responses"""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=config.DEFAULT_ERROR_CODE,
        content={"error": config.DEFAULT_ERROR_MESSAGE}
    )

@app.exception_handler(DashboardError)
async def dashboard_exception_handler(request, exc):
    """Dashboard errors that escape a view handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message}
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    """HTTP exception handler for consistent error responses"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)}
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Malformed request parameters"""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request parameters"}
    )

if __name__ == "__main__":
    import uvicorn
    import sys

    # Check for port argument in command line first
    port = None
    if len(sys.argv) > 1:
        for i, arg in enumerate(sys.argv):
            if arg == "--port" and i + 1 < len(sys.argv):
                try:
                    port = int(sys.argv[i + 1])
                    break
                except ValueError:
                    print(f"Invalid port number: {sys.argv[i + 1]}")
                    sys.exit(1)

    # If no command line port, use environment variable, then default
    if port is None:
        port = int(os.getenv("PORT", config.DEFAULT_PORT))

    print(f"Starting server on port {port}")
    uvicorn.run(app, host=config.DEFAULT_HOST, port=port, access_log=False)
