"""
Sheets Client - HTTP client for the Google Sheets values API.

Reads fixed cell ranges with a service-account bearer token. Read-only.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
from urllib.parse import quote
import logging

import httpx
from fastapi.concurrency import run_in_threadpool
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

import config
from errors import SourceUnavailable

logger = logging.getLogger(__name__)


def load_service_account_credentials(raw_key: Optional[str] = None):
    """
    Build service-account credentials from the JSON key held in the environment.

    Private keys pasted into env vars often carry literal "\\n" sequences; they are
    turned back into newlines.

    Raises:
        SourceUnavailable: If the key is missing or cannot be parsed
    """
    raw_key = raw_key if raw_key is not None else config.GOOGLE_SERVICE_ACCOUNT_KEY
    if not raw_key:
        raise SourceUnavailable("Google service account key is not configured")

    try:
        info = json.loads(raw_key)
        if isinstance(info.get("private_key"), str):
            info["private_key"] = info["private_key"].replace("\\n", "\n")
        return service_account.Credentials.from_service_account_info(info, scopes=config.GOOGLE_SHEETS_SCOPES)
    except (ValueError, AttributeError) as e:
        logger.error(f"Invalid Google service account key: {e}")
        raise SourceUnavailable("Google service account key is invalid") from e


class SheetsClient:
    """Client for spreadsheets.values.get / values.batchGet."""

    def __init__(
        self,
        credentials=None,
        base_url: str = config.SHEETS_API_URL,
        timeout: float = config.SHEETS_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._credentials = credentials
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _auth_headers(self) -> Dict[str, str]:
        if self._credentials is None:
            self._credentials = load_service_account_credentials()

        if not self._credentials.valid:
            try:
                # google-auth refreshes synchronously
                await run_in_threadpool(self._credentials.refresh, GoogleAuthRequest())
            except GoogleAuthError as e:
                logger.error(f"Failed to refresh Google credentials: {e}")
                raise SourceUnavailable("Could not authenticate with Google Sheets") from e

        return {"Authorization": f"Bearer {self._credentials.token}"}

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = await self._auth_headers()
        try:
            response = await self._client.get(path, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Sheets API HTTP error: {e.response.status_code} - {e.response.text[:200]}")
            raise SourceUnavailable(f"Sheets API failed with HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error(f"Sheets API timeout for {path}")
            raise SourceUnavailable("Sheets API request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling Sheets API: {e}")
            raise SourceUnavailable(f"Failed to connect to Sheets API: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Sheets API returned a non-JSON body: {e}")
            raise SourceUnavailable("Sheets API returned an invalid response") from e

    async def read_range(self, document_id: str, range_spec: str) -> List[List[Any]]:
        """
        Read one A1 range. Empty trailing rows and cells are omitted by the API.
        """
        data = await self._get(f"/{document_id}/values/{quote(range_spec, safe='')}")
        return data.get("values", [])

    async def read_ranges(self, document_id: str, range_specs: Sequence[str]) -> List[List[List[Any]]]:
        """
        Read several A1 ranges in one call; one 2D array per requested range, in order.
        """
        data = await self._get(f"/{document_id}/values:batchGet", params={"ranges": list(range_specs)})
        value_ranges = data.get("valueRanges", [])
        results = [value_range.get("values", []) for value_range in value_ranges]
        # Pad so positional unpacking always lines up with the request
        results.extend([] for _ in range(len(range_specs) - len(results)))
        return results


async def get_sheets_client() -> AsyncIterator[SheetsClient]:
    """
    FastAPI dependency yielding a request-scoped Sheets client.
    """
    client = SheetsClient()
    try:
        yield client
    finally:
        await client.aclose()
