"""
Jira Client - HTTP client for the Jira issue search API.

Fetches every page of a JQL query into memory and decodes the issues into
Records. One client is created per request; nothing is shared between requests.
"""

import httpx
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
import logging

import config
from errors import FetchIncomplete, SourceUnavailable
from field_normalizer import Record, decode_issue

logger = logging.getLogger(__name__)

# Standard fields every decoded Record needs
BASE_FIELDS = ("summary", "status", "issuetype", "duedate", "created", "parent")


class JiraClient:
    """Paginating client for /rest/api/3/search."""

    def __init__(
        self,
        base_url: str = config.JIRA_DOMAIN,
        email: str = config.JIRA_EMAIL,
        api_token: str = config.JIRA_API_TOKEN,
        page_size: int = config.JIRA_PAGE_SIZE,
        max_pages: int = config.JIRA_MAX_PAGES,
        timeout: float = config.JIRA_TIMEOUT_SECONDS,
        custom_fields: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size
        self.max_pages = max_pages
        self.custom_fields = dict(custom_fields if custom_fields is not None else config.JIRA_CUSTOM_FIELDS)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(email, api_token),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search(
        self,
        jql: str,
        start_at: int,
        max_results: int,
        fields: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        Request one page of search results.

        Returns:
            Dict with "issues" (list of raw issue objects) and "total" (int)

        Raises:
            SourceUnavailable: On timeout, transport error, non-2xx status or an undecodable body
        """
        params: Dict[str, Any] = {"jql": jql, "startAt": start_at, "maxResults": max_results}
        if fields:
            params["fields"] = ",".join(fields)

        try:
            response = await self._client.get(config.JIRA_SEARCH_PATH, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Jira search HTTP error: {e.response.status_code} - {e.response.text[:200]}")
            raise SourceUnavailable(f"Jira search failed with HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error(f"Jira search timeout at startAt={start_at}")
            raise SourceUnavailable("Jira search timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling Jira search: {e}")
            raise SourceUnavailable(f"Failed to connect to Jira: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Jira search returned a non-JSON body: {e}")
            raise SourceUnavailable("Jira search returned an invalid response") from e

        issues = data.get("issues") if isinstance(data, dict) else None
        total = data.get("total") if isinstance(data, dict) else None
        if not isinstance(issues, list) or not isinstance(total, int):
            raise SourceUnavailable("Jira search response is missing 'issues' or 'total'")

        return {"issues": issues, "total": total}

    async def fetch_all(self, jql: str, fields: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """
        Fetch every issue matching a JQL query, page by page in ascending offset order.

        The offset advances by the number of issues actually received, so a short
        page never causes a gap. Issues whose key was already seen are skipped.

        Raises:
            SourceUnavailable: If any page request fails (partial results are discarded)
            FetchIncomplete: If a page comes back empty or with only already-seen issues
                before the total is reached, or the page cap is hit
        """
        issues: List[Dict[str, Any]] = []
        seen_keys = set()
        start_at = 0
        total = 0

        for page_number in range(1, self.max_pages + 1):
            page = await self.search(jql, start_at, self.page_size, fields)
            total = page["total"]
            batch = page["issues"]

            fetched_before = len(issues)
            for issue in batch:
                key = issue.get("key") if isinstance(issue, dict) else None
                if key in seen_keys:
                    logger.warning(f"⚠️  Skipping duplicate issue {key} at startAt={start_at}")
                    continue
                seen_keys.add(key)
                issues.append(issue)

            if len(issues) >= total:
                logger.info(f"Fetched {len(issues)} issues in {page_number} page(s) for JQL: {jql}")
                return issues

            if not batch:
                raise FetchIncomplete(
                    f"Jira returned an empty page at startAt={start_at} with {len(issues)} of {total} issues retrieved"
                )

            if len(issues) == fetched_before:
                raise FetchIncomplete(
                    f"Jira returned no new issues at startAt={start_at} with {len(issues)} of {total} issues retrieved"
                )

            start_at += len(batch)

        raise FetchIncomplete(
            f"Stopped after {self.max_pages} pages with {len(issues)} of {total} issues retrieved"
        )

    async def fetch_records(self, jql: str) -> List[Record]:
        """Fetch every issue matching a JQL query and decode it into Records."""
        fields = list(BASE_FIELDS) + list(self.custom_fields.values())
        raw_issues = await self.fetch_all(jql, fields)
        return [decode_issue(raw, self.custom_fields) for raw in raw_issues]


async def get_jira_client() -> AsyncIterator[JiraClient]:
    """
    FastAPI dependency yielding a request-scoped Jira client.
    """
    client = JiraClient()
    try:
        yield client
    finally:
        await client.aclose()
