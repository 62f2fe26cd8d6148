"""
Jira source client.

Reads the issues assigned to the current user in one project that were
updated during the window, and splits them into closed and in-progress.
"""

import logging
from datetime import date
from typing import Any, Optional

from workday_debrief.integrations.core.errors import SourceUnauthorized, SourceRemoteError
from workday_debrief.integrations.core.types import (
    JiraSourceConfig,
    SourceData,
    SourceName,
    Ticket,
)
from .base import SourceClient, TimeWindow

logger = logging.getLogger(__name__)

_CLOSED_STATUS_MARKERS = ("done", "closed", "resolved")

_SEARCH_FIELDS = "summary,status,resolutiondate"
_MAX_RESULTS = 100


def is_closed_status(status_name: str) -> bool:
    """Jira workflows vary; any status naming done/closed/resolved counts as closed."""
    lowered = status_name.lower()
    return any(marker in lowered for marker in _CLOSED_STATUS_MARKERS)


def _jql_quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_jql(project_key: str, window: Optional[TimeWindow] = None) -> str:
    """JQL for the user's issues in `project_key` updated during the window (default today)."""
    if window is None or window.day == date.today():
        updated = "updated >= startOfDay()"
    else:
        start = window.start.strftime("%Y-%m-%d")
        end = window.end.strftime("%Y-%m-%d")
        updated = f'updated >= "{start}" AND updated < "{end}"'
    return (
        f'assignee = currentUser() AND project = "{_jql_quote(project_key)}" '
        f"AND {updated} ORDER BY updated DESC"
    )


def parse_issue(issue: dict[str, Any], base_url: str) -> Ticket:
    fields = issue.get("fields") or {}
    key = issue.get("key", "")
    return Ticket(
        id=key,
        title=fields.get("summary") or "",
        status=(fields.get("status") or {}).get("name", ""),
        url=f"{base_url}/browse/{key}",
        resolved_at=fields.get("resolutiondate"),
    )


class JiraClient(SourceClient):
    """
    Jira Cloud REST v2 search.

    Auth is HTTP Basic with the account email and an API token.
    """

    def __init__(self, config: Optional[JiraSourceConfig], transport=None):
        super().__init__(transport)
        self._config = config

    @property
    def name(self) -> SourceName:
        return SourceName.JIRA

    @property
    def display_name(self) -> str:
        return "Jira"

    def is_configured(self) -> bool:
        c = self._config
        return bool(c and c.base_url and c.project_key and c.email and c.api_token)

    @property
    def base_url(self) -> str:
        return self._config.base_url.rstrip("/")

    async def _search(self, jql: str) -> list[dict[str, Any]]:
        async with self._client(auth=(self._config.email, self._config.api_token)) as client:
            response = await client.get(
                f"{self.base_url}/rest/api/2/search",
                params={"jql": jql, "fields": _SEARCH_FIELDS, "maxResults": _MAX_RESULTS},
                headers={"Accept": "application/json"},
            )

        if response.status_code == 401:
            raise SourceUnauthorized("Jira authentication failed - check API token")
        if response.status_code == 403:
            raise SourceRemoteError("Jira", "No access to project - check project key", 403)
        if response.status_code != 200:
            raise SourceRemoteError("Jira", f"HTTP {response.status_code}: {response.text[:200]}", response.status_code)

        try:
            return response.json().get("issues", [])
        except ValueError as e:
            raise SourceRemoteError("Jira", f"Invalid response: {e}") from e

    async def _fetch(self, window: TimeWindow) -> SourceData:
        issues = await self._search(build_jql(self._config.project_key, window))

        closed, in_progress = [], []
        for issue in issues:
            ticket = parse_issue(issue, self.base_url)
            (closed if is_closed_status(ticket.status) else in_progress).append(ticket)

        logger.info(f"[SOURCES] jira: {len(closed)} closed, {len(in_progress)} in progress")
        return SourceData(tickets_closed=closed, tickets_in_progress=in_progress)

    async def test_connection(self) -> str:
        """Run today's query and describe what it found."""
        data = await self.fetch(TimeWindow.for_day(date.today()))
        return (
            f"Connected successfully! Found {len(data.tickets_closed)} closed "
            f"and {len(data.tickets_in_progress)} in-progress tickets today."
        )
