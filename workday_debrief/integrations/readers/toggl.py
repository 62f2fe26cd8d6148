"""
Toggl Track source client.

Sums today's time entries into focus hours. A running timer (negative
duration) counts up to now.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from workday_debrief.integrations.core.errors import SourceUnauthorized, SourceRemoteError
from workday_debrief.integrations.core.types import SourceData, SourceName, TogglSourceConfig
from .base import SourceClient, TimeWindow

logger = logging.getLogger(__name__)

TOGGL_API_BASE = "https://api.track.toggl.com/api/v9"

MAX_FOCUS_HOURS = 24.0


def entry_seconds(entry: dict[str, Any], now: datetime) -> float:
    """Tracked seconds for one entry; running timers are measured up to `now`."""
    duration = entry.get("duration") or 0
    if duration >= 0:
        return float(duration)

    start = entry.get("start")
    if not start:
        return 0.0
    try:
        started = datetime.fromisoformat(start.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    return max((now - started).total_seconds(), 0.0)


def total_focus_hours(
    entries: list[dict[str, Any]],
    now: Optional[datetime] = None,
    workspace_id: Optional[str] = None,
) -> float:
    now = now or datetime.now(timezone.utc)
    seconds = sum(
        entry_seconds(e, now)
        for e in entries
        if not workspace_id or str(e.get("workspace_id")) == str(workspace_id)
    )
    return min(seconds / 3600.0, MAX_FOCUS_HOURS)


class TogglClient(SourceClient):
    """Toggl Track v9 time entries, HTTP Basic with `<token>:api_token`."""

    def __init__(self, config: Optional[TogglSourceConfig], transport=None):
        super().__init__(transport)
        self._config = config

    @property
    def name(self) -> SourceName:
        return SourceName.TOGGL

    def is_configured(self) -> bool:
        return bool(self._config and self._config.api_token)

    async def _time_entries(self, window: TimeWindow) -> list[dict[str, Any]]:
        start, end = window.utc_bounds()
        async with self._client(auth=(self._config.api_token, "api_token")) as client:
            response = await client.get(
                f"{TOGGL_API_BASE}/me/time_entries",
                params={"start_date": start, "end_date": end},
            )

        if response.status_code in (401, 403):
            raise SourceUnauthorized("Toggl authentication failed - check API token")
        if response.status_code != 200:
            raise SourceRemoteError("Toggl", f"HTTP {response.status_code}: {response.text[:200]}", response.status_code)

        try:
            entries = response.json()
        except ValueError as e:
            raise SourceRemoteError("Toggl", f"Invalid response: {e}") from e
        return entries or []

    async def _fetch(self, window: TimeWindow) -> SourceData:
        entries = await self._time_entries(window)
        hours = total_focus_hours(entries, workspace_id=self._config.workspace_id)
        logger.info(f"[SOURCES] toggl: {hours:.2f}h across {len(entries)} entries")
        return SourceData(focus_hours=hours)

    async def test_connection(self) -> str:
        data = await self.fetch(TimeWindow.for_day(date.today()))
        return f"Connected successfully! Tracked {data.focus_hours:.1f} hours today."
