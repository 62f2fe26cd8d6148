"""
Google Calendar source client.

Timed events from the primary calendar. All-day events and events the user
declined are left out.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from workday_debrief.integrations.core.errors import (
    OAuthNotConnected,
    OAuthUnauthorized,
    OAuthRefreshError,
    SourceUnauthorized,
    SourceRemoteError,
)
from workday_debrief.integrations.core.google_client import GoogleCalendarAPI, GoogleAPIError
from workday_debrief.integrations.core.oauth import OAuthSessionManager
from workday_debrief.integrations.core.types import Meeting, SourceData, SourceName
from .base import SourceClient, TimeWindow

logger = logging.getLogger(__name__)

UNTITLED_MEETING = "Untitled meeting"

_REAUTH_MESSAGE = OAuthUnauthorized().message


def _parse_rfc3339(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _declined_by_user(event: dict[str, Any]) -> bool:
    for attendee in event.get("attendees") or []:
        if attendee.get("self") and attendee.get("responseStatus") == "declined":
            return True
    return False


def parse_event(event: dict[str, Any]) -> Optional[Meeting]:
    """
    Convert a Calendar event to a Meeting.

    Returns:
        None for all-day events (date only) and events the user declined
    """
    start = (event.get("start") or {}).get("dateTime")
    end = (event.get("end") or {}).get("dateTime")
    if not start or not end:
        return None
    if _declined_by_user(event):
        return None

    try:
        minutes = int((_parse_rfc3339(end) - _parse_rfc3339(start)).total_seconds() // 60)
    except ValueError:
        logger.warning(f"[SOURCES] calendar: unparseable event times {start!r} / {end!r}")
        minutes = 0

    return Meeting(
        title=event.get("summary") or UNTITLED_MEETING,
        start=start,
        end=end,
        duration_minutes=max(minutes, 0),
    )


class GoogleCalendarClient(SourceClient):
    """
    Calendar source backed by the OAuth session.

    The session is consulted before every call so an expired access token is
    refreshed first; only a failed refresh is reported as unauthorized.
    """

    def __init__(
        self,
        oauth: OAuthSessionManager,
        enabled: bool = True,
        api: Optional[GoogleCalendarAPI] = None,
    ):
        super().__init__()
        self._oauth = oauth
        self._enabled = enabled
        self._api = api or GoogleCalendarAPI()

    @property
    def name(self) -> SourceName:
        return SourceName.CALENDAR

    @property
    def display_name(self) -> str:
        return "Google Calendar"

    def is_configured(self) -> bool:
        return self._enabled

    async def _access_token(self) -> str:
        try:
            return await self._oauth.ensure_fresh_access_token()
        except (OAuthNotConnected, OAuthUnauthorized) as e:
            raise SourceUnauthorized(_REAUTH_MESSAGE) from e
        except OAuthRefreshError as e:
            raise SourceRemoteError(self.display_name, e.message) from e

    async def _fetch(self, window: TimeWindow) -> SourceData:
        access_token = await self._access_token()
        time_min, time_max = window.utc_bounds()

        try:
            events = await self._api.list_calendar_events(access_token, time_min, time_max)
        except GoogleAPIError as e:
            if e.status_code in (401, 403):
                raise SourceUnauthorized(_REAUTH_MESSAGE) from e
            raise SourceRemoteError(self.display_name, e.message, e.status_code) from e
        except ValueError as e:
            raise SourceRemoteError(self.display_name, f"Invalid response: {e}") from e

        meetings = [m for m in (parse_event(ev) for ev in events) if m is not None]
        logger.info(f"[SOURCES] calendar: {len(meetings)} meetings ({len(events)} events)")
        return SourceData(meetings=meetings)

