"""
Google Calendar API Client.

Direct REST client for the Calendar v3 events endpoint. Token handling lives
in OAuthSessionManager; this client only takes a ready access token.
"""

import asyncio
import logging
from typing import Optional, Any

import httpx

logger = logging.getLogger(__name__)

CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"

# Shared timeout for all Google API calls
_GOOGLE_API_TIMEOUT = httpx.Timeout(10.0)

# Transient failures (429, 5xx) get one more try; the source deadline bounds the total
_MAX_RETRIES = 2
_RETRY_BACKOFF_SECONDS = [1]


class GoogleAPIError(Exception):
    """Non-success response from a Google API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Google API returned {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class GoogleCalendarAPI:
    """
    Calendar v3 client.

    Usage:
        api = GoogleCalendarAPI()
        events = await api.list_calendar_events(access_token, time_min, time_max)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        headers: dict,
        **kwargs,
    ) -> httpx.Response:
        """
        Make an HTTP request with retry on transient failures (429, 5xx).

        Does NOT retry on 4xx (except 429). Timeouts propagate as httpx errors.
        """
        response = None
        for attempt in range(_MAX_RETRIES):
            async with httpx.AsyncClient(timeout=_GOOGLE_API_TIMEOUT, transport=self._transport) as client:
                response = await getattr(client, method)(url, headers=headers, **kwargs)

            if (response.status_code == 429 or response.status_code >= 500) and attempt + 1 < _MAX_RETRIES:
                wait = _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)]
                logger.warning(
                    f"[GOOGLE_API] {method.upper()} {url} returned {response.status_code}, "
                    f"retrying in {wait}s (attempt {attempt + 1}/{_MAX_RETRIES})"
                )
                await asyncio.sleep(wait)
                continue

            return response
        return response

    async def list_calendar_events(
        self,
        access_token: str,
        time_min: str,
        time_max: str,
        calendar_id: str = "primary",
        max_results: int = 50,
    ) -> list[dict[str, Any]]:
        """
        List expanded (single) events in a time window.

        Args:
            access_token: OAuth access token
            time_min: RFC 3339 window start
            time_max: RFC 3339 window end
            calendar_id: Calendar ID or 'primary'
            max_results: Maximum events to return

        Returns:
            Raw event objects ordered by start time

        Raises:
            GoogleAPIError: On any non-200 response
            httpx.HTTPError: On network failure
        """
        response = await self._request_with_retry(
            "get",
            f"{CALENDAR_API_BASE}/calendars/{calendar_id}/events",
            headers={"Authorization": f"Bearer {access_token}"},
            params={
                "timeMin": time_min,
                "timeMax": time_max,
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )

        if response.status_code != 200:
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                message = response.text
            raise GoogleAPIError(response.status_code, message)

        return response.json().get("items", [])
