"""
Base classes for Source Clients.

Every source (Jira, Google Calendar, Toggl) implements SourceClient. A client
either returns its partial SourceData or raises one of the SourceFailure
errors; it never hangs past SOURCE_TIMEOUT_SECONDS.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import httpx
import pytz

from workday_debrief.integrations.core.errors import (
    SourceNotConfigured,
    SourceTimeout,
    SourceRemoteError,
)
from workday_debrief.integrations.core.types import SourceName, SourceData

logger = logging.getLogger(__name__)

# Network deadline for every source call (connect + read + parsing)
SOURCE_TIMEOUT_SECONDS = 10.0

SOURCE_HTTP_TIMEOUT = httpx.Timeout(SOURCE_TIMEOUT_SECONDS)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open day window [start, end) in an aware timezone."""
    start: datetime
    end: datetime

    @classmethod
    def for_day(cls, day: date, tz: Optional[pytz.BaseTzInfo] = None) -> "TimeWindow":
        """Local midnight to local midnight for `day`. tz=None means machine local time."""
        if tz is None:
            start = datetime.combine(day, time.min).astimezone()
            end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
        else:
            start = tz.localize(datetime.combine(day, time.min))
            end = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
        return cls(start=start, end=end)

    @property
    def day(self) -> date:
        return self.start.date()

    def utc_bounds(self) -> tuple[str, str]:
        """Window bounds as RFC 3339 UTC strings."""
        return (
            self.start.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            self.end.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        )


class SourceClient(ABC):
    """
    Abstract base class for all source clients.

    Subclasses implement `_fetch` and `is_configured`. `fetch` applies the
    shared guarantees: unconfigured clients short-circuit without network
    access, and the whole call is bounded by the source deadline.
    """

    timeout_seconds: float = SOURCE_TIMEOUT_SECONDS

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Tests inject httpx.MockTransport here
        self._transport = transport

    @property
    @abstractmethod
    def name(self) -> SourceName:
        """The source identifier this client reports under."""
        pass

    @property
    def display_name(self) -> str:
        return self.name.value.capitalize()

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether enough configuration is present to attempt a fetch."""
        pass

    @abstractmethod
    async def _fetch(self, window: TimeWindow) -> SourceData:
        pass

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=SOURCE_HTTP_TIMEOUT, transport=self._transport, **kwargs)

    async def fetch(self, window: TimeWindow) -> SourceData:
        """
        Fetch this source's data for the window.

        Raises:
            SourceNotConfigured, SourceUnauthorized, SourceTimeout, SourceRemoteError
        """
        if not self.is_configured():
            raise SourceNotConfigured(self.display_name)

        try:
            return await asyncio.wait_for(self._fetch(window), timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"[SOURCES] {self.name.value} timed out: {e!r}")
            raise SourceTimeout(self.display_name, self.timeout_seconds) from e
        except httpx.HTTPError as e:
            logger.warning(f"[SOURCES] {self.name.value} network error: {e}")
            raise SourceRemoteError(
                self.display_name,
                f"could not connect ({e}). Check your internet connection and try again.",
            ) from e
