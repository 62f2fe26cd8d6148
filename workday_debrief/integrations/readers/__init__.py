"""
Source Clients.

Each client fetches one disjoint slice of the day's activity:
- jira: tickets closed / in progress
- google_calendar: meetings
- toggl: focus hours
"""

from .base import SourceClient, TimeWindow, SOURCE_TIMEOUT_SECONDS
from .jira import JiraClient
from .google_calendar import GoogleCalendarClient
from .toggl import TogglClient

__all__ = [
    "SourceClient",
    "TimeWindow",
    "SOURCE_TIMEOUT_SECONDS",
    "JiraClient",
    "GoogleCalendarClient",
    "TogglClient",
]
