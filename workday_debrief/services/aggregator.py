"""
Aggregator - concurrent fan-out to all source clients.

Every client runs at the same time. A failure in one source only marks that
source's status entry; aggregate() itself never raises.
"""

import asyncio
import logging
from typing import Optional

from workday_debrief.integrations.core.errors import SourceFailure, SourceNotConfigured
from workday_debrief.integrations.core.oauth import OAuthSessionManager
from workday_debrief.integrations.core.tokens import SecretVault, VaultKeys
from workday_debrief.integrations.core.types import (
    AggregatedData,
    JiraSourceConfig,
    SourceData,
    SourceName,
    SourceStatus,
    TogglSourceConfig,
)
from workday_debrief.integrations.readers import (
    GoogleCalendarClient,
    JiraClient,
    SourceClient,
    TimeWindow,
    TogglClient,
)
from .settings import CalendarSource, Settings

logger = logging.getLogger(__name__)


async def _fetch_one(client: SourceClient, window: TimeWindow) -> tuple[Optional[SourceData], SourceStatus]:
    """Run one client and convert its outcome into (data, status)."""
    try:
        data = await client.fetch(window)
    except SourceNotConfigured:
        return None, SourceStatus.not_configured()
    except SourceFailure as e:
        logger.warning(f"[AGGREGATOR] {client.name.value} failed: {e.message}")
        return None, SourceStatus.failed(e.message)
    except Exception as e:
        logger.error(f"[AGGREGATOR] {client.name.value} raised unexpectedly: {e}", exc_info=True)
        return None, SourceStatus.failed(f"Unexpected error: {e}")
    return data, SourceStatus.ok()


def merge_source_data(results: dict[SourceName, tuple[Optional[SourceData], SourceStatus]]) -> AggregatedData:
    """
    Fold per-source results into one AggregatedData.

    Each source owns a disjoint category, so lists are concatenated in the
    source's own order with no cross-source sorting.
    """
    merged = AggregatedData()
    for name in SourceName:
        data, status = results.get(name, (None, SourceStatus.not_configured()))
        merged.sources_status[name] = status
        if data is None:
            continue
        merged.tickets_closed.extend(data.tickets_closed)
        merged.tickets_in_progress.extend(data.tickets_in_progress)
        merged.meetings.extend(data.meetings)
        merged.focus_hours += data.focus_hours
    return merged


async def aggregate(clients: list[SourceClient], window: TimeWindow) -> AggregatedData:
    """
    Fetch every source concurrently and merge the results.

    Sources without a client are reported as not configured. The result
    always holds exactly one status entry per known source.
    """
    logger.info(f"[AGGREGATOR] Fetching {len(clients)} sources for {window.day}")

    outcomes = await asyncio.gather(
        *(_fetch_one(c, window) for c in clients),
        return_exceptions=True,
    )

    results: dict[SourceName, tuple[Optional[SourceData], SourceStatus]] = {}
    for client, outcome in zip(clients, outcomes):
        if isinstance(outcome, BaseException):
            # Only reachable for cancellation-style exceptions escaping _fetch_one
            logger.error(f"[AGGREGATOR] {client.name.value} aborted: {outcome!r}")
            outcome = (None, SourceStatus.failed(f"Unexpected error: {outcome!r}"))
        results[client.name] = outcome

    merged = merge_source_data(results)
    summary = ", ".join(f"{k.value}={v.state.value}" for k, v in merged.sources_status.items())
    logger.info(f"[AGGREGATOR] Done: {summary}")
    return merged


def build_source_clients(
    settings: Settings,
    vault: SecretVault,
    oauth: OAuthSessionManager,
) -> list[SourceClient]:
    """Construct the three source clients from a settings snapshot and the vault."""
    jira_config = None
    jira_email = vault.get(VaultKeys.JIRA_EMAIL)
    jira_token = vault.get(VaultKeys.JIRA_API_TOKEN)
    if settings.jira_base_url and settings.jira_project_key and jira_email and jira_token:
        jira_config = JiraSourceConfig(
            base_url=settings.jira_base_url,
            project_key=settings.jira_project_key,
            email=jira_email,
            api_token=jira_token,
        )

    toggl_config = None
    toggl_token = vault.get(VaultKeys.TOGGL_API_TOKEN)
    if toggl_token:
        toggl_config = TogglSourceConfig(api_token=toggl_token, workspace_id=settings.toggl_workspace_id)

    return [
        JiraClient(jira_config),
        GoogleCalendarClient(oauth, enabled=settings.calendar_source == CalendarSource.GOOGLE),
        TogglClient(toggl_config),
    ]
