"""
Aggregator Tests

Concurrent fan-out with stub clients: one status entry per source, partial
results survive individual failures, and aggregate() never raises.

Run: python -m pytest tests/test_aggregator.py
 or: python tests/test_aggregator.py
"""

import asyncio
import time
from datetime import date

from workday_debrief.integrations.core.errors import (
    SourceNotConfigured,
    SourceTimeout,
    SourceUnauthorized,
)
from workday_debrief.integrations.core.types import (
    Meeting,
    SourceData,
    SourceName,
    SourceState,
    Ticket,
)
from workday_debrief.integrations.readers import TimeWindow
from workday_debrief.services.aggregator import aggregate

WINDOW = TimeWindow.for_day(date(2024, 6, 3))


class StubClient:
    """Duck-typed source client: returns data or raises after a delay."""

    def __init__(self, name: SourceName, result=None, error=None, delay: float = 0.0):
        self.name = name
        self._result = result
        self._error = error
        self._delay = delay

    async def fetch(self, window):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        return self._result


def _ticket(key: str, status: str = "Done") -> Ticket:
    return Ticket(id=key, title=f"Ticket {key}", status=status, url=f"https://jira/browse/{key}")


def test_all_sources_ok():
    clients = [
        StubClient(SourceName.JIRA, SourceData(tickets_closed=[_ticket("A-1"), _ticket("A-2")])),
        StubClient(SourceName.CALENDAR, SourceData(meetings=[
            Meeting(title="Standup", start="09:00", end="09:15", duration_minutes=15),
        ])),
        StubClient(SourceName.TOGGL, SourceData(focus_hours=3.5)),
    ]
    data = asyncio.run(aggregate(clients, WINDOW))

    assert set(data.sources_status) == set(SourceName)
    assert all(s.state == SourceState.OK for s in data.sources_status.values())
    assert all(s.fetched_at for s in data.sources_status.values())
    assert [t.id for t in data.tickets_closed] == ["A-1", "A-2"]
    assert data.total_meeting_minutes == 15
    assert data.focus_hours == 3.5
    assert data.failure_reasons() == []

    print("✅ all_sources_ok: PASSED")


def test_partial_failure_keeps_other_data():
    clients = [
        StubClient(SourceName.JIRA, error=SourceUnauthorized("Jira authentication failed - check API token")),
        StubClient(SourceName.CALENDAR, error=SourceTimeout("Google Calendar", 10)),
        StubClient(SourceName.TOGGL, SourceData(focus_hours=2.0)),
    ]
    data = asyncio.run(aggregate(clients, WINDOW))

    assert data.sources_status[SourceName.JIRA].state == SourceState.FAILED
    assert data.sources_status[SourceName.JIRA].reason == "Jira authentication failed - check API token"
    assert data.sources_status[SourceName.CALENDAR].state == SourceState.FAILED
    assert data.sources_status[SourceName.TOGGL].state == SourceState.OK
    assert data.tickets_closed == [] and data.meetings == []
    assert data.focus_hours == 2.0

    reasons = data.failure_reasons()
    assert len(reasons) == 2
    assert reasons[0].startswith("jira:")
    print(f"  ✓ warnings: {reasons}")

    print("✅ partial_failure_keeps_other_data: PASSED")


def test_not_configured_and_unexpected_errors():
    clients = [
        StubClient(SourceName.JIRA, error=SourceNotConfigured("Jira")),
        StubClient(SourceName.CALENDAR, error=RuntimeError("parser blew up")),
    ]
    data = asyncio.run(aggregate(clients, WINDOW))

    assert data.sources_status[SourceName.JIRA].state == SourceState.NOT_CONFIGURED
    assert data.sources_status[SourceName.JIRA].reason is None
    assert data.sources_status[SourceName.CALENDAR].state == SourceState.FAILED
    assert "parser blew up" in data.sources_status[SourceName.CALENDAR].reason
    # No client at all for toggl
    assert data.sources_status[SourceName.TOGGL].state == SourceState.NOT_CONFIGURED

    print("✅ not_configured_and_unexpected_errors: PASSED")


def test_sources_run_concurrently():
    clients = [
        StubClient(SourceName.JIRA, SourceData(), delay=0.3),
        StubClient(SourceName.CALENDAR, SourceData(), delay=0.3),
        StubClient(SourceName.TOGGL, SourceData(), delay=0.3),
    ]
    started = time.monotonic()
    asyncio.run(aggregate(clients, WINDOW))
    elapsed = time.monotonic() - started

    assert elapsed < 0.8, f"took {elapsed:.2f}s"
    print(f"  ✓ three 0.3s sources in {elapsed:.2f}s")

    print("✅ sources_run_concurrently: PASSED")


if __name__ == "__main__":
    print("\n🧪 Running aggregator tests...\n")

    test_all_sources_ok()
    test_partial_failure_keeps_other_data()
    test_not_configured_and_unexpected_errors()
    test_sources_run_concurrently()

    print("\n✅ All aggregator tests passed!")
