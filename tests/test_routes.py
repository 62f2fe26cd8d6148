"""
API Route Tests

HTTP mapping for the summary, settings and integration routes. The debrief
service is replaced through FastAPI's dependency overrides; the scheduler
lifespan is not started.

Run: python -m pytest tests/test_routes.py
 or: python tests/test_routes.py
"""

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from workday_debrief.integrations.core.errors import (
    NoDeliverableChannel,
    OAuthNotConfigured,
    SourceUnauthorized,
    SummaryNotFound,
)
from workday_debrief.integrations.core.oauth import OAuthEvent, OAuthState
from workday_debrief.integrations.core.types import (
    DeliveryChannel,
    DeliveryConfirmation,
    NarrativeSource,
    Summary,
    SummaryMeta,
)
from workday_debrief.main import app
from workday_debrief.services.debrief import GenerateOutcome, SendOutcome, get_debrief_service
from workday_debrief.services.settings import Settings


def _summary(**overrides) -> Summary:
    data = dict(
        id=1,
        summary_date="2024-06-03",
        narrative="A solid day.",
        created_at="2024-06-03T17:00:00+00:00",
        updated_at="2024-06-03T17:00:00+00:00",
    )
    data.update(overrides)
    return Summary(**data)


def _client(service) -> TestClient:
    app.dependency_overrides[get_debrief_service] = lambda: service
    return TestClient(app)


def teardown_function(function):
    app.dependency_overrides.clear()


def test_health():
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    print("✅ health: PASSED")


def test_generate_and_today():
    service = MagicMock()
    service.generate_summary = AsyncMock(return_value=GenerateOutcome(
        summary=_summary(),
        narrative_source=NarrativeSource.FALLBACK,
        narrative_reason="LLM generation timed out after 15s. Try increasing the timeout in Settings.",
        warnings=["calendar: Google Calendar requires re-authentication."],
    ))
    service.get_today_summary = AsyncMock(return_value=None)
    client = _client(service)

    body = client.post("/api/summaries/generate").json()
    assert body["summary"]["id"] == 1
    assert body["narrative_source"] == "fallback"
    assert "timed out" in body["narrative_reason"]
    assert len(body["warnings"]) == 1

    response = client.get("/api/summaries/today")
    assert response.status_code == 200
    assert response.json() is None
    print("✅ generate_and_today: PASSED")


def test_list_summaries_validates_days_back():
    service = MagicMock()
    service.list_summaries = AsyncMock(return_value=[SummaryMeta(id=1, summary_date="2024-06-03")])
    client = _client(service)

    assert client.get("/api/summaries?days_back=7").json()[0]["summary_date"] == "2024-06-03"
    service.list_summaries.assert_awaited_with(7)
    assert client.get("/api/summaries?days_back=4000").status_code == 422
    assert client.get("/api/summaries?days_back=-1").status_code == 422
    print("✅ list_summaries_validates_days_back: PASSED")


def test_regenerate_and_send_errors():
    service = MagicMock()
    service.regenerate_narrative = AsyncMock(side_effect=SummaryNotFound(42))
    service.send_summary = AsyncMock(side_effect=NoDeliverableChannel())
    client = _client(service)

    response = client.post("/api/summaries/42/regenerate", json={"tone": "casual"})
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "not_found"

    response = client.post("/api/summaries/1/send", json={"channels": ["slack"]})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "no_deliverable_channel"
    print("✅ regenerate_and_send_errors: PASSED")


def test_send_returns_confirmations():
    service = MagicMock()
    service.send_summary = AsyncMock(return_value=SendOutcome(
        summary=_summary(delivered_to=["file"]),
        confirmations=[
            DeliveryConfirmation(channel=DeliveryChannel.SLACK, success=False, message="Webhook expired or invalid (404)"),
            DeliveryConfirmation(channel=DeliveryChannel.FILE, success=True, message="Written to /tmp/2024-06-03.md"),
        ],
    ))
    client = _client(service)

    body = client.post("/api/summaries/1/send", json={"channels": ["slack", "file"]}).json()
    assert [c["channel"] for c in body["confirmations"]] == ["slack", "file"]
    assert body["summary"]["delivered_to"] == ["file"]
    service.send_summary.assert_awaited_with(1, ["slack", "file"])
    print("✅ send_returns_confirmations: PASSED")


def test_markdown_route():
    service = MagicMock()
    service.get_summary = AsyncMock(return_value=_summary())
    client = _client(service)

    response = client.get("/api/summaries/1/markdown")
    assert response.status_code == 200
    assert response.text.startswith("# Work Summary — 2024-06-03")

    service.get_summary = AsyncMock(side_effect=SummaryNotFound(2))
    assert client.get("/api/summaries/2/markdown").status_code == 404
    print("✅ markdown_route: PASSED")


def test_settings_routes():
    service = MagicMock()
    service.get_settings = AsyncMock(return_value=Settings())
    service.masked_source_secrets = AsyncMock(return_value={"jira_api_token": "••••••"})
    service.save_settings = AsyncMock()
    service.google_status = MagicMock(return_value=OAuthState.DISCONNECTED)
    client = _client(service)

    body = client.get("/api/settings").json()
    assert body["settings"]["scheduled_time"] == "17:00"
    assert body["secrets"]["jira_api_token"] == "••••••"
    assert body["google"] == "disconnected"

    response = client.put("/api/settings", json={"settings": {"scheduled_time": "99:00"}})
    assert response.status_code == 422
    service.save_settings.assert_not_called()

    response = client.put("/api/settings", json={
        "settings": {"scheduled_time": "18:00"},
        "secrets": {"jira_api_token": "••••••"},
    })
    assert response.status_code == 200
    saved_settings, saved_secrets = service.save_settings.call_args.args
    assert saved_settings.scheduled_time == "18:00"
    assert saved_secrets == {"jira_api_token": "••••••"}
    print("✅ settings_routes: PASSED")


def test_delivery_config_routes():
    service = MagicMock()
    service.save_delivery_config = AsyncMock(side_effect=ValueError("SMTP host is required"))
    service.test_delivery = AsyncMock(return_value=DeliveryConfirmation(
        channel=DeliveryChannel.FILE, success=True, message="Written to /tmp/x.md",
    ))
    client = _client(service)

    response = client.put("/api/delivery-configs/email", json={"config": {}, "is_enabled": True})
    assert response.status_code == 422
    assert response.json()["detail"]["message"] == "SMTP host is required"

    assert client.put("/api/delivery-configs/fax", json={}).status_code == 422

    body = client.post("/api/delivery-configs/file/test").json()
    assert body["success"] is True
    service.test_delivery.assert_awaited_with("file")
    print("✅ delivery_config_routes: PASSED")


def test_google_routes():
    flow = MagicMock()
    flow.authorization_url = "https://accounts.google.com/o/oauth2/v2/auth?state=abc"
    service = MagicMock()
    service.connect_google = AsyncMock(return_value=flow)
    service.google_status = MagicMock(return_value=OAuthState.AUTHORIZATION_PENDING)
    service.next_google_event = AsyncMock(return_value=OAuthEvent("completed", "Google Calendar connected successfully!"))
    service.disconnect_google = AsyncMock()
    client = _client(service)

    body = client.post("/api/integrations/google/authorize").json()
    assert body["authorization_url"].startswith("https://accounts.google.com/")
    assert body["state"] == "authorization_pending"

    body = client.get("/api/integrations/google/events?timeout=1").json()
    assert body == {"kind": "completed", "message": "Google Calendar connected successfully!"}

    service.next_google_event = AsyncMock(return_value=None)
    assert client.get("/api/integrations/google/events?timeout=0").json() is None

    service.google_status = MagicMock(return_value=OAuthState.DISCONNECTED)
    assert client.delete("/api/integrations/google").json() == {"state": "disconnected"}

    service.connect_google = AsyncMock(side_effect=OAuthNotConfigured())
    response = client.post("/api/integrations/google/authorize")
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "oauth_not_configured"
    print("✅ google_routes: PASSED")


def test_connection_tests():
    service = MagicMock()
    service.test_jira_connection = AsyncMock(side_effect=SourceUnauthorized("Jira authentication failed - check API token"))
    service.test_toggl_connection = AsyncMock(return_value="Connected successfully! Tracked 3.0 hours today.")
    client = _client(service)

    assert client.post("/api/integrations/jira/test").json() == {
        "success": False,
        "message": "Jira authentication failed - check API token",
    }
    assert client.post("/api/integrations/toggl/test").json()["success"] is True
    print("✅ connection_tests: PASSED")


if __name__ == "__main__":
    print("\n🧪 Running route tests...\n")

    for test in (
        test_health,
        test_generate_and_today,
        test_list_summaries_validates_days_back,
        test_regenerate_and_send_errors,
        test_send_returns_confirmations,
        test_markdown_route,
        test_settings_routes,
        test_delivery_config_routes,
        test_google_routes,
        test_connection_tests,
    ):
        test()
        app.dependency_overrides.clear()

    print("\n✅ All route tests passed!")
