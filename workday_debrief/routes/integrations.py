"""
Integration Routes

Google Calendar OAuth and source connection tests.

Endpoints:
- POST /integrations/google/authorize - Start the PKCE flow (opens the browser)
- GET /integrations/google/events - Wait for the flow's completed/error event (delivered once)
- POST /integrations/google/cancel - Abandon a pending flow
- DELETE /integrations/google - Disconnect
- GET /integrations/google/status - Connection state
- POST /integrations/jira/test - Test Jira credentials
- POST /integrations/toggl/test - Test Toggl credentials
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from workday_debrief.integrations.core.errors import DebriefError, OAuthNotConfigured
from workday_debrief.services.debrief import DebriefService, get_debrief_service

logger = logging.getLogger(__name__)

router = APIRouter()


class AuthorizeResponse(BaseModel):
    authorization_url: str
    state: str


class OAuthEventResponse(BaseModel):
    kind: str
    message: str


class StatusResponse(BaseModel):
    state: str


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str


@router.post("/integrations/google/authorize", response_model=AuthorizeResponse)
async def authorize_google(service: DebriefService = Depends(get_debrief_service)):
    """
    Start Google authorization.

    Returns immediately; the browser handles consent and the loopback
    listener catches the redirect. Poll /events for the outcome.
    """
    try:
        flow = await service.connect_google()
    except OAuthNotConfigured as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except DebriefError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())

    return AuthorizeResponse(authorization_url=flow.authorization_url, state=service.google_status().value)


@router.get("/integrations/google/events", response_model=Optional[OAuthEventResponse])
async def google_events(
    timeout: float = Query(25.0, ge=0, le=60),
    service: DebriefService = Depends(get_debrief_service),
):
    """Long-poll for the pending flow's event. Null when nothing arrived in time."""
    event = await service.next_google_event(timeout)
    if event is None:
        return None
    return OAuthEventResponse(kind=event.kind, message=event.message)


@router.post("/integrations/google/cancel", response_model=StatusResponse)
async def cancel_google(service: DebriefService = Depends(get_debrief_service)):
    await service.cancel_google_authorization()
    return StatusResponse(state=service.google_status().value)


@router.delete("/integrations/google", response_model=StatusResponse)
async def disconnect_google(service: DebriefService = Depends(get_debrief_service)):
    await service.disconnect_google()
    return StatusResponse(state=service.google_status().value)


@router.get("/integrations/google/status", response_model=StatusResponse)
async def google_status(service: DebriefService = Depends(get_debrief_service)):
    return StatusResponse(state=service.google_status().value)


@router.post("/integrations/jira/test", response_model=ConnectionTestResponse)
async def test_jira(service: DebriefService = Depends(get_debrief_service)):
    try:
        message = await service.test_jira_connection()
    except DebriefError as e:
        return ConnectionTestResponse(success=False, message=e.message)
    return ConnectionTestResponse(success=True, message=message)


@router.post("/integrations/toggl/test", response_model=ConnectionTestResponse)
async def test_toggl(service: DebriefService = Depends(get_debrief_service)):
    try:
        message = await service.test_toggl_connection()
    except DebriefError as e:
        return ConnectionTestResponse(success=False, message=e.message)
    return ConnectionTestResponse(success=True, message=message)
