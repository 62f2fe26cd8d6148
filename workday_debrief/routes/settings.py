"""
Settings Routes

Endpoints:
- GET /settings - Settings plus masked source credentials
- PUT /settings - Save settings; masked credentials are left unchanged
- GET /delivery-configs - Channel configs with masked secrets
- PUT /delivery-configs/:channel - Save one channel config
- POST /delivery-configs/:channel/test - Send a test message through one channel
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from workday_debrief.integrations.core.errors import DebriefError
from workday_debrief.integrations.core.types import DeliveryChannel, DeliveryConfirmation
from workday_debrief.services.debrief import DebriefService, get_debrief_service
from workday_debrief.services.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()


class SettingsView(BaseModel):
    settings: Settings
    secrets: dict[str, str]
    google: str


class SettingsUpdate(BaseModel):
    settings: dict[str, Any]
    # jira_email / jira_api_token / toggl_api_token; "••••••" means unchanged
    secrets: dict[str, Optional[str]] = {}


class DeliveryConfigUpdate(BaseModel):
    config: dict[str, Any] = {}
    is_enabled: bool = False
    secret: Optional[str] = None


@router.get("/settings", response_model=SettingsView)
async def get_settings(service: DebriefService = Depends(get_debrief_service)):
    return SettingsView(
        settings=await service.get_settings(),
        secrets=await service.masked_source_secrets(),
        google=service.google_status().value,
    )


@router.put("/settings", response_model=SettingsView)
async def save_settings(request: SettingsUpdate, service: DebriefService = Depends(get_debrief_service)):
    try:
        settings = Settings.model_validate(request.settings)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error": "invalid_settings", "message": e.errors()[0]["msg"]})

    try:
        await service.save_settings(settings, request.secrets)
    except DebriefError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())

    return await get_settings(service)


@router.get("/delivery-configs")
async def get_delivery_configs(service: DebriefService = Depends(get_debrief_service)):
    return await service.get_delivery_configs()


@router.put("/delivery-configs/{channel}")
async def save_delivery_config(
    channel: DeliveryChannel,
    request: DeliveryConfigUpdate,
    service: DebriefService = Depends(get_debrief_service),
):
    try:
        record = await service.save_delivery_config(channel.value, request.config, request.is_enabled, request.secret)
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"error": "invalid_config", "message": str(e)})
    except DebriefError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())
    return record


@router.post("/delivery-configs/{channel}/test", response_model=DeliveryConfirmation)
async def test_delivery(channel: DeliveryChannel, service: DebriefService = Depends(get_debrief_service)):
    try:
        return await service.test_delivery(channel.value)
    except DebriefError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())
