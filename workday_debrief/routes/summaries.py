"""
Summary Routes

Endpoints:
- POST /summaries/generate - Aggregate today's activity and write a narrative
- GET /summaries/today - Today's summary, if any
- GET /summaries - History (days_back)
- GET /summaries/by-date/:date - One day's summary
- PUT /summaries/today - Save blockers / priorities / notes
- POST /summaries/:id/regenerate - New narrative from stored data
- POST /summaries/:id/send - Deliver to selected channels
- GET /summaries/:id/markdown - Rendered markdown
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from workday_debrief.integrations.core.errors import (
    DebriefError,
    NoDeliverableChannel,
    SummaryNotFound,
)
from workday_debrief.integrations.core.types import (
    DeliveryConfirmation,
    Summary,
    SummaryMeta,
)
from workday_debrief.services.debrief import DebriefService, get_debrief_service
from workday_debrief.services.platform_output import render_summary_markdown

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class GenerateResponse(BaseModel):
    summary: Summary
    narrative_source: str
    narrative_reason: Optional[str] = None
    warnings: list[str] = []


class RegenerateRequest(BaseModel):
    tone: Optional[str] = None


class SendRequest(BaseModel):
    channels: list[str]


class SendResponse(BaseModel):
    summary: Summary
    confirmations: list[DeliveryConfirmation]


class SummaryFieldsUpdate(BaseModel):
    blockers: Optional[str] = None
    tomorrow_priorities: Optional[str] = None
    manual_notes: Optional[str] = None


def raise_http(e: DebriefError, status_code: int = 500):
    """Map a DebriefError to an HTTPException with a tagged detail."""
    raise HTTPException(status_code=status_code, detail=e.to_dict())


# =============================================================================
# Routes
# =============================================================================

@router.post("/summaries/generate", response_model=GenerateResponse)
async def generate_summary(service: DebriefService = Depends(get_debrief_service)):
    try:
        outcome = await service.generate_summary()
    except DebriefError as e:
        logger.error(f"[SUMMARIES] Generate failed: {e.message}")
        raise_http(e)

    return GenerateResponse(
        summary=outcome.summary,
        narrative_source=outcome.narrative_source.value,
        narrative_reason=outcome.narrative_reason,
        warnings=outcome.warnings,
    )


@router.get("/summaries/today", response_model=Optional[Summary])
async def get_today_summary(service: DebriefService = Depends(get_debrief_service)):
    return await service.get_today_summary()


@router.get("/summaries", response_model=list[SummaryMeta])
async def list_summaries(
    days_back: int = Query(30, ge=0, le=3650),
    service: DebriefService = Depends(get_debrief_service),
):
    return await service.list_summaries(days_back)


@router.get("/summaries/by-date/{summary_date}", response_model=Summary)
async def get_summary_by_date(summary_date: str, service: DebriefService = Depends(get_debrief_service)):
    summary = await service.get_summary_by_date(summary_date)
    if summary is None:
        raise HTTPException(status_code=404, detail={"error": "not_found", "message": f"No summary for {summary_date}"})
    return summary


@router.put("/summaries/today", response_model=Summary)
async def save_summary(request: SummaryFieldsUpdate, service: DebriefService = Depends(get_debrief_service)):
    try:
        return await service.save_summary(
            blockers=request.blockers,
            tomorrow_priorities=request.tomorrow_priorities,
            manual_notes=request.manual_notes,
        )
    except DebriefError as e:
        raise_http(e)


@router.post("/summaries/{summary_id}/regenerate", response_model=GenerateResponse)
async def regenerate_narrative(
    summary_id: int,
    request: RegenerateRequest,
    service: DebriefService = Depends(get_debrief_service),
):
    try:
        outcome = await service.regenerate_narrative(summary_id, request.tone)
    except SummaryNotFound as e:
        raise_http(e, 404)
    except DebriefError as e:
        raise_http(e)

    return GenerateResponse(
        summary=outcome.summary,
        narrative_source=outcome.narrative_source.value,
        narrative_reason=outcome.narrative_reason,
    )


@router.post("/summaries/{summary_id}/send", response_model=SendResponse)
async def send_summary(
    summary_id: int,
    request: SendRequest,
    service: DebriefService = Depends(get_debrief_service),
):
    try:
        outcome = await service.send_summary(summary_id, request.channels)
    except SummaryNotFound as e:
        raise_http(e, 404)
    except NoDeliverableChannel as e:
        raise_http(e, 400)
    except DebriefError as e:
        raise_http(e)

    return SendResponse(summary=outcome.summary, confirmations=outcome.confirmations)


@router.get("/summaries/{summary_id}/markdown", response_class=PlainTextResponse)
async def get_summary_markdown(summary_id: int, service: DebriefService = Depends(get_debrief_service)):
    try:
        summary = await service.get_summary(summary_id)
    except SummaryNotFound as e:
        raise_http(e, 404)
    return render_summary_markdown(summary)
