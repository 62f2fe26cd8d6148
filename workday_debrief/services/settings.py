"""
User settings.

Settings are a single record. A snapshot is loaded once per operation and
passed explicitly into the aggregator, narrative generator and dispatcher.
"""

import re
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from workday_debrief.integrations.core.types import Tone

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

LLM_TIMEOUT_MIN = 5
LLM_TIMEOUT_MAX = 30


class CalendarSource(str, Enum):
    GOOGLE = "google"
    NONE = "none"


class Settings(BaseModel):
    """Singleton settings row. Field validation matches the settings form."""
    scheduled_time: str = "17:00"
    default_tone: Tone = Tone.PROFESSIONAL
    enable_llm: bool = True
    llm_model: str = "qwen3:14b"
    llm_temperature: float = 0.7
    llm_timeout_secs: int = 15
    calendar_source: CalendarSource = CalendarSource.NONE
    retention_days: int = 90
    jira_base_url: Optional[str] = None
    jira_project_key: Optional[str] = None
    toggl_workspace_id: Optional[str] = None

    @field_validator("scheduled_time")
    @classmethod
    def _check_time(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            raise ValueError("Scheduled time must be in HH:MM format (00:00-23:59)")
        return v

    @field_validator("llm_temperature")
    @classmethod
    def _check_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("LLM temperature must be between 0.0 and 1.0")
        return v

    @field_validator("llm_timeout_secs")
    @classmethod
    def _check_timeout(cls, v: int) -> int:
        if not LLM_TIMEOUT_MIN <= v <= LLM_TIMEOUT_MAX:
            raise ValueError(f"LLM timeout must be between {LLM_TIMEOUT_MIN} and {LLM_TIMEOUT_MAX} seconds")
        return v

    @field_validator("retention_days")
    @classmethod
    def _check_retention(cls, v: int) -> int:
        if not 7 <= v <= 365:
            raise ValueError("Retention must be between 7 and 365 days")
        return v

    @field_validator("jira_base_url")
    @classmethod
    def _check_jira_url(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        v = v.strip().rstrip("/")
        if not v.startswith(("https://", "http://")):
            raise ValueError("Jira URL must start with https://")
        return v

    @field_validator("jira_project_key", "toggl_workspace_id")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None
