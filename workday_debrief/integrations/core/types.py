"""
Debrief type definitions.

Shared types for sources, summaries and delivery channels.
"""

from enum import Enum
from typing import Optional, Any, Literal, Union
from datetime import datetime, timezone

from pydantic import BaseModel, Field, AliasChoices, ConfigDict


def utc_now_iso() -> str:
    """Current UTC time as an RFC 3339 string."""
    return datetime.now(timezone.utc).isoformat()


class SourceName(str, Enum):
    """Known activity sources."""
    JIRA = "jira"
    CALENDAR = "calendar"
    TOGGL = "toggl"


class SourceState(str, Enum):
    """Outcome of a single source fetch."""
    OK = "ok"
    FAILED = "failed"
    NOT_CONFIGURED = "not_configured"


class Tone(str, Enum):
    """Narrative tone."""
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    DETAILED = "detailed"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Tone":
        """Unknown or empty tones fall back to professional."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.PROFESSIONAL


class DeliveryChannel(str, Enum):
    """Supported delivery channels."""
    EMAIL = "email"
    SLACK = "slack"
    FILE = "file"


class ExportStatus(str, Enum):
    """Status of a single delivery attempt."""
    SUCCESS = "success"
    FAILED = "failed"


class ExportResult(BaseModel):
    """Result of one channel delivery attempt."""
    status: ExportStatus
    message: str
    # Transient failures (timeouts, rate limits) may be retried
    retryable: bool = False
    metadata: dict[str, Any] = {}


# =============================================================================
# Source data
# =============================================================================

class Ticket(BaseModel):
    """A ticket touched today."""
    id: str
    title: str
    status: str
    url: str
    resolved_at: Optional[str] = None


class Meeting(BaseModel):
    """A timed calendar event the user attended."""
    title: str
    start: str
    end: str
    duration_minutes: int = 0


class SourceStatus(BaseModel):
    """Per-source fetch outcome. Failed entries carry a user-facing reason."""
    state: SourceState
    reason: Optional[str] = None
    fetched_at: Optional[str] = None

    @classmethod
    def ok(cls) -> "SourceStatus":
        return cls(state=SourceState.OK, fetched_at=utc_now_iso())

    @classmethod
    def failed(cls, reason: str) -> "SourceStatus":
        return cls(state=SourceState.FAILED, reason=reason)

    @classmethod
    def not_configured(cls) -> "SourceStatus":
        return cls(state=SourceState.NOT_CONFIGURED)


def default_sources_status() -> dict[SourceName, SourceStatus]:
    return {name: SourceStatus.not_configured() for name in SourceName}


class SourceData(BaseModel):
    """Partial result contributed by a single source."""
    tickets_closed: list[Ticket] = []
    tickets_in_progress: list[Ticket] = []
    meetings: list[Meeting] = []
    focus_hours: float = 0.0


class AggregatedData(BaseModel):
    """Merged source data plus exactly one status entry per known source."""
    tickets_closed: list[Ticket] = []
    tickets_in_progress: list[Ticket] = []
    meetings: list[Meeting] = []
    focus_hours: float = 0.0
    sources_status: dict[SourceName, SourceStatus] = Field(default_factory=default_sources_status)

    @property
    def total_meeting_minutes(self) -> int:
        return sum(m.duration_minutes for m in self.meetings)

    def failure_reasons(self) -> list[str]:
        """Reasons for every failed source, in source order."""
        return [
            f"{name.value}: {status.reason}"
            for name, status in self.sources_status.items()
            if status.state == SourceState.FAILED
        ]


class UserFields(BaseModel):
    """Free-text fields entered by the user for a day."""
    blockers: Optional[str] = None
    tomorrow_priorities: Optional[str] = None
    manual_notes: Optional[str] = None


# =============================================================================
# Summaries
# =============================================================================

class Summary(BaseModel):
    """The persisted record for one calendar date."""
    id: int
    summary_date: str
    tickets_closed: list[Ticket] = []
    tickets_in_progress: list[Ticket] = []
    meetings: list[Meeting] = []
    focus_hours: float = 0.0
    blockers: Optional[str] = None
    tomorrow_priorities: Optional[str] = None
    manual_notes: Optional[str] = None
    narrative: Optional[str] = None
    tone: Tone = Tone.PROFESSIONAL
    delivered_to: list[str] = []
    sources_status: dict[SourceName, SourceStatus] = Field(default_factory=default_sources_status)
    created_at: str
    updated_at: str

    def aggregated(self) -> AggregatedData:
        """The source-derived part of this summary."""
        return AggregatedData(
            tickets_closed=self.tickets_closed,
            tickets_in_progress=self.tickets_in_progress,
            meetings=self.meetings,
            focus_hours=self.focus_hours,
            sources_status=self.sources_status,
        )

    def user_fields(self) -> UserFields:
        return UserFields(
            blockers=self.blockers,
            tomorrow_priorities=self.tomorrow_priorities,
            manual_notes=self.manual_notes,
        )


class SummaryMeta(BaseModel):
    """History list entry."""
    id: int
    summary_date: str
    narrative_snippet: Optional[str] = None
    delivered_to: list[str] = []


class NarrativeSource(str, Enum):
    """Where the narrative text came from."""
    MODEL = "model"
    FALLBACK = "fallback"


class NarrativeResult(BaseModel):
    """Generated narrative plus a flag telling the model output from the fallback."""
    text: str
    source: NarrativeSource
    reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.source == NarrativeSource.FALLBACK


class DeliveryConfirmation(BaseModel):
    """Per-channel outcome of a send."""
    channel: DeliveryChannel
    success: bool
    message: str
    timestamp: str = Field(default_factory=utc_now_iso)


# =============================================================================
# Channel configs (tagged by channel type)
# =============================================================================

class EmailChannelConfig(BaseModel):
    """SMTP settings. The password is held in the vault."""
    type: Literal["email"] = "email"
    host: str = ""
    port: int = 587
    from_address: str = ""
    to_address: str = ""
    username: str = ""
    use_tls: bool = True


class SlackChannelConfig(BaseModel):
    """Chat webhook channel. The webhook URL is held in the vault."""
    type: Literal["slack"] = "slack"


class FileChannelConfig(BaseModel):
    """Writes {directory_path}/{date}.md."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["file"] = "file"
    directory_path: str = Field(
        default="",
        validation_alias=AliasChoices("directory_path", "directoryPath", "directory"),
    )


ChannelConfig = Union[EmailChannelConfig, SlackChannelConfig, FileChannelConfig]

CHANNEL_CONFIG_TYPES: dict[DeliveryChannel, type[BaseModel]] = {
    DeliveryChannel.EMAIL: EmailChannelConfig,
    DeliveryChannel.SLACK: SlackChannelConfig,
    DeliveryChannel.FILE: FileChannelConfig,
}


def parse_channel_config(channel: DeliveryChannel, raw: Optional[dict[str, Any]]) -> ChannelConfig:
    """Build the typed config for a channel from its stored JSON."""
    data = dict(raw or {})
    data["type"] = channel.value
    return CHANNEL_CONFIG_TYPES[channel].model_validate(data)


class DeliveryConfigRecord(BaseModel):
    """A stored channel configuration."""
    channel: DeliveryChannel
    config: dict[str, Any] = {}
    is_enabled: bool = False

    def typed_config(self) -> ChannelConfig:
        return parse_channel_config(self.channel, self.config)


# =============================================================================
# Source configs
# =============================================================================

class JiraSourceConfig(BaseModel):
    base_url: str
    project_key: str
    email: str
    api_token: str


class TogglSourceConfig(BaseModel):
    api_token: str
    workspace_id: Optional[str] = None
