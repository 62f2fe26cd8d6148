"""
Debrief Service - the operations the UI calls.

Wires the summary store, secret vault, OAuth session, aggregator, narrative
generator and delivery service together:

    generate_summary()      aggregate today -> store -> narrative -> store
    regenerate_narrative()  narrative from stored data, no source fetch
    send_summary()          dispatch -> append delivered channels
    get_today_summary() / get_summary_by_date() / list_summaries()

Store and vault calls are blocking and run in worker threads.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from workday_debrief import config
from workday_debrief.integrations.core.errors import SummaryNotFound
from workday_debrief.integrations.core.oauth import (
    AuthorizationFlow,
    OAuthEvent,
    OAuthSessionManager,
    OAuthState,
)
from workday_debrief.integrations.core.tokens import SecretVault, VaultKeys, get_vault
from workday_debrief.integrations.core.types import (
    DeliveryChannel,
    DeliveryConfigRecord,
    DeliveryConfirmation,
    NarrativeSource,
    Summary,
    SummaryMeta,
    Tone,
    parse_channel_config,
    utc_now_iso,
)
from workday_debrief.integrations.readers import JiraClient, TimeWindow, TogglClient
from .aggregator import aggregate, build_source_clients
from .delivery import CHANNEL_SECRETS, DeliveryService
from .narrative import NarrativeGenerator
from .settings import Settings
from .summary_store import SummaryStore

logger = logging.getLogger(__name__)

TEST_MESSAGE = "This is a test message from Workday Debrief. Your delivery channel is working."

SETTINGS_SECRETS = (VaultKeys.JIRA_EMAIL, VaultKeys.JIRA_API_TOKEN, VaultKeys.TOGGL_API_TOKEN)


@dataclass
class GenerateOutcome:
    """A generated summary plus what the UI should warn about."""
    summary: Summary
    narrative_source: NarrativeSource
    narrative_reason: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class SendOutcome:
    summary: Summary
    confirmations: list[DeliveryConfirmation]


class DebriefService:
    """
    Usage:
        service = DebriefService(store, vault, oauth)
        outcome = await service.generate_summary()
        sent = await service.send_summary(outcome.summary.id, ["email", "file"])
    """

    def __init__(
        self,
        store: SummaryStore,
        vault: SecretVault,
        oauth: OAuthSessionManager,
        generator: Optional[NarrativeGenerator] = None,
        delivery: Optional[DeliveryService] = None,
        client_factory: Callable = build_source_clients,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.vault = vault
        self.oauth = oauth
        self.generator = generator or NarrativeGenerator()
        self.delivery = delivery or DeliveryService(vault)
        self._client_factory = client_factory
        self._clock = clock
        self._date_locks: dict[str, asyncio.Lock] = {}
        self._pending_flow: Optional[AuthorizationFlow] = None

    def today(self) -> date:
        if self._clock:
            return self._clock()
        tz = config.get_timezone()
        return datetime.now(tz).date() if tz else date.today()

    async def _run(self, fn, *args, **kwargs):
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def get_settings(self) -> Settings:
        return await self._run(self.store.load_settings)

    # =========================================================================
    # Summaries
    # =========================================================================

    async def generate_summary(self, abandon: Optional[asyncio.Event] = None) -> GenerateOutcome:
        """
        Aggregate today's activity, store it, and write a fresh narrative.

        Source failures are reported as warnings, never raised. Generations
        for the same date are serialized; each one overwrites the last.

        Raises:
            PersistenceError, VaultError
        """
        settings = await self.get_settings()
        day = self.today().isoformat()
        lock = self._date_locks.setdefault(day, asyncio.Lock())

        async with lock:
            clients = await self._run(self._client_factory, settings, self.vault, self.oauth)
            data = await aggregate(clients, TimeWindow.for_day(self.today(), config.get_timezone()))
            summary = await self._run(self.store.upsert_aggregated, day, data)

            tone = summary.tone if summary.narrative else settings.default_tone
            outcome = await self._write_narrative(summary, tone, settings, abandon)
            outcome.warnings = data.failure_reasons()

        logger.info(
            f"[DEBRIEF] Generated summary {outcome.summary.id} for {day} "
            f"(narrative: {outcome.narrative_source.value}, {len(outcome.warnings)} warnings)"
        )
        return outcome

    async def _write_narrative(
        self,
        summary: Summary,
        tone: Tone,
        settings: Settings,
        abandon: Optional[asyncio.Event] = None,
    ) -> GenerateOutcome:
        data, user_fields = summary.aggregated(), summary.user_fields()
        try:
            result = await self.generator.generate(data, user_fields, tone, settings, abandon)
        except asyncio.CancelledError:
            # Leave a usable narrative behind even when the caller goes away
            fallback = NarrativeGenerator.fallback(data, user_fields, "Generation was cancelled")
            self.store.update_narrative(summary.id, fallback.text, tone)
            raise

        updated = await self._run(self.store.update_narrative, summary.id, result.text, tone)
        return GenerateOutcome(summary=updated, narrative_source=result.source, narrative_reason=result.reason)

    async def regenerate_narrative(
        self,
        summary_id: int,
        tone: Optional[str] = None,
        abandon: Optional[asyncio.Event] = None,
    ) -> GenerateOutcome:
        """
        Re-run narrative generation on the stored data. Sources are not fetched;
        only narrative and tone change.

        Raises:
            SummaryNotFound
        """
        summary = await self.get_summary(summary_id)
        settings = await self.get_settings()
        parsed = Tone.parse(tone) if tone else summary.tone
        return await self._write_narrative(summary, parsed, settings, abandon)

    async def get_summary(self, summary_id: int) -> Summary:
        summary = await self._run(self.store.get_by_id, summary_id)
        if summary is None:
            raise SummaryNotFound(summary_id)
        return summary

    async def send_summary(self, summary_id: int, channels: Iterable[str]) -> SendOutcome:
        """
        Send a summary to the selected channels and record the ones that succeeded.

        Raises:
            SummaryNotFound, NoDeliverableChannel, VaultError
        """
        summary = await self.get_summary(summary_id)
        configs = await self._run(self.store.get_delivery_configs, True)
        result = await self.delivery.dispatch(summary, list(channels), configs)

        if result.succeeded_channels:
            summary = await self._run(self.store.append_delivered, summary_id, result.succeeded_channels)
        return SendOutcome(summary=summary, confirmations=result.confirmations)

    async def get_today_summary(self) -> Optional[Summary]:
        return await self._run(self.store.get_by_date, self.today().isoformat())

    async def get_summary_by_date(self, summary_date: str) -> Optional[Summary]:
        return await self._run(self.store.get_by_date, summary_date)

    async def list_summaries(self, days_back: int) -> list[SummaryMeta]:
        """Raises ValueError for days_back outside 0..3650."""
        return await self._run(self.store.list_metas, days_back, self.today())

    async def save_summary(
        self,
        blockers: Optional[str] = None,
        tomorrow_priorities: Optional[str] = None,
        manual_notes: Optional[str] = None,
    ) -> Summary:
        """Save today's free-text fields."""
        return await self._run(
            self.store.save_user_fields,
            self.today().isoformat(),
            blockers,
            tomorrow_priorities,
            manual_notes,
        )

    async def purge_expired(self) -> int:
        settings = await self.get_settings()
        return await self._run(self.store.purge_older_than, settings.retention_days, self.today())

    # =========================================================================
    # Settings and source credentials
    # =========================================================================

    async def save_settings(self, settings: Settings, secrets: Optional[dict[str, Optional[str]]] = None) -> None:
        """
        Persist settings and any changed source credentials.

        Masked or missing secret values leave the stored credential alone.
        """
        updates = {k: v for k, v in (secrets or {}).items() if k in SETTINGS_SECRETS}
        if updates:
            await self._run(self.vault.set_many, updates)
        await self._run(self.store.save_settings, settings)

    async def masked_source_secrets(self) -> dict[str, str]:
        return {key: await self._run(self.vault.masked, key) for key in SETTINGS_SECRETS}

    async def test_jira_connection(self) -> str:
        settings = await self.get_settings()
        clients = await self._run(self._client_factory, settings, self.vault, self.oauth)
        jira = next(c for c in clients if isinstance(c, JiraClient))
        return await jira.test_connection()

    async def test_toggl_connection(self) -> str:
        settings = await self.get_settings()
        clients = await self._run(self._client_factory, settings, self.vault, self.oauth)
        toggl = next(c for c in clients if isinstance(c, TogglClient))
        return await toggl.test_connection()

    # =========================================================================
    # Delivery channel configs
    # =========================================================================

    async def get_delivery_configs(self) -> list[dict[str, Any]]:
        """Stored configs for display; secrets appear only as the masked sentinel."""
        records = await self._run(self.store.get_delivery_configs)
        views = []
        for record in records:
            secret_key = CHANNEL_SECRETS.get(record.channel)
            views.append({
                "channel": record.channel.value,
                "config": record.config,
                "is_enabled": record.is_enabled,
                "secret": await self._run(self.vault.masked, secret_key) if secret_key else None,
            })
        return views

    async def save_delivery_config(
        self,
        channel: str,
        config_data: dict[str, Any],
        is_enabled: bool,
        secret: Optional[str] = None,
    ) -> DeliveryConfigRecord:
        """
        Validate and store one channel config. The channel secret goes to the vault.

        Raises:
            ValueError: If the config is invalid for the channel
        """
        channel = DeliveryChannel(channel)
        try:
            typed = parse_channel_config(channel, config_data)
        except ValidationError as e:
            raise ValueError(f"Invalid {channel.value} config: {e.errors()[0]['msg']}") from e

        exporter = self.delivery.registry.get_or_raise(channel)
        problem = exporter.validate_config(typed)
        if problem and is_enabled:
            raise ValueError(problem)

        secret_key = CHANNEL_SECRETS.get(channel)
        if secret_key:
            await self._run(self.vault.set, secret_key, secret)

        record = DeliveryConfigRecord(
            channel=channel,
            config=typed.model_dump(exclude={"type"}),
            is_enabled=is_enabled,
        )
        await self._run(self.store.save_delivery_config, record)
        logger.info(f"[DEBRIEF] Saved {channel.value} delivery config (enabled={is_enabled})")
        return record

    async def test_delivery(self, channel: str) -> DeliveryConfirmation:
        """Send a fixed test message through one configured channel, enabled or not."""
        channel = DeliveryChannel(channel)
        records = await self._run(self.store.get_delivery_configs)
        record = next((r for r in records if r.channel == channel), None)
        if record is None:
            record = DeliveryConfigRecord(channel=channel)
        record = record.model_copy(update={"is_enabled": True})

        now = utc_now_iso()
        sample = Summary(
            id=0,
            summary_date=self.today().isoformat(),
            narrative=TEST_MESSAGE,
            created_at=now,
            updated_at=now,
        )
        result = await self.delivery.dispatch(sample, [channel.value], [record])
        return result.confirmations[0]

    # =========================================================================
    # Google OAuth
    # =========================================================================

    async def connect_google(self) -> AuthorizationFlow:
        flow = await self.oauth.begin_authorization()
        self._pending_flow = flow
        return flow

    async def next_google_event(self, timeout: float) -> Optional[OAuthEvent]:
        """
        Wait up to `timeout` seconds for the pending flow's outcome.

        The event is handed out once; later calls return None until a new
        flow is started.
        """
        flow = self._pending_flow
        if flow is None:
            return None
        try:
            event = await asyncio.wait_for(flow.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if self._pending_flow is flow:
            self._pending_flow = None
            return event
        return None

    async def cancel_google_authorization(self) -> None:
        await self.oauth.cancel_authorization()

    async def disconnect_google(self) -> None:
        await self.oauth.disconnect()

    def google_status(self) -> OAuthState:
        return self.oauth.state


# Singleton instance
_service: Optional[DebriefService] = None


def get_debrief_service() -> DebriefService:
    """Get the global DebriefService, opening the store and vault on first use."""
    global _service
    if _service is None:
        vault = get_vault()
        _service = DebriefService(
            store=SummaryStore(config.get_database_path()),
            vault=vault,
            oauth=OAuthSessionManager(vault),
        )
    return _service
