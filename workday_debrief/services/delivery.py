"""
Delivery Service - dispatches a summary to the selected channels.

This service handles:
1. Resolving the attempt set (selected channels that are also enabled)
2. Running every channel concurrently via the exporter registry
3. Retrying transient failures with backoff
4. Returning one confirmation per attempted channel

Per-channel failures never abort the dispatch. Recording successful channels
on the summary is the caller's job.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from workday_debrief.integrations.core.errors import NoDeliverableChannel
from workday_debrief.integrations.core.tokens import SecretVault, VaultKeys
from workday_debrief.integrations.core.types import (
    DeliveryChannel,
    DeliveryConfigRecord,
    DeliveryConfirmation,
    ExportResult,
    ExportStatus,
    Summary,
)
from workday_debrief.integrations.exporters import (
    ExporterContext,
    ExporterRegistry,
    get_exporter_registry,
)
from .platform_output import render_summary_markdown, markdown_to_email_html

logger = logging.getLogger(__name__)

# Delay before each retry; also bounds the number of attempts
RETRY_BACKOFF_SECONDS = [1, 3, 9]
MAX_ATTEMPTS = 3

CHANNEL_SECRETS: dict[DeliveryChannel, str] = {
    DeliveryChannel.EMAIL: VaultKeys.DELIVERY_EMAIL_PASSWORD,
    DeliveryChannel.SLACK: VaultKeys.DELIVERY_SLACK_WEBHOOK,
}


@dataclass
class DispatchResult:
    """Outcome of a dispatch across channels."""
    confirmations: list[DeliveryConfirmation]

    @property
    def succeeded_channels(self) -> list[str]:
        return [c.channel.value for c in self.confirmations if c.success]

    @property
    def all_succeeded(self) -> bool:
        return all(c.success for c in self.confirmations)


def resolve_attempt_set(
    selected: Iterable[str],
    configs: Iterable[DeliveryConfigRecord],
) -> list[DeliveryConfigRecord]:
    """
    Selected channels that have an enabled config, in channel order.

    Raises:
        NoDeliverableChannel: If nothing is left to attempt
    """
    wanted = set()
    for channel in selected:
        try:
            wanted.add(DeliveryChannel(channel))
        except ValueError:
            logger.warning(f"[DELIVERY] Ignoring unknown channel {channel!r}")

    attempt = [c for c in configs if c.is_enabled and c.channel in wanted]
    attempt.sort(key=lambda c: list(DeliveryChannel).index(c.channel))
    if not attempt:
        raise NoDeliverableChannel()
    return attempt


class DeliveryService:
    """
    Usage:
        service = DeliveryService(vault)
        result = await service.dispatch(summary, ["email", "slack"], configs)
        store.append_delivered(summary.id, result.succeeded_channels)
    """

    def __init__(
        self,
        vault: SecretVault,
        registry: Optional[ExporterRegistry] = None,
        backoff: Optional[list[float]] = None,
    ):
        self._vault = vault
        self._registry = registry or get_exporter_registry()
        self._backoff = RETRY_BACKOFF_SECONDS if backoff is None else backoff

    @property
    def registry(self) -> ExporterRegistry:
        return self._registry

    async def _deliver_with_retry(
        self,
        record: DeliveryConfigRecord,
        content: str,
        context: ExporterContext,
    ) -> ExportResult:
        exporter = self._registry.get_or_raise(record.channel)
        config = record.typed_config()

        result = None
        for attempt in range(MAX_ATTEMPTS):
            result = await exporter.deliver(content, config, context)
            if result.status == ExportStatus.SUCCESS or not result.retryable:
                return result
            if attempt + 1 < MAX_ATTEMPTS:
                wait = self._backoff[min(attempt, len(self._backoff) - 1)] if self._backoff else 0
                logger.warning(
                    f"[DELIVERY] {record.channel.value} failed ({result.message}), "
                    f"retrying in {wait}s (attempt {attempt + 1}/{MAX_ATTEMPTS})"
                )
                await asyncio.sleep(wait)
        return result

    async def _run_channel(
        self,
        record: DeliveryConfigRecord,
        content: str,
        context: ExporterContext,
    ) -> DeliveryConfirmation:
        """One channel, start to finish. Never raises."""
        try:
            result = await self._deliver_with_retry(record, content, context)
        except Exception as e:
            logger.error(f"[DELIVERY] {record.channel.value} raised: {e}", exc_info=True)
            return DeliveryConfirmation(channel=record.channel, success=False, message=f"Unexpected error: {e}")

        success = result.status == ExportStatus.SUCCESS
        log = logger.info if success else logger.warning
        log(f"[DELIVERY] {record.channel.value}: {result.message}")
        return DeliveryConfirmation(channel=record.channel, success=success, message=result.message)

    async def _context_for(self, channel: DeliveryChannel, summary: Summary, content: str) -> ExporterContext:
        secret_key = CHANNEL_SECRETS.get(channel)
        secret = await asyncio.to_thread(self._vault.get, secret_key) if secret_key else None
        return ExporterContext(
            summary_date=summary.summary_date,
            secret=secret,
            html=markdown_to_email_html(content, f"Work Summary — {summary.summary_date}")
            if channel == DeliveryChannel.EMAIL else None,
            metadata={"summary_id": summary.id},
        )

    async def dispatch(
        self,
        summary: Summary,
        selected_channels: Iterable[str],
        configs: Iterable[DeliveryConfigRecord],
    ) -> DispatchResult:
        """
        Deliver a summary to every selected, enabled channel.

        Args:
            summary: The summary to send
            selected_channels: Channel ids chosen by the user
            configs: Stored channel configs

        Returns:
            DispatchResult with exactly one confirmation per attempted channel

        Raises:
            NoDeliverableChannel: If no selected channel is enabled
            VaultError: If a channel secret cannot be read
        """
        attempt = resolve_attempt_set(selected_channels, configs)
        content = render_summary_markdown(summary)

        # Secrets are read up front so a vault failure fails the whole send
        contexts = {r.channel: await self._context_for(r.channel, summary, content) for r in attempt}

        logger.info(f"[DELIVERY] Dispatching {summary.summary_date} to {[r.channel.value for r in attempt]}")
        confirmations = await asyncio.gather(
            *(self._run_channel(r, content, contexts[r.channel]) for r in attempt)
        )
        return DispatchResult(confirmations=list(confirmations))
