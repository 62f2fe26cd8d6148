"""
Slack Exporter.

Posts the summary to an incoming webhook. The webhook URL is a secret and
comes from the vault through ExporterContext.
"""

import logging
from typing import Optional

import httpx

from workday_debrief.integrations.core.types import (
    DeliveryChannel,
    ExportResult,
    SlackChannelConfig,
)
from .base import DestinationExporter, ExporterContext

logger = logging.getLogger(__name__)

# Slack renders at most this many characters of a webhook message nicely
SLACK_MAX_CHARS = 3000
TRUNCATION_SUFFIX = "\n\n_Full summary sent via email_"

_SLACK_TIMEOUT = httpx.Timeout(10.0)


def truncate_for_slack(text: str) -> str:
    if len(text) <= SLACK_MAX_CHARS:
        return text
    return text[:SLACK_MAX_CHARS - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX


class SlackExporter(DestinationExporter):
    """Incoming-webhook delivery. Only timeouts and rate limits are retried."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    @property
    def channel(self) -> DeliveryChannel:
        return DeliveryChannel.SLACK

    def validate_config(self, config: SlackChannelConfig) -> Optional[str]:
        return None

    @staticmethod
    def validate_webhook_url(url: Optional[str]) -> Optional[str]:
        if not url:
            return "Slack webhook URL is not set"
        if not url.startswith("https://hooks.slack.com/"):
            return "Webhook URL must start with https://hooks.slack.com/"
        return None

    async def deliver(
        self,
        content: str,
        config: SlackChannelConfig,
        context: ExporterContext,
    ) -> ExportResult:
        problem = self.validate_webhook_url(context.secret)
        if problem:
            return self.failure(problem)

        try:
            async with httpx.AsyncClient(timeout=_SLACK_TIMEOUT, transport=self._transport) as client:
                response = await client.post(context.secret, json={"text": truncate_for_slack(content)})
        except httpx.TimeoutException:
            return self.failure("Slack webhook timed out", retryable=True)
        except httpx.HTTPError as e:
            return self.failure(f"Could not reach Slack: {e}. Check your internet connection.")

        if response.status_code == 200:
            logger.info(f"[SLACK] Summary for {context.summary_date} posted")
            return self.success("Posted to Slack")
        if response.status_code in (403, 404):
            return self.failure(f"Webhook expired or invalid ({response.status_code})")
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after", "60")
            return self.failure(f"Rate limited - retry after {retry_after} seconds", retryable=True)

        logger.warning(f"[SLACK] Webhook returned {response.status_code}: {response.text[:200]}")
        return self.failure(f"Slack returned HTTP {response.status_code}: {response.text[:200]}")
