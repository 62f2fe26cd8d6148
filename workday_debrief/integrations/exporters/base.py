"""
Base classes for Delivery Exporters.

Defines the DestinationExporter abstract interface and supporting types.
Every delivery channel (email, Slack webhook, file) implements this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Any

from workday_debrief.integrations.core.types import (
    ChannelConfig,
    DeliveryChannel,
    ExportResult,
    ExportStatus,
)


@dataclass
class ExporterContext:
    """
    Per-delivery inputs that don't belong in the channel config.

    Secrets are resolved from the vault by the caller and passed here so
    exporters never touch the vault themselves.
    """
    summary_date: str

    # Decrypted channel secret (SMTP password, webhook URL)
    secret: Optional[str] = None

    # Rendered HTML body, for channels that can use it
    html: Optional[str] = None

    metadata: dict[str, Any] = field(default_factory=dict)


class DestinationExporter(ABC):
    """
    Abstract base class for all delivery exporters.

    Exporters are stateless. A failed delivery is reported through the
    returned ExportResult, never raised; `retryable` marks transient failures.
    """

    @property
    @abstractmethod
    def channel(self) -> DeliveryChannel:
        """The channel identifier this exporter handles."""
        pass

    @abstractmethod
    async def deliver(
        self,
        content: str,
        config: ChannelConfig,
        context: ExporterContext,
    ) -> ExportResult:
        """
        Deliver a rendered summary.

        Args:
            content: The summary as markdown
            config: This channel's typed config
            context: Summary date, channel secret, optional HTML

        Returns:
            ExportResult with status and a confirmation message
        """
        pass

    @abstractmethod
    def validate_config(self, config: ChannelConfig) -> Optional[str]:
        """
        Check a channel config before saving or sending.

        Returns:
            None when valid, otherwise a user-facing problem description
        """
        pass

    @staticmethod
    def success(message: str, **metadata) -> ExportResult:
        return ExportResult(status=ExportStatus.SUCCESS, message=message, metadata=metadata)

    @staticmethod
    def failure(message: str, retryable: bool = False) -> ExportResult:
        return ExportResult(status=ExportStatus.FAILED, message=message, retryable=retryable)
