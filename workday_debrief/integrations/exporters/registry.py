"""
Exporter Registry.

Maps each delivery channel (email, slack, file) to the exporter that sends
a rendered summary through it.
"""

import logging
from typing import Optional

from workday_debrief.integrations.core.types import DeliveryChannel
from .base import DestinationExporter

logger = logging.getLogger(__name__)


class ExporterRegistry:
    """
    One exporter per delivery channel.

    Usage:
        registry = ExporterRegistry()
        registry.register(SlackExporter(transport=mock_transport))
        exporter = registry.get_or_raise(DeliveryChannel.SLACK)
    """

    def __init__(self):
        self._by_channel: dict[DeliveryChannel, DestinationExporter] = {}

    def register(self, exporter: DestinationExporter) -> None:
        channel = exporter.channel
        if channel in self._by_channel:
            logger.warning(f"[EXPORTERS] Replacing {channel.value} exporter")
        self._by_channel[channel] = exporter

    def get(self, channel: DeliveryChannel) -> Optional[DestinationExporter]:
        # Accepts the plain string value too ("email", "slack", "file")
        return self._by_channel.get(DeliveryChannel(channel))

    def get_or_raise(self, channel: DeliveryChannel) -> DestinationExporter:
        """
        Raises:
            ValueError: If the channel has no exporter
        """
        exporter = self.get(channel)
        if exporter is None:
            known = ", ".join(c.value for c in self._by_channel) or "none"
            raise ValueError(f"No exporter for delivery channel '{channel}' (registered: {known})")
        return exporter

    def list_channels(self) -> list[DeliveryChannel]:
        return [c for c in DeliveryChannel if c in self._by_channel]


_registry: Optional[ExporterRegistry] = None


def get_exporter_registry() -> ExporterRegistry:
    """Process-wide registry holding the email, Slack and file exporters."""
    global _registry
    if _registry is None:
        # Import here to avoid circular imports
        from .email import EmailExporter
        from .file import FileExporter
        from .slack import SlackExporter

        _registry = ExporterRegistry()
        for exporter in (EmailExporter(), SlackExporter(), FileExporter()):
            _registry.register(exporter)
        logger.info(f"[EXPORTERS] Delivery channels: {[c.value for c in _registry.list_channels()]}")
    return _registry
