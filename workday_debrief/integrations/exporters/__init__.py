"""
Delivery Exporters.

Each exporter implements:
- deliver(content, config, context) → ExportResult
- validate_config(config) → Optional[str]

Usage:
    from workday_debrief.integrations.exporters import get_exporter_registry

    registry = get_exporter_registry()
    exporter = registry.get(DeliveryChannel.FILE)
    result = await exporter.deliver(markdown, config, ExporterContext(summary_date="2024-06-01"))
"""

from .base import DestinationExporter, ExporterContext
from .registry import ExporterRegistry, get_exporter_registry
from .email import EmailExporter
from .slack import SlackExporter
from .file import FileExporter

__all__ = [
    "DestinationExporter",
    "ExporterContext",
    "ExporterRegistry",
    "get_exporter_registry",
    "EmailExporter",
    "SlackExporter",
    "FileExporter",
]
