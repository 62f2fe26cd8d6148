"""
File Exporter.

Writes the summary as `{directory}/{date}.md`, replacing any earlier export
for the same date.
"""

import asyncio
import errno
import logging
from pathlib import Path
from typing import Optional

from workday_debrief.integrations.core.types import (
    DeliveryChannel,
    ExportResult,
    FileChannelConfig,
)
from .base import DestinationExporter, ExporterContext

logger = logging.getLogger(__name__)

# Failures that another attempt will not fix
_PERMANENT_ERRNOS = {errno.EACCES, errno.EPERM, errno.ENOSPC, errno.EROFS}


def export_path(config: FileChannelConfig, summary_date: str) -> Path:
    return Path(config.directory_path).expanduser() / f"{summary_date}.md"


class FileExporter(DestinationExporter):
    """Local markdown export. No secrets needed."""

    @property
    def channel(self) -> DeliveryChannel:
        return DeliveryChannel.FILE

    def validate_config(self, config: FileChannelConfig) -> Optional[str]:
        if not config.directory_path:
            return "Export directory is required"
        return None

    @staticmethod
    def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    async def deliver(
        self,
        content: str,
        config: FileChannelConfig,
        context: ExporterContext,
    ) -> ExportResult:
        problem = self.validate_config(config)
        if problem:
            return self.failure(problem)

        path = export_path(config, context.summary_date)
        try:
            await asyncio.to_thread(self._write, path, content)
        except PermissionError:
            return self.failure(f"Permission denied writing {path}")
        except OSError as e:
            if e.errno == errno.ENOSPC:
                return self.failure(f"Disk full writing {path}")
            return self.failure(f"Could not write {path}: {e.strerror or e}", retryable=e.errno not in _PERMANENT_ERRNOS)

        logger.info(f"[FILE] Summary written to {path}")
        return self.success(f"Written to {path}", path=str(path))
