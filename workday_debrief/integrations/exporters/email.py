"""
Email Exporter.

Sends the summary over SMTP. smtplib is blocking, so the send runs in a
worker thread and other channels proceed in parallel.
"""

import asyncio
import logging
import smtplib
import socket
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from workday_debrief.integrations.core.types import (
    DeliveryChannel,
    EmailChannelConfig,
    ExportResult,
)
from .base import DestinationExporter, ExporterContext

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10


def build_message(config: EmailChannelConfig, content: str, summary_date: str, html: Optional[str] = None) -> MIMEMultipart:
    """Plain-text markdown body, with an HTML alternative when available."""
    msg = MIMEMultipart("alternative")
    msg["Subject"] = f"Work Summary — {summary_date}"
    msg["From"] = config.from_address
    msg["To"] = config.to_address
    msg.attach(MIMEText(content, "plain", "utf-8"))
    if html:
        msg.attach(MIMEText(html, "html", "utf-8"))
    return msg


class EmailExporter(DestinationExporter):
    """
    SMTP delivery.

    Port 465 uses implicit TLS; other ports upgrade with STARTTLS when
    use_tls is set.
    """

    @property
    def channel(self) -> DeliveryChannel:
        return DeliveryChannel.EMAIL

    def validate_config(self, config: EmailChannelConfig) -> Optional[str]:
        if not config.host:
            return "SMTP host is required"
        if not (0 < config.port < 65536):
            return "SMTP port must be between 1 and 65535"
        if "@" not in config.from_address:
            return "A valid from address is required"
        if "@" not in config.to_address:
            return "A valid to address is required"
        return None

    def _send(self, config: EmailChannelConfig, password: Optional[str], msg: MIMEMultipart) -> None:
        if config.port == 465:
            server = smtplib.SMTP_SSL(config.host, config.port, timeout=SMTP_TIMEOUT_SECONDS)
        else:
            server = smtplib.SMTP(config.host, config.port, timeout=SMTP_TIMEOUT_SECONDS)
        with server:
            if config.use_tls and config.port != 465:
                server.starttls()
            if config.username and password:
                server.login(config.username, password)
            server.sendmail(config.from_address, [config.to_address], msg.as_string())

    async def deliver(
        self,
        content: str,
        config: EmailChannelConfig,
        context: ExporterContext,
    ) -> ExportResult:
        problem = self.validate_config(config)
        if problem:
            return self.failure(f"Email not configured: {problem}")

        msg = build_message(config, content, context.summary_date, context.html)
        try:
            await asyncio.to_thread(self._send, config, context.secret, msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.warning(f"[EMAIL] Authentication failed for {config.username}: {e.smtp_code}")
            return self.failure("Authentication failed - wrong password or username")
        except smtplib.SMTPRecipientsRefused:
            return self.failure(f"Recipient refused: {config.to_address}")
        except (socket.timeout, smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError) as e:
            logger.warning(f"[EMAIL] Transient SMTP failure: {e}")
            return self.failure(f"Could not reach mail server {config.host}: {e}", retryable=True)
        except smtplib.SMTPException as e:
            logger.error(f"[EMAIL] SMTP error: {e}")
            return self.failure(f"SMTP error: {e}", retryable=True)
        except OSError as e:
            logger.warning(f"[EMAIL] Connection to {config.host}:{config.port} failed: {e}")
            return self.failure(
                f"Could not connect to {config.host}:{config.port}. Check your internet connection and SMTP settings.",
                retryable=True,
            )

        logger.info(f"[EMAIL] Summary for {context.summary_date} sent to {config.to_address}")
        return self.success(f"Sent to {config.to_address}")
