"""SMTP email sink.

Builds one multipart text/HTML message per batch and sends it with
``smtplib`` on a worker thread so the event loop is never blocked.
"""

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Any, Dict, List, Optional

from ..config import ChannelConfig, SinkKind
from ..errors import SinkError
from ..models import Batch
from .base import AlertSink, register_sink


logger = logging.getLogger(__name__)


@register_sink(SinkKind.SMTP_EMAIL)
class SMTPEmailAlertSink(AlertSink):
    """Email-based alert sink with STARTTLS/SSL support."""

    def __init__(self, channel: ChannelConfig, smtp_factory: Optional[Any] = None):
        """Initialize email sink.

        Args:
            channel: Channel configuration with smtp and email settings
            smtp_factory: Callable used instead of ``smtplib.SMTP``/``SMTP_SSL``
        """
        super().__init__(channel)
        self.smtp_config = channel.smtp
        self.email_config = channel.email
        self._smtp_factory = smtp_factory

    async def send(self, batch: Batch) -> Optional[Dict[str, Any]]:
        msg = self.create_message(batch)
        recipients = self._get_all_recipients()

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_smtp_email, msg, recipients)
        except smtplib.SMTPAuthenticationError as e:
            raise SinkError(f"SMTP authentication failed: {e}", sink_name=self.name) from e
        except smtplib.SMTPRecipientsRefused as e:
            raise SinkError(f"Recipients rejected: {e}", sink_name=self.name) from e
        except smtplib.SMTPException as e:
            raise SinkError(f"SMTP error: {e}", sink_name=self.name) from e
        except OSError as e:
            raise SinkError(f"SMTP connection failed: {e}", sink_name=self.name) from e

        logger.info(f"Emailed batch of {len(batch)} entries to {len(recipients)} recipients via {self.name}")
        return {
            "recipients_count": len(recipients),
            "message_id": msg["Message-ID"],
        }

    def _send_smtp_email(self, msg: MIMEMultipart, recipients: List[str]) -> None:
        """Send email using SMTP (blocking operation)."""
        if self._smtp_factory is not None:
            smtp_class = self._smtp_factory
        elif self.smtp_config.use_ssl:
            smtp_class = smtplib.SMTP_SSL
        else:
            smtp_class = smtplib.SMTP

        with smtp_class(
            self.smtp_config.host,
            self.smtp_config.port,
            timeout=self.timeout_seconds
        ) as server:
            if self.smtp_config.use_tls and not self.smtp_config.use_ssl:
                server.starttls()

            if self.smtp_config.username and self.smtp_config.password:
                server.login(self.smtp_config.username, self.smtp_config.password)

            server.send_message(msg, to_addrs=recipients)

    def _get_all_recipients(self) -> List[str]:
        return [
            *self.email_config.to_emails,
            *self.email_config.cc_emails,
            *self.email_config.bcc_emails,
        ]

    def create_message(self, batch: Batch) -> MIMEMultipart:
        """Compose the multipart message for a batch. BCC is never a header."""
        msg = MIMEMultipart('alternative')

        msg['From'] = formataddr((self.email_config.from_name or "", self.email_config.from_email))
        msg['To'] = ', '.join(self.email_config.to_emails)
        if self.email_config.cc_emails:
            msg['Cc'] = ', '.join(self.email_config.cc_emails)

        msg['Subject'] = f"{self.email_config.subject_prefix} {self._title(batch)}"
        msg['Message-ID'] = make_msgid(domain=self.email_config.from_email.split("@")[-1])
        msg['X-Mailer'] = 'faultline-email-sink/1.0'

        msg.attach(MIMEText(self._create_text_content(batch), 'plain', 'utf-8'))
        msg.attach(MIMEText(self._create_html_content(batch), 'html', 'utf-8'))
        return msg

    def _create_text_content(self, batch: Batch) -> str:
        visible, hidden = self._visible_entries(batch)
        lines = [self._title(batch), ""]

        for index, entry in enumerate(visible, start=1):
            lines.extend([
                f"#{index} {entry.exception.type_name} (x{entry.count})",
                f"Message:    {self._message(entry)}",
                f"Request:    {self._request_line(entry)}",
                f"First seen: {entry.first_seen.isoformat()}",
                f"Last seen:  {entry.last_seen.isoformat()}",
                "Stack trace:",
                self._stack_trace(entry),
                "-" * 60,
            ])

        if hidden:
            lines.append(f"{hidden} more unique errors not shown.")
        if self.dashboard_url:
            lines.append(f"View error logs: {self.dashboard_url}")

        return "\n".join(lines)

    def _create_html_content(self, batch: Batch) -> str:
        visible, hidden = self._visible_entries(batch)
        parts = [f"<h2>🚨 {html.escape(self._title(batch))}</h2>"]

        for index, entry in enumerate(visible, start=1):
            parts.append(
                "<div style=\"margin-bottom:16px;border-left:4px solid #dc3545;padding-left:8px\">"
                f"<h3>#{index} {html.escape(entry.exception.type_name)} &times; {entry.count}</h3>"
                f"<p><b>Message:</b> {html.escape(self._message(entry))}<br>"
                f"<b>Request:</b> <code>{html.escape(self._request_line(entry))}</code><br>"
                f"<b>First seen:</b> {entry.first_seen.isoformat()}<br>"
                f"<b>Last seen:</b> {entry.last_seen.isoformat()}</p>"
                f"<pre style=\"background:#f6f8fa;padding:8px\">{html.escape(self._stack_trace(entry))}</pre>"
                "</div>"
            )

        if hidden:
            parts.append(f"<p><i>{hidden} more unique errors not shown.</i></p>")
        if self.dashboard_url:
            parts.append(f"<p><a href=\"{html.escape(self.dashboard_url)}\">View Error Logs</a></p>")

        return "<html><body>" + "".join(parts) + "</body></html>"

    def validate_config(self) -> List[str]:
        errors = []
        if not self.smtp_config.host:
            errors.append("SMTP host is required")
        if not (0 < self.smtp_config.port < 65536):
            errors.append(f"Invalid SMTP port: {self.smtp_config.port}")
        if bool(self.smtp_config.username) != bool(self.smtp_config.password):
            errors.append("SMTP username and password must be set together")
        return errors
