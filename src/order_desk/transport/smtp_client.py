"""SMTP delivery of alert summaries."""

from __future__ import annotations

import logging
import smtplib
from collections.abc import Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING

from order_desk.core.interfaces import NotificationError

if TYPE_CHECKING:
    from order_desk.core import SmtpSettings

LOGGER = logging.getLogger(__name__)

SmtpFactory = Callable[["SmtpSettings"], smtplib.SMTP]


class SmtpError(NotificationError):
    """Raised when connecting to, authenticating with or sending via SMTP fails."""


def _open_connection(settings: SmtpSettings) -> smtplib.SMTP:
    if settings.use_tls:
        LOGGER.debug("Using STARTTLS for SMTP connection")
        connection = smtplib.SMTP(
            settings.host or "", settings.port, timeout=settings.timeout_seconds
        )
        connection.starttls()
        return connection
    LOGGER.debug("Using SSL for SMTP connection")
    return smtplib.SMTP_SSL(
        settings.host or "", settings.port, timeout=settings.timeout_seconds
    )


class SmtpNotificationSink:
    """Notification sink that mails each summary to one recipient.

    A connection is opened per summary; alert runs are infrequent.

    Example:
        >>> sink = SmtpNotificationSink(settings, "orders@example.com")
        >>> sink.send("Order desk: 2 alert(s) need attention", body)
    """

    def __init__(
        self,
        settings: SmtpSettings,
        recipient: str,
        *,
        factory: SmtpFactory = _open_connection,
    ) -> None:
        """Configure the sink.

        Args:
            settings: SMTP configuration settings
            recipient: Address receiving every summary
            factory: Opens a connected, not yet authenticated SMTP session
        """
        self._settings = settings
        self._recipient = recipient
        self._factory = factory

    def send(self, subject: str, body: str) -> None:
        """Deliver a plain-text summary.

        Raises:
            SmtpError: If the host is missing or any SMTP step fails
        """
        if not self._settings.host:
            raise SmtpError("SMTP host not configured")
        message = self._build_mime_message(subject, body)
        LOGGER.info(
            "Sending summary to %s via %s:%d",
            self._recipient,
            self._settings.host,
            self._settings.port,
        )
        try:
            connection = self._factory(self._settings)
            try:
                if self._settings.username and self._settings.password:
                    LOGGER.debug("Authenticating as %s", self._settings.username)
                    connection.login(self._settings.username, self._settings.password)
                refused = connection.send_message(message)
            finally:
                _quit(connection)
        except smtplib.SMTPAuthenticationError as exc:
            LOGGER.error("SMTP authentication failed: %s", exc)
            raise SmtpError(f"SMTP authentication failed: {exc}") from exc
        except smtplib.SMTPRecipientsRefused as exc:
            LOGGER.error("All recipients refused: %s", exc)
            raise SmtpError(f"All recipients refused: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("Failed to send summary: %s", exc)
            raise SmtpError(f"Failed to send summary: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error talking to SMTP server: %s", exc)
            raise SmtpError(f"Network error: {exc}") from exc
        if refused:
            LOGGER.warning("Some recipients were refused: %s", refused)
            raise SmtpError(f"Some recipients were refused: {refused}")
        LOGGER.info("Summary sent to %s: %s", self._recipient, subject)

    def _build_mime_message(self, subject: str, body: str) -> MIMEMultipart:
        mime_msg = MIMEMultipart("alternative")
        mime_msg["From"] = self._settings.from_address or self._settings.username or ""
        mime_msg["To"] = self._recipient
        mime_msg["Subject"] = subject
        mime_msg.attach(MIMEText(body, "plain", "utf-8"))
        return mime_msg


def _quit(connection: smtplib.SMTP) -> None:
    try:
        connection.quit()
    except smtplib.SMTPException as exc:
        LOGGER.warning("Error closing SMTP connection: %s", exc)


class ConsoleNotificationSink:
    """Sink writing summaries to a callable, standard output by default."""

    def __init__(self, write: Callable[[str], object] = print) -> None:
        self._write = write

    def send(self, subject: str, body: str) -> None:
        """Write the summary."""
        self._write(f"Subject: {subject}\n\n{body}")


__all__ = ["ConsoleNotificationSink", "SmtpError", "SmtpNotificationSink"]
