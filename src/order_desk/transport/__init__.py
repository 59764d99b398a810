"""Transport adapters for outgoing notifications."""

from .smtp_client import ConsoleNotificationSink, SmtpError, SmtpNotificationSink

__all__ = ["ConsoleNotificationSink", "SmtpError", "SmtpNotificationSink"]
