# modules/notifications/services/email_service.py
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the transport could not hand the message over"""


class EmailSender(Protocol):
    def send_email(self, to: str, subject: str, html: str) -> None:
        ...


class SmtpEmailSender:
    def __init__(self, host: str, port: int, user: str = None, password: str = None,
                 use_tls: bool = True, sender: str = "no-reply@localhost"):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.sender = sender

    def send_email(self, to: str, subject: str, html: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content("This message requires an HTML capable email client.")
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery to %s failed: %s", to, e)
            raise EmailDeliveryError(f"Failed to send email to {to}: {e}") from e
        logger.info("Email sent to %s", to)


class LogEmailSender:
    """Development transport: the message only goes to the log."""

    def send_email(self, to: str, subject: str, html: str) -> None:
        logger.info("Email to %s (%s), %d bytes of HTML", to, subject, len(html))


def build_email_sender(config: Settings = default_settings) -> EmailSender:
    if not config.SMTP_HOST:
        return LogEmailSender()
    return SmtpEmailSender(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        user=config.SMTP_USER,
        password=config.SMTP_PASSWORD,
        use_tls=config.SMTP_USE_TLS,
        sender=config.EMAIL_FROM,
    )


def get_email_sender() -> EmailSender:
    return build_email_sender(default_settings)
