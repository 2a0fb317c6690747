"""
Transactional email transport.

Mailer.send() accepts {to, subject, html, text}. SmtpMailer is the production
transport; when SMTP is not configured, LoggingMailer only logs (same
behaviour as the old email stub) so local runs never fail on email.
"""
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from creatorhub.config import Settings, get_settings

logger = logging.getLogger(__name__)


class MailTransportError(RuntimeError):
    pass


class Mailer:
    def send(self, to: str, subject: str, html: str, text: str | None = None) -> str | None:
        """Send one message; returns a message id when the transport provides one."""
        raise NotImplementedError


class SmtpMailer(Mailer):
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def _build(self, to: str, subject: str, html: str, text: str | None) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.settings.EMAIL_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(text or "")
        msg.add_alternative(html, subtype="html")
        return msg

    def send(self, to: str, subject: str, html: str, text: str | None = None) -> str | None:
        s = self.settings
        msg = self._build(to, subject, html, text)
        try:
            with smtplib.SMTP(s.EMAIL_SMTP_HOST, s.EMAIL_SMTP_PORT, timeout=s.EMAIL_SMTP_TIMEOUT_SECONDS) as smtp:
                if s.EMAIL_SMTP_USE_TLS:
                    smtp.starttls()
                if s.EMAIL_SMTP_USER:
                    smtp.login(s.EMAIL_SMTP_USER, s.EMAIL_SMTP_PASSWORD)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailTransportError(f"SMTP send to {to} failed: {e}") from e
        return msg["Message-ID"]


class LoggingMailer(Mailer):
    def send(self, to: str, subject: str, html: str, text: str | None = None) -> str | None:
        logger.info("EMAIL (SMTP not configured): to=%s subject=%s", to, subject)
        return None


def get_mailer(settings: Settings | None = None) -> Mailer:
    settings = settings or get_settings()
    if settings.smtp_configured:
        return SmtpMailer(settings)
    return LoggingMailer()
