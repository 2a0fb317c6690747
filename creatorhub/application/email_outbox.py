"""
Email outbox — durable record of every outbound email (email_queue).

Lifecycle of one attempt:
    prepare()  -> row with status=pending, attempts=0
    transport  -> Mailer.send (no database access; safe to run on a worker thread)
    record()   -> status=sent (sent_at set) or status=failed (last_error set),
                  attempts incremented in SQL

Failed rows are not retried here; retry belongs to the caller or an external
queue.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from creatorhub.application.email_templates import EmailContent
from creatorhub.infrastructure.db.models import EmailDeliveryAttempt
from creatorhub.infrastructure.email.mailer import Mailer, get_mailer

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class EmailOutbox:
    def __init__(self, db: Session, mailer: Mailer | None = None):
        self.db = db
        self.mailer = mailer or get_mailer()

    def prepare(self, to: str, content: EmailContent) -> int | None:
        """Insert a pending row; returns its id, or None if the outbox table is unusable."""
        try:
            attempt = EmailDeliveryAttempt(
                to_email=to,
                subject=content.subject,
                template=content.template,
                payload_json=content.payload,
                status=STATUS_PENDING,
                attempts=0,
            )
            self.db.add(attempt)
            self.db.commit()
            return attempt.id
        except Exception:
            logger.warning("Email outbox insert failed (to=%s, template=%s)", to, content.template, exc_info=True)
            self.db.rollback()
            return None

    def transmit(self, to: str, content: EmailContent) -> str | None:
        """Hand the message to the transport. Raises on transport failure."""
        return self.mailer.send(to=to, subject=content.subject, html=content.html, text=content.text)

    def record(self, attempt_id: int | None, error: BaseException | None = None) -> None:
        if attempt_id is None:
            return
        if error is None:
            values = {
                "status": STATUS_SENT,
                "sent_at": datetime.now(timezone.utc),
            }
        else:
            values = {
                "status": STATUS_FAILED,
                "last_error": str(error) or type(error).__name__,
            }
        values["attempts"] = EmailDeliveryAttempt.attempts + 1
        try:
            self.db.execute(
                update(EmailDeliveryAttempt)
                .where(EmailDeliveryAttempt.id == attempt_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            logger.warning("Email outbox update failed for attempt_id=%s", attempt_id, exc_info=True)
            self.db.rollback()

    def enqueue_and_send(self, to: str, content: EmailContent) -> int | None:
        """Sequential prepare → send → record. Re-raises the transport error after recording it."""
        attempt_id = self.prepare(to, content)
        try:
            self.transmit(to, content)
        except Exception as e:
            self.record(attempt_id, e)
            raise
        self.record(attempt_id)
        return attempt_id
