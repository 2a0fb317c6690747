"""
Renewal reminder sweep — daily job that warns members a few days before their
membership renews.

Selection (all in one query):
  - memberships with status active/trialing
  - current_period_end on the UTC date today + days_ahead
  - not scheduled to cancel (when cancel_at_period_end exists)
  - no membership_renewal notification for the same member in the last
    window_days (scoped to the membership when notifications.metadata exists)

Every table and optional column is probed first; a deployment without them
gets a logged no-op rather than an error. The renewal notification's
dedup_key makes the in-app insert a claim, so two overlapping sweeps cannot
both email the same member.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import String, cast, exists, false, null, or_, select
from sqlalchemy.orm import Session

from creatorhub.application.delivery_fanout import ACTIVE_MEMBERSHIP_STATUSES, DeliveryFanout
from creatorhub.application.schema_probe import SchemaProbe
from creatorhub.config import get_settings

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "membership_renewal"


@dataclass(frozen=True)
class SweepResult:
    processed: int = 0
    notified: int = 0
    reason: str | None = None


class ReminderSweep:
    def __init__(
        self,
        db: Session,
        fanout: DeliveryFanout | None = None,
        probe=None,
        days_ahead: int | None = None,
        window_days: int | None = None,
    ):
        settings = get_settings()
        self.db = db
        self.probe = probe or SchemaProbe(db)
        self.fanout = fanout or DeliveryFanout(db, probe=self.probe)
        self.days_ahead = settings.RENEWAL_REMINDER_DAYS if days_ahead is None else days_ahead
        self.window_days = settings.RENEWAL_DEDUP_WINDOW_DAYS if window_days is None else window_days

    def _due_query(self, today: date):
        """Build the selection, or return (None, reason) when the schema cannot support it."""
        m = self.probe.table("memberships")
        p = self.probe.table("products")
        if m is None or p is None:
            return None, "missing_tables"
        if "current_period_end" not in m.c:
            return None, "missing_current_period_end"
        if "buyer_id" in m.c:
            buyer = m.c.buyer_id
        elif "user_id" in m.c:
            buyer = m.c.user_id
        else:
            return None, "missing_buyer_column"

        start = datetime.combine(today + timedelta(days=self.days_ahead), time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        title = p.c.title if "title" in p.c else cast(null(), String)

        stmt = (
            select(
                m.c.id.label("membership_id"),
                buyer.label("user_id"),
                m.c.product_id,
                m.c.current_period_end,
                title.label("product_title"),
            )
            .join(p, p.c.id == m.c.product_id)
            .where(m.c.current_period_end >= start, m.c.current_period_end < end)
        )
        if "status" in m.c:
            stmt = stmt.where(m.c.status.in_(ACTIVE_MEMBERSHIP_STATUSES))
        if "cancel_at_period_end" in m.c:
            stmt = stmt.where(or_(m.c.cancel_at_period_end == false(), m.c.cancel_at_period_end.is_(None)))

        n = self.probe.table("notifications")
        if n is not None and {"user_id", "type", "created_at"} <= set(n.c.keys()):
            since = datetime.now(timezone.utc) - timedelta(days=self.window_days)
            recent = select(n.c.id).where(
                n.c.user_id == buyer,
                n.c.type == NOTIFICATION_TYPE,
                n.c.created_at >= since,
            )
            if "metadata" in n.c:
                recent = recent.where(
                    n.c["metadata"]["membership_id"].as_string() == cast(m.c.id, String)
                )
            stmt = stmt.where(~exists(recent))
        else:
            logger.info("Renewal sweep: notifications table unavailable, dedup window skipped")

        return stmt.order_by(m.c.id), None

    def run(self, today: date | None = None, stop_event: threading.Event | None = None) -> SweepResult:
        today = today or datetime.now(timezone.utc).date()
        try:
            stmt, reason = self._due_query(today)
            if stmt is None:
                logger.info("Renewal sweep skipped: %s", reason)
                return SweepResult(reason=reason)
            rows = self.db.execute(stmt).mappings().all()
        except Exception:
            logger.exception("Renewal sweep query failed")
            self.db.rollback()
            return SweepResult(reason="query_failed")

        processed = notified = 0
        reason = None
        for row in rows:
            if stop_event is not None and stop_event.is_set():
                reason = "stopped"
                logger.info("Renewal sweep stopped after %d of %d rows", processed, len(rows))
                break
            processed += 1
            try:
                report = self.fanout.notify_membership_renewal(
                    membership_id=row["membership_id"],
                    user_id=row["user_id"],
                    product_id=row["product_id"],
                    product_title=row["product_title"],
                    period_end=row["current_period_end"],
                    days=self.days_ahead,
                )
                if report.in_app or report.emails_sent:
                    notified += 1
            except Exception:
                logger.exception("Renewal reminder failed for membership_id=%s", row["membership_id"])
                self.db.rollback()

        logger.info(
            "Renewal sweep for %s: %d due, %d processed, %d notified",
            today + timedelta(days=self.days_ahead), len(rows), processed, notified,
        )
        return SweepResult(processed=processed, notified=notified, reason=reason)


def run_renewal_sweep(db: Session, stop_event: threading.Event | None = None) -> SweepResult:
    return ReminderSweep(db).run(stop_event=stop_event)
