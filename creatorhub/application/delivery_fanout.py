"""
Delivery fanout — turns one business event into per-recipient deliveries:
an in-app notification (always) plus an email (when the recipient's
preference allows it).

Entry points take identifiers only and re-derive the audience from the
database, so they are safe to call from a background job.

Delivery model for one event:
  1. in-app leg: one batched insert on the caller's session; if the batch
     fails it is rolled back and retried recipient by recipient
  2. email leg: email_queue rows are prepared on the caller's thread, the
     transport calls run concurrently on a bounded thread pool (every result
     is collected, none cancels the others), outcomes are recorded back on
     the caller's thread

Deliveries that carry a dedup_key use the in-app insert as a claim: a
DuplicateNotificationError means the recipient was already notified for that
key, and the email is skipped. One recipient's failure never affects another,
and entry points never raise.
"""
import functools
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from creatorhub.application import email_templates
from creatorhub.application.email_outbox import EmailOutbox
from creatorhub.application.email_templates import EmailContent
from creatorhub.application.notification_preferences import NotificationPreferences
from creatorhub.application.notification_store import DuplicateNotificationError, NotificationStore
from creatorhub.application.schema_probe import SchemaProbe
from creatorhub.config import get_settings
from creatorhub.infrastructure.db.models import (
    CustomRequestModel,
    MembershipModel,
    OrderModel,
    ProductModel,
)

logger = logging.getLogger(__name__)

# Notification type -> users.notify_* column gating its email
CATEGORY_PREFERENCES = {
    "member_post": "notify_post",
    "purchase": "notify_purchase",
    "product_sale": "notify_product_sale",
    "new_request": "notify_new_request",
    "request_delivered": "notify_request_completed",
    "membership_renewal": "notify_membership_expiring",
}

ACTIVE_MEMBERSHIP_STATUSES = ("active", "trialing")

EMAIL_SENT = "sent"
EMAIL_FAILED = "failed"
EMAIL_SKIPPED_DUPLICATE = "duplicate"

RENEWAL_TITLE = "Heads up: Membership renewal soon"


def _isolated(event: str):
    """Entry points never raise: any escape is logged and reported as an empty fanout."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except Exception:
                logger.exception("Fanout %s failed (args=%s)", event, args or kwargs)
                self.db.rollback()
                return FanoutReport(event)
        return wrapper
    return decorator


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Delivery:
    """One recipient's share of an event."""
    user_id: int
    type: str
    title: str
    body: str
    email: EmailContent
    metadata: dict = field(default_factory=dict)
    dedup_key: str | None = None

    @property
    def pref_key(self) -> str:
        return CATEGORY_PREFERENCES[self.type]


@dataclass
class DeliveryOutcome:
    user_id: int
    type: str
    in_app: bool = False
    email: str | None = None    # sent | failed | no_user | pref_off | duplicate
    error: str | None = None


@dataclass
class FanoutReport:
    event: str
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def recipients(self) -> int:
        return len({o.user_id for o in self.outcomes})

    @property
    def in_app(self) -> int:
        return sum(1 for o in self.outcomes if o.in_app)

    @property
    def emails_sent(self) -> int:
        return sum(1 for o in self.outcomes if o.email == EMAIL_SENT)

    @property
    def emails_failed(self) -> int:
        return sum(1 for o in self.outcomes if o.email == EMAIL_FAILED)

    @property
    def emails_skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.email not in (EMAIL_SENT, EMAIL_FAILED))

    def as_dict(self) -> dict:
        return {
            "event": self.event,
            "recipients": self.recipients,
            "in_app": self.in_app,
            "emails_sent": self.emails_sent,
            "emails_skipped": self.emails_skipped,
            "emails_failed": self.emails_failed,
        }


class DeliveryFanout:
    def __init__(
        self,
        db: Session,
        outbox: EmailOutbox | None = None,
        probe=None,
        max_workers: int | None = None,
    ):
        self.db = db
        self.outbox = outbox or EmailOutbox(db)
        self.probe = probe or SchemaProbe(db)
        self.max_workers = max(1, max_workers or get_settings().FANOUT_MAX_WORKERS)
        self.store = NotificationStore(db, probe=self.probe)
        self.prefs = NotificationPreferences(db, self.probe)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @_isolated("member_post")
    def notify_post_to_members(self, product_id, post_id=None, creator_id=None) -> FanoutReport:
        """New membership post: every current member of the product is notified."""
        report = FanoutReport("member_post")
        if not product_id:
            logger.warning("notify_post_to_members called without product_id")
            return report
        try:
            title = self.db.execute(
                select(ProductModel.title).where(ProductModel.id == int(product_id))
            ).scalar() or "your membership"
            now = datetime.now(timezone.utc)
            buyer_ids = self.db.execute(
                select(MembershipModel.buyer_id)
                .where(
                    MembershipModel.product_id == int(product_id),
                    MembershipModel.status.in_(ACTIVE_MEMBERSHIP_STATUSES),
                    or_(
                        MembershipModel.current_period_end.is_(None),
                        MembershipModel.current_period_end >= now,
                    ),
                )
                .distinct()
            ).scalars().all()
        except Exception:
            logger.exception("Member audience lookup failed for product_id=%s", product_id)
            self.db.rollback()
            return report

        metadata = {
            "creator_id": creator_id,
            "product_id": int(product_id),
            "post_id": post_id,
        }
        content = email_templates.member_post(title, post_id)
        deliveries = [
            Delivery(
                user_id=uid,
                type="member_post",
                title="New content posted",
                body=f"New content from {title} has just been posted. Check it out on My Purchases page!",
                email=content,
                metadata=metadata,
                dedup_key=f"post:{post_id}" if post_id is not None else None,
            )
            for uid in buyer_ids
        ]
        return self.deliver(report, deliveries)

    @_isolated("purchase")
    def notify_purchase(self, order_id) -> FanoutReport:
        """Buyer receipt plus creator sale alert for one order, at most once per order."""
        report = FanoutReport("purchase")
        try:
            row = self.db.execute(
                select(OrderModel.buyer_id, ProductModel.user_id, ProductModel.title, ProductModel.product_type)
                .join(ProductModel, ProductModel.id == OrderModel.product_id)
                .where(OrderModel.id == int(order_id))
            ).first()
        except Exception:
            logger.exception("Order lookup failed for order_id=%s", order_id)
            self.db.rollback()
            return report
        if row is None:
            logger.info("notify_purchase: order_id=%s not found", order_id)
            return report

        buyer_id, creator_id, title, product_type = row
        title = title or "your purchase"
        product_type = product_type or "product"
        metadata = {"order_id": int(order_id)}
        key = f"order:{int(order_id)}"
        deliveries = [
            Delivery(
                user_id=buyer_id,
                type="purchase",
                title="Purchase confirmed",
                body=f'Your {product_type} "{title}" is confirmed.',
                email=email_templates.purchase_receipt(title, product_type),
                metadata=metadata,
                dedup_key=key,
            ),
            Delivery(
                user_id=creator_id,
                type="product_sale",
                title="You made a sale",
                body=f'Your {product_type} "{title}" was just purchased.',
                email=email_templates.creator_sale(title, product_type),
                metadata=metadata,
                dedup_key=key,
            ),
        ]
        return self.deliver(report, deliveries)

    @_isolated("new_request")
    def notify_creator_new_request(self, request_id) -> FanoutReport:
        report = FanoutReport("new_request")
        req = self._load_request(request_id)
        if req is None:
            return report
        delivery = Delivery(
            user_id=req.creator_id,
            type="new_request",
            title="New request received",
            body="You've received a new request. Open your dashboard to review it.",
            email=email_templates.new_request(),
            metadata={"request_id": req.id, "order_id": req.order_id},
            dedup_key=f"request:{req.id}",
        )
        return self.deliver(report, [delivery])

    @_isolated("request_delivered")
    def notify_request_delivered(self, request_id) -> FanoutReport:
        report = FanoutReport("request_delivered")
        req = self._load_request(request_id)
        if req is None:
            return report
        title = self._request_product_title(req)
        body = f"Your request for {title} has been completed." if title else "Your request has been completed."
        delivery = Delivery(
            user_id=req.buyer_id,
            type="request_delivered",
            title="Your request is complete",
            body=body,
            email=email_templates.request_delivered(title),
            metadata={"request_id": req.id, "order_id": req.order_id},
            dedup_key=f"request:{req.id}",
        )
        return self.deliver(report, [delivery])

    @_isolated("membership_renewal")
    def notify_membership_renewal(
        self,
        membership_id,
        user_id: int,
        product_id,
        product_title: str | None,
        period_end: datetime,
        days: int = 3,
    ) -> FanoutReport:
        """
        Renewal heads-up for one membership period.

        The dedup_key pins the notification to (membership, period end date),
        so a second sweep over the same period claims nothing and sends no
        email.
        """
        report = FanoutReport("membership_renewal")
        period_end = _as_utc(period_end)
        title = product_title or "your membership"
        delivery = Delivery(
            user_id=user_id,
            type="membership_renewal",
            title=RENEWAL_TITLE,
            body=(
                f"Heads up: Your membership ({title}) will renew in {days} days! "
                "No action needed unless you'd like to make changes."
            ),
            email=email_templates.membership_renewal(title, days),
            metadata={
                "membership_id": str(membership_id),
                "product_id": str(product_id),
                "period_end": period_end.isoformat(),
            },
            dedup_key=f"membership:{membership_id}:{period_end.date().isoformat()}",
        )
        return self.deliver(report, [delivery])

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def deliver(self, report: FanoutReport, deliveries: list[Delivery]) -> FanoutReport:
        if not deliveries:
            logger.debug("Fanout %s: no recipients", report.event)
            return report
        outcomes = [DeliveryOutcome(user_id=d.user_id, type=d.type) for d in deliveries]
        report.outcomes.extend(outcomes)
        try:
            self._deliver_in_app(deliveries, outcomes)
            self._deliver_email(deliveries, outcomes)
        except Exception:
            logger.exception("Fanout %s aborted", report.event)
            self.db.rollback()
        logger.info("Fanout %s: %s", report.event, report.as_dict())
        return report

    def _deliver_in_app(self, deliveries: list[Delivery], outcomes: list[DeliveryOutcome]) -> None:
        groups: dict[tuple, list[int]] = {}
        for i, d in enumerate(deliveries):
            key = (d.type, d.title, d.body, json.dumps(d.metadata, sort_keys=True, default=str), d.dedup_key)
            groups.setdefault(key, []).append(i)

        for indexes in groups.values():
            first = deliveries[indexes[0]]
            try:
                self.store.create_many(
                    [deliveries[i].user_id for i in indexes],
                    first.type, first.title, first.body,
                    metadata=first.metadata, dedup_key=first.dedup_key,
                )
                for i in indexes:
                    outcomes[i].in_app = True
                continue
            except Exception:
                logger.warning(
                    "Batched %s insert failed for %d recipients, retrying one by one",
                    first.type, len(indexes), exc_info=True,
                )
            for i in indexes:
                self._create_one(deliveries[i], outcomes[i])

    def _create_one(self, d: Delivery, outcome: DeliveryOutcome) -> None:
        try:
            self.store.create(d.user_id, d.type, d.title, d.body, metadata=d.metadata, dedup_key=d.dedup_key)
            outcome.in_app = True
        except DuplicateNotificationError:
            logger.info("Already notified user_id=%s type=%s key=%s", d.user_id, d.type, d.dedup_key)
            outcome.email = EMAIL_SKIPPED_DUPLICATE
        except Exception:
            logger.exception("In-app %s insert failed for user_id=%s", d.type, d.user_id)

    def _deliver_email(self, deliveries: list[Delivery], outcomes: list[DeliveryOutcome]) -> None:
        pending = [i for i, o in enumerate(outcomes) if o.email is None]
        by_pref: dict[str, list[int]] = {}
        for i in pending:
            by_pref.setdefault(deliveries[i].pref_key, []).append(i)

        jobs = []   # (index, to, attempt_id)
        for pref_key, indexes in by_pref.items():
            try:
                targets = self.prefs.email_targets([deliveries[i].user_id for i in indexes], pref_key)
            except Exception as e:
                logger.exception("Preference lookup %s failed", pref_key)
                self.db.rollback()
                for i in indexes:
                    outcomes[i].email = EMAIL_FAILED
                    outcomes[i].error = str(e)
                continue
            for i in indexes:
                target = targets[deliveries[i].user_id]
                if not target.deliverable:
                    outcomes[i].email = target.skipped or "pref_off"
                    continue
                attempt_id = self.outbox.prepare(target.email, deliveries[i].email)
                jobs.append((i, target.email, attempt_id))

        if not jobs:
            return

        # Transport only on the pool; the session stays on this thread
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(jobs))) as pool:
            futures = [
                (i, attempt_id, pool.submit(self.outbox.transmit, to, deliveries[i].email))
                for i, to, attempt_id in jobs
            ]
            settled = []
            for i, attempt_id, future in futures:
                try:
                    future.result()
                    settled.append((i, attempt_id, None))
                except Exception as e:
                    settled.append((i, attempt_id, e))

        for i, attempt_id, error in settled:
            d = deliveries[i]
            if error is None:
                outcomes[i].email = EMAIL_SENT
            else:
                logger.error(
                    "Email %s to user_id=%s failed: %s", d.type, d.user_id, error,
                    exc_info=(type(error), error, error.__traceback__),
                )
                outcomes[i].email = EMAIL_FAILED
                outcomes[i].error = str(error)
            self.outbox.record(attempt_id, error)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _load_request(self, request_id) -> CustomRequestModel | None:
        try:
            req = self.db.get(CustomRequestModel, int(request_id))
        except Exception:
            logger.exception("Request lookup failed for request_id=%s", request_id)
            self.db.rollback()
            return None
        if req is None:
            logger.info("Request %s not found", request_id)
        return req

    def _request_product_title(self, req: CustomRequestModel) -> str | None:
        if req.order_id is None:
            return None
        try:
            return self.db.execute(
                select(ProductModel.title)
                .join(OrderModel, OrderModel.product_id == ProductModel.id)
                .where(OrderModel.id == req.order_id)
            ).scalar()
        except Exception:
            logger.warning("Product title lookup failed for request_id=%s", req.id, exc_info=True)
            self.db.rollback()
            return None
