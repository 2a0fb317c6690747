"""
Tests for the renewal reminder sweep.

Covers:
  - Due date window: only today + 3 (UTC) is selected
  - Status / cancel_at_period_end filters
  - Dedup window: notified 10 days ago → skipped, 40 days ago → notified again
  - Re-running the sweep does not notify twice
  - Legacy memberships.user_id column
  - Missing tables → logged no-op
  - stop_event and per-row isolation
"""
import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

from sqlalchemy import text

from creatorhub.application.delivery_fanout import DeliveryFanout
from creatorhub.application.email_outbox import EmailOutbox
from creatorhub.application.reminder_sweep import ReminderSweep
from creatorhub.infrastructure.db.models import (
    EmailDeliveryAttempt,
    MembershipModel,
    NotificationModel,
    ProductModel,
    User,
)


_tz = timezone.utc
TODAY = date(2026, 10, 19)
DUE = datetime(2026, 10, 22, 12, 0, tzinfo=_tz)
BUYER_ID = 1
PRODUCT_ID = 100


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _seed(db, *, period_end=DUE, status="active", cancel_at_period_end=False) -> MembershipModel:
    if db.get(User, BUYER_ID) is None:
        db.add(User(id=BUYER_ID, email="member@example.com"))
        db.add(ProductModel(id=PRODUCT_ID, user_id=10, title="Gold tier", product_type="membership"))
    m = MembershipModel(
        buyer_id=BUYER_ID,
        creator_id=10,
        product_id=PRODUCT_ID,
        status=status,
        cancel_at_period_end=cancel_at_period_end,
        current_period_end=period_end,
    )
    db.add(m)
    db.commit()
    return m


def _previous_reminder(db, membership_id, days_ago):
    db.add(NotificationModel(
        user_id=BUYER_ID,
        type="membership_renewal",
        title="Heads up: Membership renewal soon",
        body="earlier reminder",
        meta={"membership_id": str(membership_id)},
        created_at=datetime.now(_tz) - timedelta(days=days_ago),
    ))
    db.commit()


def _sweep(db, mailer=None) -> ReminderSweep:
    fanout = DeliveryFanout(db, EmailOutbox(db, mailer or MagicMock()), max_workers=2)
    return ReminderSweep(db, fanout, days_ahead=3, window_days=30)


def _reminders(db):
    return db.query(NotificationModel).filter_by(type="membership_renewal").all()


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def test_due_membership_is_notified(db_session):
    _seed(db_session)
    mailer = MagicMock()

    result = _sweep(db_session, mailer).run(today=TODAY)

    assert result.processed == 1
    assert result.notified == 1
    assert result.reason is None
    assert len(_reminders(db_session)) == 1
    mailer.send.assert_called_once()
    assert db_session.query(EmailDeliveryAttempt).count() == 1


def test_other_days_are_ignored(db_session):
    _seed(db_session, period_end=DUE - timedelta(days=1))
    _seed(db_session, period_end=DUE + timedelta(days=1))

    result = _sweep(db_session).run(today=TODAY)

    assert result.processed == 0
    assert _reminders(db_session) == []


def test_whole_utc_day_is_covered(db_session):
    _seed(db_session, period_end=datetime(2026, 10, 22, 0, 0, tzinfo=_tz))
    _seed(db_session, period_end=datetime(2026, 10, 22, 23, 59, 59, tzinfo=_tz))

    assert _sweep(db_session).run(today=TODAY).processed == 2


def test_pending_cancellation_is_skipped(db_session):
    _seed(db_session, cancel_at_period_end=True)
    assert _sweep(db_session).run(today=TODAY).processed == 0


def test_inactive_status_is_skipped(db_session):
    _seed(db_session, status="canceled")
    _seed(db_session, status="past_due")
    assert _sweep(db_session).run(today=TODAY).processed == 0


def test_trialing_is_included(db_session):
    _seed(db_session, status="trialing")
    assert _sweep(db_session).run(today=TODAY).notified == 1


# ---------------------------------------------------------------------------
# Dedup
# ---------------------------------------------------------------------------

def test_recent_reminder_suppresses(db_session):
    m = _seed(db_session)
    _previous_reminder(db_session, m.id, days_ago=10)

    result = _sweep(db_session).run(today=TODAY)

    assert result.processed == 0
    assert len(_reminders(db_session)) == 1


def test_old_reminder_does_not_suppress(db_session):
    m = _seed(db_session)
    _previous_reminder(db_session, m.id, days_ago=40)

    result = _sweep(db_session).run(today=TODAY)

    assert result.notified == 1
    assert len(_reminders(db_session)) == 2


def test_reminder_for_other_membership_does_not_suppress(db_session):
    m = _seed(db_session)
    _previous_reminder(db_session, m.id + 1000, days_ago=5)

    assert _sweep(db_session).run(today=TODAY).notified == 1


def test_second_run_is_a_noop(db_session):
    _seed(db_session)
    mailer = MagicMock()
    sweep = _sweep(db_session, mailer)

    sweep.run(today=TODAY)
    again = sweep.run(today=TODAY)

    assert again.processed == 0
    assert len(_reminders(db_session)) == 1
    assert mailer.send.call_count == 1


def test_claim_blocks_overlapping_run(db_session):
    """The anti-join already ran, but the dedup_key claim still stops a second email."""
    m = _seed(db_session)
    mailer = MagicMock()
    sweep = _sweep(db_session, mailer)

    sweep.fanout.notify_membership_renewal(m.id, BUYER_ID, PRODUCT_ID, "Gold tier", DUE)
    result = ReminderSweep(db_session, sweep.fanout, days_ahead=3, window_days=0).run(today=TODAY)

    assert result.processed == 1
    assert result.notified == 0
    assert mailer.send.call_count == 1


# ---------------------------------------------------------------------------
# Schema tolerance
# ---------------------------------------------------------------------------

def test_missing_tables(bare_session):
    result = _sweep(bare_session).run(today=TODAY)
    assert result.processed == 0
    assert result.reason == "missing_tables"


def test_missing_period_end_column(bare_session):
    bare_session.execute(text("CREATE TABLE memberships (id INTEGER PRIMARY KEY, buyer_id INTEGER)"))
    bare_session.execute(text("CREATE TABLE products (id INTEGER PRIMARY KEY)"))
    bare_session.commit()

    assert _sweep(bare_session).run(today=TODAY).reason == "missing_current_period_end"


def test_legacy_user_id_column(db_session):
    db_session.add(User(id=BUYER_ID, email="member@example.com"))
    db_session.add(ProductModel(id=PRODUCT_ID, user_id=10, title="Gold tier"))
    db_session.commit()
    db_session.execute(text("DROP TABLE memberships"))
    db_session.execute(text(
        "CREATE TABLE memberships (id INTEGER PRIMARY KEY, user_id INTEGER, product_id INTEGER, "
        "status TEXT, current_period_end TIMESTAMP)"
    ))
    db_session.execute(text(
        "INSERT INTO memberships VALUES (1, :uid, :pid, 'active', '2026-10-22 08:30:00.000000')"
    ), {"uid": BUYER_ID, "pid": PRODUCT_ID})
    db_session.commit()

    result = _sweep(db_session).run(today=TODAY)

    assert result.notified == 1
    assert _reminders(db_session)[0].user_id == BUYER_ID


# ---------------------------------------------------------------------------
# Control flow
# ---------------------------------------------------------------------------

def test_stop_event_aborts_between_rows(db_session):
    _seed(db_session)
    _seed(db_session)
    stop = threading.Event()
    stop.set()

    result = _sweep(db_session).run(today=TODAY, stop_event=stop)

    assert result.processed == 0
    assert result.reason == "stopped"


def test_row_failure_is_isolated(db_session):
    _seed(db_session)
    _seed(db_session)
    fanout = MagicMock()
    fanout.notify_membership_renewal.side_effect = [
        RuntimeError("boom"),
        MagicMock(in_app=1, emails_sent=1),
    ]

    result = ReminderSweep(db_session, fanout, days_ahead=3, window_days=30).run(today=TODAY)

    assert result.processed == 2
    assert result.notified == 1
