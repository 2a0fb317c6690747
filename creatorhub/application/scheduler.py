"""
Background scheduler — runs periodic and one-off jobs inside the FastAPI process.

Jobs:
  - Renewal reminder sweep (daily, RENEWAL_SWEEP_HOUR_UTC)
  - Fanout jobs queued by enqueue_fanout() (run once, as soon as possible)

Each job opens and closes its own session. The schema snapshot captured at
start is shared by every job so runs do not reflect the database again.
"""
import logging
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from creatorhub.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

# Set on shutdown; the sweep checks it between memberships
stop_event = threading.Event()

# Captured by start_scheduler(); None means jobs probe the live schema
schema_snapshot = None

# enqueue_fanout kind -> DeliveryFanout method
FANOUT_KINDS = {
    "member_post": "notify_post_to_members",
    "purchase": "notify_purchase",
    "new_request": "notify_creator_new_request",
    "request_delivered": "notify_request_delivered",
}


def _capture_schema():
    from creatorhub.infrastructure.db.session import get_session_factory
    from creatorhub.application.schema_probe import SchemaProbe, SchemaSnapshot

    Session = get_session_factory()
    db = Session()
    try:
        snapshot = SchemaSnapshot.capture(SchemaProbe(db))
    finally:
        db.close()
    if not snapshot.tables:
        logger.warning("Schema snapshot is empty, scheduler jobs will probe the live schema")
        return None
    return snapshot


def _run_renewal_sweep():
    from creatorhub.infrastructure.db.session import get_session_factory
    from creatorhub.application.reminder_sweep import ReminderSweep

    Session = get_session_factory()
    db = Session()
    try:
        result = ReminderSweep(db, probe=schema_snapshot).run(stop_event=stop_event)
        logger.info("Renewal sweep job finished: %s", result)
    except Exception:
        logger.exception("Renewal sweep job failed")
    finally:
        db.close()


def _run_fanout(kind: str, ids: dict):
    from creatorhub.infrastructure.db.session import get_session_factory
    from creatorhub.application.delivery_fanout import DeliveryFanout

    Session = get_session_factory()
    db = Session()
    try:
        fanout = DeliveryFanout(db, probe=schema_snapshot)
        getattr(fanout, FANOUT_KINDS[kind])(**ids)
    except Exception:
        logger.exception("Fanout job %s failed (%s)", kind, ids)
    finally:
        db.close()


def enqueue_fanout(kind: str, **ids) -> None:
    """
    Queue a fanout so the calling request returns immediately.

    kind is one of FANOUT_KINDS; ids are the entry point's keyword arguments
    (e.g. enqueue_fanout("purchase", order_id=42)). When the scheduler is not
    running (SCHEDULER_ENABLED off, tests, scripts) the fanout runs inline.
    """
    if kind not in FANOUT_KINDS:
        raise ValueError(f"Unknown fanout kind: {kind}")
    if not scheduler.running:
        logger.debug("Scheduler not running, fanout %s runs inline", kind)
        _run_fanout(kind, ids)
        return
    scheduler.add_job(
        _run_fanout,
        args=[kind, ids],
        name=f"fanout:{kind}",
        misfire_grace_time=None,
    )


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    global schema_snapshot
    settings = get_settings()
    stop_event.clear()
    schema_snapshot = _capture_schema()

    # Renewal reminders, daily; a late run is coalesced, never doubled
    scheduler.add_job(
        _run_renewal_sweep,
        CronTrigger(hour=settings.RENEWAL_SWEEP_HOUR_UTC, minute=0, timezone="UTC"),
        id="renewal_sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info("Scheduler started: renewal_sweep (%02d:00 UTC)", settings.RENEWAL_SWEEP_HOUR_UTC)


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    stop_event.set()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
