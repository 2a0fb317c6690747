"""
Tests for the background scheduler wiring.
"""
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import sessionmaker

from creatorhub.application import scheduler as sched


def test_enqueue_unknown_kind():
    with pytest.raises(ValueError):
        sched.enqueue_fanout("carrier_pigeon", order_id=1)


def test_enqueue_runs_inline_when_scheduler_stopped():
    with patch.object(sched, "_run_fanout") as run:
        sched.enqueue_fanout("purchase", order_id=5)
    run.assert_called_once_with("purchase", {"order_id": 5})


def test_fanout_job_uses_own_session():
    session = MagicMock()
    with patch("creatorhub.infrastructure.db.session.get_session_factory", return_value=lambda: session), \
            patch("creatorhub.application.delivery_fanout.DeliveryFanout") as fanout_cls:
        sched._run_fanout("member_post", {"product_id": 3, "post_id": 8})

    fanout_cls.return_value.notify_post_to_members.assert_called_once_with(product_id=3, post_id=8)
    session.close.assert_called_once()


def test_fanout_job_failure_is_contained():
    session = MagicMock()
    with patch("creatorhub.infrastructure.db.session.get_session_factory", return_value=lambda: session), \
            patch("creatorhub.application.delivery_fanout.DeliveryFanout") as fanout_cls:
        fanout_cls.return_value.notify_purchase.side_effect = RuntimeError("db down")
        sched._run_fanout("purchase", {"order_id": 1})

    session.close.assert_called_once()


def test_start_registers_daily_sweep():
    with patch.object(sched.scheduler, "start"), patch.object(sched, "_capture_schema", return_value=None):
        sched.start_scheduler()
    try:
        job = sched.scheduler.get_job("renewal_sweep")
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
    finally:
        sched.scheduler.remove_job("renewal_sweep")


def test_shutdown_signals_running_sweep():
    sched.stop_event.clear()
    sched.shutdown_scheduler()
    assert sched.stop_event.is_set()
    sched.stop_event.clear()


def test_jobs_share_schema_snapshot():
    snapshot = object()
    session = MagicMock()
    with patch.object(sched.scheduler, "start"), patch.object(sched, "_capture_schema", return_value=snapshot):
        sched.start_scheduler()
    try:
        with patch("creatorhub.infrastructure.db.session.get_session_factory", return_value=lambda: session), \
                patch("creatorhub.application.delivery_fanout.DeliveryFanout") as fanout_cls, \
                patch("creatorhub.application.reminder_sweep.ReminderSweep") as sweep_cls:
            sched._run_fanout("purchase", {"order_id": 1})
            sched._run_renewal_sweep()

        fanout_cls.assert_called_once_with(session, probe=snapshot)
        sweep_cls.assert_called_once_with(session, probe=snapshot)
    finally:
        sched.scheduler.remove_job("renewal_sweep")
        sched.schema_snapshot = None


def test_empty_snapshot_falls_back_to_live_schema(bare_engine):
    with patch("creatorhub.infrastructure.db.session.get_session_factory",
               return_value=sessionmaker(bind=bare_engine)):
        assert sched._capture_schema() is None
