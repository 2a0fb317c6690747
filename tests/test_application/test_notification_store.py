"""
Tests for NotificationStore.

Covers:
  - create / create_many (empty list is a no-op)
  - dedup_key: second insert for the same key is a DuplicateNotificationError
  - dedup without the dedup_key column (older schema)
  - list ordering, unread filter, limit clamping
  - mark_read idempotence and ownership
  - mark_all_read / unread_count
  - exists() with time window and metadata match
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from creatorhub.application.notification_store import (
    MAX_LIST_LIMIT,
    DuplicateNotificationError,
    NotificationStore,
)
from creatorhub.infrastructure.db.models import NotificationModel


_tz = timezone.utc
USER_ID = 1
OTHER_USER_ID = 2

# notifications as created before the dedup_key migration
LEGACY_NOTIFICATIONS_DDL = """
CREATE TABLE notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    type VARCHAR(64) NOT NULL,
    title VARCHAR(256) NOT NULL,
    body TEXT,
    metadata JSON,
    created_at TIMESTAMP NOT NULL,
    read_at TIMESTAMP
)
"""


def _notif(db, *, user_id=USER_ID, type="member_post", created_at=None, read_at=None, meta=None):
    n = NotificationModel(
        user_id=user_id,
        type=type,
        title="Test",
        body="body",
        meta=meta or {},
        created_at=created_at or datetime(2026, 10, 1, 10, 0, tzinfo=_tz),
        read_at=read_at,
    )
    db.add(n)
    db.commit()
    return n


class TestCreate:

    def test_create_returns_row(self, db_session):
        n = NotificationStore(db_session).create(USER_ID, "purchase", "Purchase confirmed", "ok", {"order_id": 3})
        assert n.id is not None
        assert n.meta == {"order_id": 3}
        assert n.read_at is None

    def test_duplicate_dedup_key_raises(self, db_session):
        store = NotificationStore(db_session)
        store.create(USER_ID, "purchase", "t", "b", dedup_key="order:1")

        with pytest.raises(DuplicateNotificationError):
            store.create(USER_ID, "purchase", "t", "b", dedup_key="order:1")

        # session is usable after the rollback
        assert store.unread_count(USER_ID) == 1

    def test_null_dedup_keys_never_collide(self, db_session):
        store = NotificationStore(db_session)
        store.create(USER_ID, "member_post", "t", "b")
        store.create(USER_ID, "member_post", "t", "b")
        assert store.unread_count(USER_ID) == 2

    def test_create_many(self, db_session):
        written = NotificationStore(db_session).create_many([1, 2, 3], "member_post", "New", "body", {"post_id": 9})
        assert written == 3
        assert db_session.query(NotificationModel).count() == 3

    def test_create_many_empty(self, db_session):
        assert NotificationStore(db_session).create_many([], "member_post", "New", "body") == 0
        assert db_session.query(NotificationModel).count() == 0


class TestList:

    def test_newest_first(self, db_session):
        old = _notif(db_session, created_at=datetime(2026, 10, 1, tzinfo=_tz))
        new = _notif(db_session, created_at=datetime(2026, 10, 2, tzinfo=_tz))
        rows = NotificationStore(db_session).list(USER_ID)
        assert [r.id for r in rows] == [new.id, old.id]

    def test_unread_only(self, db_session):
        _notif(db_session, read_at=datetime(2026, 10, 3, tzinfo=_tz))
        unread = _notif(db_session)
        rows = NotificationStore(db_session).list(USER_ID, unread_only=True)
        assert [r.id for r in rows] == [unread.id]

    def test_scoped_to_owner(self, db_session):
        _notif(db_session, user_id=OTHER_USER_ID)
        assert NotificationStore(db_session).list(USER_ID) == []

    def test_limit_clamped(self, db_session):
        NotificationStore(db_session).create_many([USER_ID] * (MAX_LIST_LIMIT + 5), "member_post", "t", "b")
        store = NotificationStore(db_session)
        assert len(store.list(USER_ID, limit=1000)) == MAX_LIST_LIMIT
        assert len(store.list(USER_ID, limit=0)) == 1
        assert len(store.list(USER_ID, limit=10, offset=-4)) == 10


class TestMarkRead:

    def test_mark_read_is_idempotent(self, db_session):
        n = _notif(db_session)
        store = NotificationStore(db_session)

        assert store.mark_read(USER_ID, [n.id]) == 1
        db_session.expire_all()
        first_read_at = store.get(USER_ID, n.id).read_at

        assert store.mark_read(USER_ID, [n.id]) == 0
        db_session.expire_all()
        assert store.get(USER_ID, n.id).read_at == first_read_at

    def test_mark_read_empty_ids(self, db_session):
        assert NotificationStore(db_session).mark_read(USER_ID, []) == 0

    def test_cannot_mark_someone_elses(self, db_session):
        n = _notif(db_session, user_id=OTHER_USER_ID)
        assert NotificationStore(db_session).mark_read(USER_ID, [n.id]) == 0

    def test_mark_all_read(self, db_session):
        for _ in range(3):
            _notif(db_session)
        _notif(db_session, user_id=OTHER_USER_ID)
        store = NotificationStore(db_session)

        assert store.mark_all_read(USER_ID) == 3
        assert store.mark_all_read(USER_ID) == 0
        assert store.unread_count(USER_ID) == 0
        assert store.unread_count(OTHER_USER_ID) == 1


class TestExists:

    def test_since_window(self, db_session):
        now = datetime.now(_tz)
        _notif(db_session, type="membership_renewal", created_at=now - timedelta(days=40))
        store = NotificationStore(db_session)

        assert store.exists(USER_ID, "membership_renewal") is True
        assert store.exists(USER_ID, "membership_renewal", since=now - timedelta(days=30)) is False

    def test_metadata_match(self, db_session):
        _notif(db_session, type="membership_renewal", meta={"membership_id": "5"})
        store = NotificationStore(db_session)

        assert store.exists(USER_ID, "membership_renewal", membership_id=5) is True
        assert store.exists(USER_ID, "membership_renewal", membership_id=6) is False


class TestWithoutDedupColumn:

    @pytest.fixture
    def legacy_session(self, bare_session):
        bare_session.execute(text(LEGACY_NOTIFICATIONS_DDL))
        bare_session.commit()
        return bare_session

    def test_reads_and_writes(self, legacy_session):
        store = NotificationStore(legacy_session)

        n = store.create(USER_ID, "purchase", "Purchase confirmed", "ok", {"order_id": 3})

        assert store.has_dedup_column is False
        assert [r.id for r in store.list(USER_ID)] == [n.id]
        assert store.get(USER_ID, n.id).meta == {"order_id": 3}
        assert store.unread_count(USER_ID) == 1
        assert store.create_many([USER_ID, OTHER_USER_ID], "member_post", "t", "b") == 2
        assert store.unread_count(USER_ID) == 2

    def test_create_checks_existing_key(self, legacy_session):
        store = NotificationStore(legacy_session)
        store.create(USER_ID, "purchase", "t", "b", {"order_id": 1}, dedup_key="order:1")

        with pytest.raises(DuplicateNotificationError):
            store.create(USER_ID, "purchase", "t", "b", {"order_id": 1}, dedup_key="order:1")

        store.create(OTHER_USER_ID, "purchase", "t", "b", {"order_id": 1}, dedup_key="order:1")
        assert store.exists(USER_ID, "purchase", dedup_key="order:1") is True
        assert store.exists(USER_ID, "purchase", dedup_key="order:2") is False
        assert store.unread_count(USER_ID) == 1

    def test_create_many_refuses_claimed_key(self, legacy_session):
        store = NotificationStore(legacy_session)
        store.create(USER_ID, "member_post", "t", "b", dedup_key="post:7")

        with pytest.raises(DuplicateNotificationError):
            store.create_many([OTHER_USER_ID, USER_ID], "member_post", "t", "b", dedup_key="post:7")

        assert store.unread_count(OTHER_USER_ID) == 0
        assert store.create_many([3, 4], "member_post", "t", "b", dedup_key="post:7") == 2
