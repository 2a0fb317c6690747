"""
Notification store — durable in-app notifications (the website bell).

Every operation is scoped to the owning user. Rows are never deleted here;
read_at is set once and never cleared.

notifications.dedup_key arrived in a later migration. When the column is
absent the store leaves it out of every statement and keeps the key in
metadata instead, checking for an existing row before inserting.
"""
import functools
import logging
from datetime import datetime, timezone

from sqlalchemy import func, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, defer

from creatorhub.application.schema_probe import SchemaProbe
from creatorhub.infrastructure.db.models import NotificationModel

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200
DEFAULT_LIST_LIMIT = 50

# metadata key holding the dedup key when the column is missing
META_DEDUP_KEY = "dedup_key"


class DuplicateNotificationError(Exception):
    """The user already has a notification of this type for this dedup key."""

    def __init__(self, user_id, type: str, dedup_key: str):
        super().__init__(f"Already notified user_id={user_id} type={type} key={dedup_key}")
        self.user_id = user_id
        self.type = type
        self.dedup_key = dedup_key


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationStore:
    def __init__(self, db: Session, probe=None):
        self.db = db
        self.probe = probe or SchemaProbe(db)

    @functools.cached_property
    def has_dedup_column(self) -> bool:
        present = self.probe.has_column("notifications", "dedup_key")
        if not present:
            logger.warning("notifications.dedup_key absent, dedup falls back to metadata lookups")
        return present

    def _query(self, *entities):
        q = self.db.query(*(entities or (NotificationModel,)))
        if not entities and not self.has_dedup_column:
            q = q.options(defer(NotificationModel.dedup_key))
        return q

    def _dedup_clause(self, dedup_key: str):
        if self.has_dedup_column:
            return NotificationModel.dedup_key == dedup_key
        return NotificationModel.meta[META_DEDUP_KEY].as_string() == dedup_key

    def _row(self, user_id, type, title, body, metadata, dedup_key, now) -> dict:
        row = {
            "user_id": user_id,
            "type": str(type),
            "title": str(title),
            "body": body,
            "meta": dict(metadata or {}),
            "created_at": now,
        }
        if dedup_key is not None:
            if self.has_dedup_column:
                row["dedup_key"] = dedup_key
            else:
                row["meta"][META_DEDUP_KEY] = dedup_key
        return row

    def _claimed_by(self, user_ids, type: str, dedup_key: str) -> set[int]:
        rows = self._query(NotificationModel.user_id).filter(
            NotificationModel.user_id.in_(set(user_ids)),
            NotificationModel.type == type,
            self._dedup_clause(dedup_key),
        )
        return {uid for (uid,) in rows}

    def create(
        self,
        user_id: int,
        type: str,
        title: str,
        body: str | None,
        metadata: dict | None = None,
        dedup_key: str | None = None,
    ) -> NotificationModel:
        """
        Insert one notification and return the row.

        With a dedup_key, a second insert for the same (user, type, key)
        raises DuplicateNotificationError; callers use that as the
        "already notified" signal.
        """
        if dedup_key is not None and not self.has_dedup_column:
            if self.exists(user_id, type, dedup_key=dedup_key):
                raise DuplicateNotificationError(user_id, type, dedup_key)

        row = self._row(user_id, type, title, body, metadata, dedup_key, _utcnow())
        try:
            new_id = self.db.scalars(insert(NotificationModel).returning(NotificationModel.id), [row]).one()
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if dedup_key is not None and self.has_dedup_column:
                raise DuplicateNotificationError(user_id, type, dedup_key) from e
            raise
        except Exception:
            self.db.rollback()
            raise
        return self.get(user_id, new_id)

    def create_many(
        self,
        user_ids: list[int],
        type: str,
        title: str,
        body: str | None,
        metadata: dict | None = None,
        dedup_key: str | None = None,
    ) -> int:
        """
        Single batched insert, one row per user id. Returns rows written.

        The batch is all-or-nothing: one conflicting dedup_key fails the
        whole insert.
        """
        if not user_ids:
            return 0
        if dedup_key is not None and not self.has_dedup_column:
            claimed = self._claimed_by(user_ids, type, dedup_key)
            if claimed:
                raise DuplicateNotificationError(min(claimed), type, dedup_key)

        now = _utcnow()
        rows = [self._row(uid, type, title, body, metadata, dedup_key, now) for uid in user_ids]
        try:
            self.db.execute(insert(NotificationModel), rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return len(rows)

    def mark_read(self, user_id: int, ids: list[int]) -> int:
        """Mark the caller's unread notifications as read. Already-read ids are left untouched."""
        if not ids:
            return 0
        result = self.db.execute(
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.id.in_([int(i) for i in ids]),
                NotificationModel.read_at.is_(None),
            )
            .values(read_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount or 0

    def mark_all_read(self, user_id: int) -> int:
        result = self.db.execute(
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.read_at.is_(None),
            )
            .values(read_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount or 0

    def unread_count(self, user_id: int) -> int:
        return (
            self._query(func.count(NotificationModel.id))
            .filter(
                NotificationModel.user_id == user_id,
                NotificationModel.read_at.is_(None),
            )
            .scalar()
            or 0
        )

    def list(
        self,
        user_id: int,
        unread_only: bool = False,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[NotificationModel]:
        """Newest first; limit is clamped to [1, 200] and offset to >= 0."""
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        offset = max(int(offset), 0)
        q = self._query().filter(NotificationModel.user_id == user_id)
        if unread_only:
            q = q.filter(NotificationModel.read_at.is_(None))
        return (
            q.order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    def get(self, user_id: int, notification_id: int) -> NotificationModel | None:
        return (
            self._query()
            .filter(
                NotificationModel.user_id == user_id,
                NotificationModel.id == notification_id,
            )
            .first()
        )

    def exists(
        self,
        user_id: int,
        type: str,
        dedup_key: str | None = None,
        since: datetime | None = None,
        **metadata,
    ) -> bool:
        """Whether a matching notification exists; extra kwargs match top-level metadata keys as text."""
        q = self._query(NotificationModel.id).filter(
            NotificationModel.user_id == user_id,
            NotificationModel.type == type,
        )
        if dedup_key is not None:
            q = q.filter(self._dedup_clause(dedup_key))
        if since is not None:
            q = q.filter(NotificationModel.created_at > since)
        for key, value in metadata.items():
            q = q.filter(NotificationModel.meta[key].as_string() == str(value))
        return q.first() is not None
