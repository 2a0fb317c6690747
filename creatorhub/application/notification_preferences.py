"""
Per-user email notification toggles (users.notify_*).

Preference gating for fanout: a missing user row yields skipped="no_user";
a missing column or a false/NULL value yields skipped="pref_off". Absence is
never an error.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from creatorhub.application.schema_probe import SchemaProbe

logger = logging.getLogger(__name__)

PREFERENCE_KEYS = (
    "notify_post",
    "notify_membership_expiring",
    "notify_purchase",
    "notify_request_completed",
    "notify_new_request",
    "notify_product_sale",
)

SKIP_NO_USER = "no_user"
SKIP_PREF_OFF = "pref_off"


@dataclass(frozen=True)
class EmailTarget:
    user_id: int
    email: str | None = None
    skipped: str | None = None

    @property
    def deliverable(self) -> bool:
        return self.skipped is None and bool(self.email)


def _check_key(pref_key: str) -> None:
    if pref_key not in PREFERENCE_KEYS:
        raise ValueError(f"Unknown notification preference: {pref_key}")


class NotificationPreferences:
    def __init__(self, db: Session, probe=None):
        self.db = db
        self.probe = probe or SchemaProbe(db)

    def email_targets(self, user_ids: list[int], pref_key: str) -> dict[int, EmailTarget]:
        """Resolve email + toggle for many users with one query."""
        _check_key(pref_key)
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        users = self.probe.table("users")
        if users is None or "email" not in users.c:
            return {uid: EmailTarget(uid, skipped=SKIP_NO_USER) for uid in ids}

        has_pref = pref_key in users.c
        cols = [users.c.id, users.c.email]
        if has_pref:
            cols.append(users.c[pref_key].label("enabled"))
        rows = self.db.execute(select(*cols).where(users.c.id.in_(ids))).mappings().all()
        found = {r["id"]: r for r in rows}

        targets = {}
        for uid in ids:
            row = found.get(uid)
            if row is None:
                targets[uid] = EmailTarget(uid, skipped=SKIP_NO_USER)
            elif not has_pref or not row["enabled"] or not row["email"]:
                targets[uid] = EmailTarget(uid, email=row["email"], skipped=SKIP_PREF_OFF)
            else:
                targets[uid] = EmailTarget(uid, email=row["email"])
        if not has_pref:
            logger.debug("Preference column users.%s absent, treating as off", pref_key)
        return targets

    def email_target(self, user_id: int, pref_key: str) -> EmailTarget:
        return self.email_targets([user_id], pref_key)[user_id]

    def get(self, user_id: int) -> dict | None:
        users = self.probe.table("users")
        if users is None:
            return None
        cols = [users.c[k] for k in PREFERENCE_KEYS if k in users.c]
        row = self.db.execute(
            select(users.c.id, *cols).where(users.c.id == user_id).limit(1)
        ).mappings().first()
        if row is None:
            return None
        return {k: bool(row[k]) for k in PREFERENCE_KEYS if k in row}

    def update(self, user_id: int, changes: dict[str, bool]) -> dict | None:
        """Apply a subset of toggles. Unknown keys raise ValueError; absent columns are ignored."""
        for key in changes:
            _check_key(key)
        users = self.probe.table("users")
        if users is None:
            return None
        values = {k: bool(v) for k, v in changes.items() if k in users.c}
        if values:
            self.db.execute(update(users).where(users.c.id == user_id).values(**values))
            self.db.commit()
        return self.get(user_id)
