"""
Activation evaluator — recomputes a creator's activation state and persists
the derived flags.

Called after any profile / product / payment mutation, so it runs on hot
paths and must never raise: every sub-query is isolated and a failure is
treated as "signal absent".

Persisted:
  - creator_profiles.is_active (when the column exists)
  - creator_profiles.is_profile_complete (when derived from fields)
  - users.role = 'creator' once the user owns a product (never reverted here)
Writes are only issued when the stored value differs, so re-running converges
to the same state without touching updated_at.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, func, select, true, update
from sqlalchemy.orm import Session

from creatorhub.application.schema_probe import SchemaProbe
from creatorhub.domain.activation import (
    ActivationSnapshot,
    INACTIVE,
    SOURCE_CONNECT_RECORD,
    SOURCE_LEGACY_USER_FLAGS,
    SOURCE_PROFILE_MIRROR,
    SOURCE_USER_FLAG,
    any_flag,
    compute_is_active,
    derive_profile_complete,
    resolve_payment_connected,
)

logger = logging.getLogger(__name__)

ROLE_CREATOR = "creator"

_PROFILE_COLUMNS = (
    "is_profile_complete", "display_name", "bio", "profile_image",
    "stripe_charges_enabled", "is_active",
)
_USER_COLUMNS = (
    "stripe_connected", "stripe_charges_enabled", "stripe_details_submitted", "role",
)


def _coerce_user_id(user_id: Any) -> int | None:
    raw = str(user_id if user_id is not None else "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class ActivationEvaluator:
    def __init__(self, db: Session, probe=None):
        self.db = db
        self.probe = probe or SchemaProbe(db)

    def recompute(self, user_id: Any) -> ActivationSnapshot:
        uid = _coerce_user_id(user_id)
        if uid is None:
            return INACTIVE
        try:
            return self._recompute(uid)
        except Exception:
            logger.exception("Activation recompute failed for user_id=%s", uid)
            self.db.rollback()
            return INACTIVE

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _safe(self, label: str, uid: int, fn, default=None):
        try:
            return fn()
        except Exception:
            logger.warning("Activation signal %s unavailable for user_id=%s", label, uid, exc_info=True)
            self.db.rollback()
            return default

    def _select_row(self, table_name: str, key_column: str, uid: int, wanted: tuple[str, ...]) -> dict | None:
        t = self.probe.table(table_name)
        if t is None or key_column not in t.c:
            return None
        cols = [t.c[name] for name in wanted if name in t.c]
        if not cols:
            # Row existence still matters (e.g. a profile with no optional columns)
            cols = [t.c[key_column]]
        row = self.db.execute(select(*cols).where(t.c[key_column] == uid).limit(1)).mappings().first()
        return dict(row) if row is not None else None

    def _photos_count(self, uid: int) -> int:
        t = self.probe.table("creator_profile_photos")
        if t is None or "user_id" not in t.c:
            return 0
        return int(self.db.execute(
            select(func.count()).select_from(t).where(t.c.user_id == uid)
        ).scalar() or 0)

    def _connect_record_flag(self, uid: int) -> bool | None:
        row = self._select_row("stripe_connect", "user_id", uid, ("charges_enabled", "details_submitted"))
        if row is None:
            return None
        return any_flag([row.get("charges_enabled"), row.get("details_submitted")])

    def _product_counts(self, uid: int) -> tuple[int, int]:
        """Return (total, published). Without an `active` column every product counts as published."""
        t = self.probe.table("products")
        if t is None or "user_id" not in t.c:
            return 0, 0
        if "active" in t.c:
            total, published = self.db.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(case((t.c.active == true(), 1), else_=0)), 0),
                ).select_from(t).where(t.c.user_id == uid)
            ).one()
            return int(total or 0), int(published or 0)
        total = int(self.db.execute(
            select(func.count()).select_from(t).where(t.c.user_id == uid)
        ).scalar() or 0)
        return total, total

    # ------------------------------------------------------------------
    # Main
    # ------------------------------------------------------------------

    def _recompute(self, uid: int) -> ActivationSnapshot:
        user = self._safe("users", uid, lambda: self._select_row("users", "id", uid, _USER_COLUMNS)) or {}
        profile = self._safe(
            "creator_profiles", uid,
            lambda: self._select_row("creator_profiles", "user_id", uid, _PROFILE_COLUMNS),
        )
        if profile is None:
            return INACTIVE

        photos = self._safe("creator_profile_photos", uid, lambda: self._photos_count(uid), 0)
        explicit = profile.get("is_profile_complete")
        profile_complete = derive_profile_complete(
            explicit_flag=bool(explicit) if explicit is not None else None,
            display_name=profile.get("display_name"),
            bio=profile.get("bio"),
            profile_image=profile.get("profile_image"),
            photos_count=photos,
        )

        payment_connected, source = resolve_payment_connected({
            SOURCE_USER_FLAG: user.get("stripe_connected"),
            SOURCE_PROFILE_MIRROR: profile.get("stripe_charges_enabled"),
            SOURCE_CONNECT_RECORD: lambda: self._safe(
                "stripe_connect", uid, lambda: self._connect_record_flag(uid)
            ),
            SOURCE_LEGACY_USER_FLAGS: any_flag([
                user.get("stripe_charges_enabled"), user.get("stripe_details_submitted"),
            ]),
        })

        total, published = self._safe("products", uid, lambda: self._product_counts(uid), (0, 0))
        has_product = total > 0
        has_published = published > 0
        is_active = compute_is_active(profile_complete, payment_connected, has_published, has_product)

        self._persist_profile_flags(uid, profile, is_active, profile_complete, derived=explicit is not True)
        if has_product and "role" in user and user.get("role") != ROLE_CREATOR:
            self._promote_role(uid)

        logger.debug(
            "Activation user_id=%s active=%s profile=%s payment=%s(%s) products=%s/%s",
            uid, is_active, profile_complete, payment_connected, source, published, total,
        )
        return ActivationSnapshot(
            is_active=is_active,
            profile_complete=profile_complete,
            payment_connected=payment_connected,
            has_product=has_product,
            has_published_product=has_published,
            total_products=total,
            payment_source=source,
        )

    # ------------------------------------------------------------------
    # Persistence (non-fatal)
    # ------------------------------------------------------------------

    def _persist_profile_flags(
        self, uid: int, profile: dict, is_active: bool, profile_complete: bool, derived: bool,
    ) -> None:
        values = {}
        if "is_active" in profile and bool(profile["is_active"]) != is_active:
            values["is_active"] = is_active
        if derived and "is_profile_complete" in profile and bool(profile["is_profile_complete"]) != profile_complete:
            values["is_profile_complete"] = profile_complete
        if not values:
            return
        try:
            t = self.probe.table("creator_profiles")
            if "updated_at" in t.c:
                values["updated_at"] = datetime.now(timezone.utc)
            self.db.execute(update(t).where(t.c.user_id == uid).values(**values))
            self.db.commit()
        except Exception:
            logger.warning("Persisting activation flags failed for user_id=%s", uid, exc_info=True)
            self.db.rollback()

    def _promote_role(self, uid: int) -> None:
        try:
            t = self.probe.table("users")
            values = {"role": ROLE_CREATOR}
            if "updated_at" in t.c:
                values["updated_at"] = datetime.now(timezone.utc)
            self.db.execute(
                update(t).where(t.c.id == uid, t.c.role != ROLE_CREATOR).values(**values)
            )
            self.db.commit()
            logger.info("Promoted user_id=%s to role=creator", uid)
        except Exception:
            logger.warning("Role promotion failed for user_id=%s", uid, exc_info=True)
            self.db.rollback()


def recompute_activation(db: Session, user_id: Any, probe=None) -> ActivationSnapshot:
    """Entry point for collaborators: recompute after any profile/product/payment change."""
    return ActivationEvaluator(db, probe).recompute(user_id)
