"""
Payment connectivity sync — pulls Stripe Connect capability flags and stores
them in stripe_connect (the canonical record, one row per user).

This module is the only writer of stripe_connect. The flags are mirrored into
creator_profiles.stripe_charges_enabled for older readers; that mirror is
best-effort and its failure never fails the sync.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from creatorhub.application.schema_probe import SchemaProbe
from creatorhub.infrastructure.db.models import PaymentConnectivityModel
from creatorhub.infrastructure.payments.stripe_client import StripeClient

logger = logging.getLogger(__name__)


class NoExternalAccountError(LookupError):
    """The user has no Stripe account id on file."""

    def __init__(self, user_id: int):
        super().__init__(f"No connected account on file for user_id={user_id}")
        self.user_id = user_id


@dataclass(frozen=True)
class ConnectivitySnapshot:
    account_id: str
    details_submitted: bool
    charges_enabled: bool
    payouts_enabled: bool
    updated_at: datetime

    def as_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "details_submitted": self.details_submitted,
            "charges_enabled": self.charges_enabled,
            "payouts_enabled": self.payouts_enabled,
            "updated_at": self.updated_at.isoformat(),
        }


class PaymentConnectivitySync:
    def __init__(self, db: Session, client: StripeClient | None = None, probe=None):
        self.db = db
        self.client = client or StripeClient()
        self.probe = probe or SchemaProbe(db)

    def account_id_for(self, user_id: int) -> str | None:
        users = self.probe.table("users")
        if users is None or "stripe_account_id" not in users.c:
            return None
        account_id = self.db.execute(
            select(users.c.stripe_account_id).where(users.c.id == user_id).limit(1)
        ).scalar()
        return account_id or None

    def _fetch(self, account_id: str) -> ConnectivitySnapshot:
        flags = self.client.retrieve_account(account_id)
        return ConnectivitySnapshot(
            account_id=account_id,
            details_submitted=bool(flags.get("details_submitted")),
            charges_enabled=bool(flags.get("charges_enabled")),
            payouts_enabled=bool(flags.get("payouts_enabled")),
            updated_at=datetime.now(timezone.utc),
        )

    def sync_for_user(self, user_id: int) -> ConnectivitySnapshot:
        """
        Refresh flags from Stripe and persist them.

        Raises:
            NoExternalAccountError: no stripe_account_id for this user
            PaymentProviderError: Stripe call failed (nothing is written)
        """
        account_id = self.account_id_for(user_id)
        if not account_id:
            raise NoExternalAccountError(user_id)

        snapshot = self._fetch(account_id)
        self._upsert(user_id, snapshot)
        self._mirror_to_profile(user_id, snapshot.charges_enabled)
        logger.info(
            "Stripe sync user_id=%s account=%s charges=%s details=%s payouts=%s",
            user_id, account_id, snapshot.charges_enabled,
            snapshot.details_submitted, snapshot.payouts_enabled,
        )
        return snapshot

    def status_for_user(self, user_id: int) -> dict:
        """
        Status view: no provider call when there is no account on file.

        The fresh flags are persisted on the way, but a failed write is only
        logged; the caller still gets the flags Stripe returned.
        """
        account_id = self.account_id_for(user_id)
        if not account_id:
            return {"has_account": False}
        snapshot = self._fetch(account_id)
        try:
            self._upsert(user_id, snapshot)
        except Exception:
            logger.warning("Stripe status persist failed for user_id=%s", user_id, exc_info=True)
        else:
            self._mirror_to_profile(user_id, snapshot.charges_enabled)
        return {
            "has_account": True,
            "charges_enabled": snapshot.charges_enabled,
            "payouts_enabled": snapshot.payouts_enabled,
            "details_submitted": snapshot.details_submitted,
        }

    def _upsert(self, user_id: int, snapshot: ConnectivitySnapshot) -> None:
        dialect = self.db.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        values = {
            "user_id": user_id,
            "account_id": snapshot.account_id,
            "details_submitted": snapshot.details_submitted,
            "charges_enabled": snapshot.charges_enabled,
            "payouts_enabled": snapshot.payouts_enabled,
            "updated_at": snapshot.updated_at,
        }
        stmt = insert_fn(PaymentConnectivityModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PaymentConnectivityModel.user_id],
            set_={k: v for k, v in values.items() if k != "user_id"},
        )
        try:
            self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _mirror_to_profile(self, user_id: int, charges_enabled: bool) -> None:
        try:
            profiles = self.probe.table("creator_profiles")
            if profiles is None or "stripe_charges_enabled" not in profiles.c:
                logger.debug("Profile mirror column absent, skipping for user_id=%s", user_id)
                return
            values = {"stripe_charges_enabled": charges_enabled}
            if "updated_at" in profiles.c:
                values["updated_at"] = datetime.now(timezone.utc)
            self.db.execute(update(profiles).where(profiles.c.user_id == user_id).values(**values))
            self.db.commit()
        except Exception:
            logger.warning("Profile mirror failed for user_id=%s", user_id, exc_info=True)
            self.db.rollback()


def sync_payment_connectivity(db: Session, user_id: int, client: StripeClient | None = None) -> ConnectivitySnapshot:
    return PaymentConnectivitySync(db, client).sync_for_user(user_id)
