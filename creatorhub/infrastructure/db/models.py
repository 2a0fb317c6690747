"""
SQLAlchemy ORM models

The engine reads several of these tables through runtime reflection as well
(see application/schema_probe.py), because older deployments may lack some of
the optional columns declared here.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    String, DateTime, Integer, Text, TIMESTAMP, func, Boolean,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from creatorhub.infrastructure.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, server_default="user", default="user")

    # Stripe Connect account (created by the onboarding flow, not by this engine)
    stripe_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Legacy connectivity flags, kept for old readers
    stripe_connected: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=False)
    stripe_charges_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=False)
    stripe_details_submitted: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=False)

    # Email notification toggles
    notify_post: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    notify_membership_expiring: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    notify_purchase: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    notify_request_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    notify_new_request: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    notify_product_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CreatorProfile(Base):
    """Creator storefront profile; carries the derived activation flags."""
    __tablename__ = "creator_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_image: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_profile_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)

    # Mirror of stripe_connect.charges_enabled (best-effort)
    stripe_charges_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)

    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CreatorProfilePhoto(Base):
    __tablename__ = "creator_profile_photos"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)


class ProductModel(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    # purchase | membership | request
    product_type: Mapped[str] = mapped_column(String(32), nullable=False, server_default="purchase", default="purchase")
    # "published" flag
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=_utcnow, nullable=False
    )


class PaymentConnectivityModel(Base):
    """Canonical local mirror of the Stripe Connect account flags (one per user)."""
    __tablename__ = "stripe_connect"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    details_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    charges_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), default=_utcnow, nullable=False
    )


class MembershipModel(Base):
    """Buyer ↔ creator ↔ product subscription, written by the checkout/webhook layer."""
    __tablename__ = "memberships"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    buyer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    creator_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # active | trialing | past_due | canceled | ...
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    current_period_end: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class OrderModel(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    buyer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, server_default="paid", default="paid")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=_utcnow, nullable=False
    )


class CustomRequestModel(Base):
    __tablename__ = "custom_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    buyer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    creator_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, server_default="pending", default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=_utcnow, nullable=False
    )


class NotificationModel(Base):
    """
    In-app notification (the website bell).

    read_at is set once and never cleared. dedup_key, when present, makes the
    insert itself the "already notified" claim via uq_notifications_dedup.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    dedup_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), default=_utcnow, nullable=False
    )
    read_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "type", "dedup_key", name="uq_notifications_dedup"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_type_created", "user_id", "type", "created_at"),
    )


class EmailDeliveryAttempt(Base):
    """Durable record of one outbound email (email_queue)."""
    __tablename__ = "email_queue"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    to_email: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    template: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    # pending | sent | failed
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending", default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), default=_utcnow, nullable=False
    )
    sent_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
