"""
In-app notification API endpoints (the website bell)
"""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from creatorhub.api.deps import get_db, get_current_user_id
from creatorhub.application.notification_store import NotificationStore
from creatorhub.infrastructure.db.models import NotificationModel


router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])

# The store allows 200; the HTTP surface is stricter
HTTP_MAX_LIMIT = 100


# === Request/Response models ===

class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    body: str | None
    metadata: dict | None
    created_at: datetime
    read_at: datetime | None


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread: int


class UnreadCountResponse(BaseModel):
    unread: int


class MarkReadResponse(BaseModel):
    success: bool
    id: int
    read_at: datetime | None


class MarkAllReadResponse(BaseModel):
    success: bool
    updated: int


def _to_response(n: NotificationModel) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        type=n.type,
        title=n.title,
        body=n.body,
        metadata=n.meta,
        created_at=n.created_at,
        read_at=n.read_at,
    )


# === Endpoints ===

@router.get("", response_model=NotificationListResponse)
def list_notifications(
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Newest first, with the current unread count for the badge."""
    store = NotificationStore(db)
    rows = store.list(
        user_id,
        unread_only=unread_only,
        limit=max(1, min(limit, HTTP_MAX_LIMIT)),
        offset=offset,
    )
    return NotificationListResponse(
        notifications=[_to_response(n) for n in rows],
        unread=store.unread_count(user_id),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return UnreadCountResponse(unread=NotificationStore(db).unread_count(user_id))


@router.post("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    updated = NotificationStore(db).mark_all_read(user_id)
    return MarkAllReadResponse(success=True, updated=updated)


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
def mark_read(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """404 when the notification is not the caller's or was already read."""
    store = NotificationStore(db)
    if store.mark_read(user_id, [notification_id]) == 0:
        raise HTTPException(status_code=404, detail="Not found or already read")
    n = store.get(user_id, notification_id)
    return MarkReadResponse(success=True, id=notification_id, read_at=n.read_at if n else None)
