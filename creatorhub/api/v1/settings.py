"""
Notification settings API endpoints (email toggles)
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from creatorhub.api.deps import get_db, get_current_user_id
from creatorhub.application.notification_preferences import NotificationPreferences


router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


class NotificationSettings(BaseModel):
    notify_post: bool | None = None
    notify_membership_expiring: bool | None = None
    notify_purchase: bool | None = None
    notify_request_completed: bool | None = None
    notify_new_request: bool | None = None
    notify_product_sale: bool | None = None


@router.get("/notifications", response_model=NotificationSettings)
def get_notification_settings(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    prefs = NotificationPreferences(db).get(user_id)
    if prefs is None:
        raise HTTPException(status_code=404, detail="User not found")
    return NotificationSettings(**prefs)


@router.put("/notifications", response_model=NotificationSettings)
def update_notification_settings(
    req: NotificationSettings,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Partial update: only the toggles present in the body change."""
    changes = req.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    prefs = NotificationPreferences(db).update(user_id, changes)
    if prefs is None:
        raise HTTPException(status_code=404, detail="User not found")
    return NotificationSettings(**prefs)
