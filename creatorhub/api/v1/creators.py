"""
Creator activation API endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from creatorhub.api.deps import get_db, get_current_user_id
from creatorhub.application.activation import recompute_activation


router = APIRouter(prefix="/api/v1/creators", tags=["creators"])


class ActivationResponse(BaseModel):
    is_active: bool
    profile_complete: bool
    payment_connected: bool
    has_product: bool
    has_published_product: bool
    total_products: int
    payment_source: str | None


@router.post("/me/activation", response_model=ActivationResponse)
def recompute_my_activation(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Recompute and persist the caller's activation flags."""
    return ActivationResponse(**recompute_activation(db, user_id).as_dict())
