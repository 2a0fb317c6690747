"""
Stripe Connect API endpoints (capability sync)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from creatorhub.api.deps import get_db, get_current_user_id
from creatorhub.application.activation import recompute_activation
from creatorhub.application.payment_connectivity import NoExternalAccountError, PaymentConnectivitySync
from creatorhub.infrastructure.payments.stripe_client import PaymentProviderError


router = APIRouter(prefix="/api/v1/stripe-connect", tags=["stripe-connect"])
logger = logging.getLogger(__name__)


@router.post("/sync")
def sync(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Pull flags from Stripe, store them, then recompute activation."""
    try:
        snapshot = PaymentConnectivitySync(db).sync_for_user(user_id)
    except NoExternalAccountError:
        raise HTTPException(status_code=400, detail="No Stripe account on file")
    except PaymentProviderError as e:
        logger.warning("Stripe sync failed for user_id=%s: %s", user_id, e)
        raise HTTPException(status_code=502, detail="Payment provider unavailable")

    activation = recompute_activation(db, user_id)
    return {
        "synced": True,
        **snapshot.as_dict(),
        "activation": activation.as_dict(),
    }


@router.get("/status")
def status(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return PaymentConnectivitySync(db).status_for_user(user_id)
    except PaymentProviderError as e:
        logger.warning("Stripe status failed for user_id=%s: %s", user_id, e)
        raise HTTPException(status_code=502, detail="Payment provider unavailable")
