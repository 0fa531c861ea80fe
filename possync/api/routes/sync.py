import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from possync.api.deps import get_acting_user, get_current_business, get_notifier
from possync.core.config import settings
from possync.db.database import get_db
from possync.models.business import Business
from possync.models.user import User
from possync.schemas.sync import (
    FullProductSyncRequest,
    FullProductSyncResponse,
    SyncPullResponse,
    SyncPushRequest,
    SyncPushResponse,
)
from possync.services.batch import apply_batch
from possync.services.full_replace import replace_product_catalog
from possync.services.notifications import NotificationHub
from possync.services.snapshot import load_snapshot
from possync.services.sync_errors import PersistenceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/push", response_model=SyncPushResponse)
def push_changes(
    payload: SyncPushRequest,
    business: Business = Depends(get_current_business),
    acting_user: User | None = Depends(get_acting_user),
    notifier: NotificationHub = Depends(get_notifier),
    db: Session = Depends(get_db),
):
    if len(payload.changes) > settings.sync_max_batch_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Batch exceeds the maximum of {settings.sync_max_batch_size} changes",
        )
    business_id = business.id
    user_id = acting_user.id if acting_user else None
    result = apply_batch(db, business_id, payload.changes, user_id=user_id, notifier=notifier)
    return {"message": "Sync processed", "results": result.as_dict()}


@router.get("/pull", response_model=SyncPullResponse)
def pull_changes(
    business: Business = Depends(get_current_business),
    db: Session = Depends(get_db),
):
    return load_snapshot(db, business.id)


@router.post("/products/full", response_model=FullProductSyncResponse)
def full_product_sync(
    payload: FullProductSyncRequest,
    notifier: NotificationHub = Depends(get_notifier),
    db: Session = Depends(get_db),
):
    business = db.get(Business, payload.business_id)
    if not business:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found")
    if not business.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Business is not active")

    business_id = business.id
    try:
        result = replace_product_catalog(db, business_id, payload.products)
    except PersistenceError as exc:
        logger.error("Full product sync failed for business %s: %s", business_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync products",
        ) from exc

    notifier.publish(business_id, "products:resynced", {"count": result.count})
    return {
        "success": True,
        "message": f"{result.count} products synchronized",
        "count": result.count,
        "errors": result.errors,
    }
