from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from possync.api.deps import get_acting_user, get_current_business, get_notifier
from possync.db.database import get_db
from possync.models.business import Business
from possync.models.user import User
from possync.schemas.cancellations import (
    CancellationCreateRequest,
    CancellationOut,
    RefundCreateRequest,
    RefundOut,
)
from possync.services.cancellations import (
    CancellationError,
    CancellationNotFound,
    RefundAlreadyProcessed,
    SaleNotFound,
    cancel_sale,
    process_refund,
)
from possync.services.notifications import NotificationHub

router = APIRouter(prefix="/cancellations", tags=["Cancellations"])


def _as_http_error(exc: CancellationError) -> HTTPException:
    if isinstance(exc, (SaleNotFound, CancellationNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RefundAlreadyProcessed):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("", response_model=CancellationOut, status_code=status.HTTP_201_CREATED)
def create_cancellation(
    payload: CancellationCreateRequest,
    business: Business = Depends(get_current_business),
    acting_user: User | None = Depends(get_acting_user),
    notifier: NotificationHub = Depends(get_notifier),
    db: Session = Depends(get_db),
):
    business_id = business.id
    try:
        result = cancel_sale(
            db,
            business_id,
            payload.sale_id,
            payload.reason_code,
            user_id=acting_user.id if acting_user else None,
            observations=payload.observations,
            requires_refund=payload.requires_refund,
            refund_method=payload.refund_method,
        )
    except CancellationError as exc:
        raise _as_http_error(exc) from exc

    cancellation = result.cancellation
    notifier.publish(business_id, "sale:cancelled", {"id": cancellation.sale_id})
    return CancellationOut(
        id=cancellation.id,
        sale_id=cancellation.sale_id,
        reason_code=cancellation.reason_code,
        reason_text=cancellation.reason_text,
        requires_refund=cancellation.requires_refund,
        refund_amount=cancellation.refund_amount,
        refund_status=cancellation.refund_status,
        cancelled_at=cancellation.cancelled_at,
        products_reintegrated=result.products_reintegrated,
    )


@router.post("/{cancellation_id}/refund", response_model=RefundOut)
def create_refund(
    cancellation_id: int,
    payload: RefundCreateRequest,
    business: Business = Depends(get_current_business),
    acting_user: User | None = Depends(get_acting_user),
    db: Session = Depends(get_db),
):
    try:
        return process_refund(
            db,
            business.id,
            cancellation_id,
            payload.method,
            user_id=acting_user.id if acting_user else None,
            reference=payload.reference,
            bank_account=payload.bank_account,
            notes=payload.notes,
        )
    except CancellationError as exc:
        raise _as_http_error(exc) from exc
