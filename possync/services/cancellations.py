import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.models.inventory import Product, StockMovement
from possync.models.sales import Cancellation, CancellationAudit, Refund, Sale, SaleItem

logger = logging.getLogger(__name__)

# SAT (Mexican tax authority) cancellation reasons.
SAT_REASONS = {
    "01": "Comprobante emitido con errores con relación",
    "02": "Comprobante emitido con errores sin relación",
    "03": "No se llevó a cabo la operación",
    "04": "Operación nominativa relacionada en una factura global",
}

REFUND_METHODS = frozenset({"cash", "transfer", "credit"})


class CancellationError(Exception):
    pass


class SaleNotFound(CancellationError):
    pass


class CancellationNotFound(CancellationError):
    pass


class SaleAlreadyCancelled(CancellationError):
    pass


class CancellationPeriodExpired(CancellationError):
    pass


class InvalidReasonCode(CancellationError):
    pass


class InvalidRefundMethod(CancellationError):
    pass


class RefundNotRequired(CancellationError):
    pass


class RefundAlreadyProcessed(CancellationError):
    pass


@dataclass(frozen=True)
class CancellationResult:
    cancellation: Cancellation
    products_reintegrated: int


def _audit(db: Session, cancellation_id: int, action: str, user_id: int | None, **details) -> None:
    db.add(
        CancellationAudit(
            cancellation_id=cancellation_id,
            action=action,
            performed_by=user_id,
            details=json.dumps(details, default=str),
        )
    )


def cancel_sale(
    db: Session,
    business_id: int,
    sale_id: int,
    reason_code: str,
    *,
    user_id: int | None = None,
    observations: str | None = None,
    requires_refund: bool = False,
    refund_method: str | None = None,
    now: datetime | None = None,
) -> CancellationResult:
    """
    Cancel a sale and put its items back into stock.

    The cancellation row, its ``created`` audit entry, the sale flag, the
    stock increments and the ``return`` stock movements commit together.
    """
    if reason_code not in SAT_REASONS:
        raise InvalidReasonCode(f"Invalid SAT reason code: {reason_code}")
    if requires_refund and refund_method is not None and refund_method not in REFUND_METHODS:
        raise InvalidRefundMethod(f"Invalid refund method: {refund_method}")

    sale = db.scalar(
        select(Sale).where(Sale.id == sale_id, Sale.business_id == business_id).with_for_update()
    )
    if not sale:
        raise SaleNotFound("Sale not found")
    if sale.cancelled:
        raise SaleAlreadyCancelled("Sale already cancelled")

    now = now or datetime.utcnow()
    window = timedelta(days=settings.cancellation_window_days)
    if now - sale.created_at > window:
        raise CancellationPeriodExpired(
            f"Cancellation period expired ({settings.cancellation_window_days} days)"
        )

    reason_text = SAT_REASONS[reason_code]
    cancellation = Cancellation(
        business_id=business_id,
        sale_id=sale.id,
        cancelled_by=user_id,
        reason_code=reason_code,
        reason_text=reason_text,
        observations=observations,
        requires_refund=requires_refund,
        refund_method=refund_method if requires_refund else None,
        refund_amount=sale.total if requires_refund else None,
        refund_status="pending" if requires_refund else None,
        cancelled_at=now,
    )
    db.add(cancellation)
    sale.cancelled = True
    sale.cancelled_at = now

    reintegrated = 0
    items = db.scalars(select(SaleItem).where(SaleItem.sale_id == sale.id).order_by(SaleItem.id)).all()
    for item in items:
        if item.product_id is None:
            continue
        result = db.execute(
            update(Product)
            .where(Product.id == item.product_id, Product.business_id == business_id)
            .values(stock=Product.stock + item.quantity, updated_at=now)
        )
        if result.rowcount == 0:
            continue
        db.add(
            StockMovement(
                product_id=item.product_id,
                user_id=user_id,
                type="return",
                quantity=item.quantity,
                reason=f"Cancellation of sale #{sale.id} - {reason_text}",
            )
        )
        reintegrated += 1

    try:
        db.flush()
        _audit(
            db,
            cancellation.id,
            "created",
            user_id,
            reason_code=reason_code,
            requires_refund=requires_refund,
            sale_total=sale.total,
            items_count=len(items),
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise SaleAlreadyCancelled("Sale already cancelled") from exc
    db.refresh(cancellation)

    logger.info(
        "Cancelled sale #%s for business %s (reason %s, %s products reintegrated)",
        sale_id,
        business_id,
        reason_code,
        reintegrated,
    )
    return CancellationResult(cancellation=cancellation, products_reintegrated=reintegrated)


def process_refund(
    db: Session,
    business_id: int,
    cancellation_id: int,
    method: str,
    *,
    user_id: int | None = None,
    reference: str | None = None,
    bank_account: str | None = None,
    notes: str | None = None,
) -> Refund:
    if method not in REFUND_METHODS:
        raise InvalidRefundMethod(f"Invalid refund method: {method}")

    cancellation = db.scalar(
        select(Cancellation)
        .where(Cancellation.id == cancellation_id, Cancellation.business_id == business_id)
        .with_for_update()
    )
    if not cancellation:
        raise CancellationNotFound("Cancellation not found")
    if not cancellation.requires_refund:
        raise RefundNotRequired("This cancellation does not require a refund")
    if cancellation.refund_status == "completed":
        raise RefundAlreadyProcessed("Refund already processed")

    now = datetime.utcnow()
    refund = Refund(
        cancellation_id=cancellation.id,
        amount=cancellation.refund_amount,
        method=method,
        reference=reference,
        bank_account=bank_account,
        notes=notes,
        processed_by=user_id,
        processed_at=now,
    )
    cancellation.refund_status = "completed"
    cancellation.refund_processed_at = now
    cancellation.refund_processed_by = user_id
    db.add(refund)
    _audit(db, cancellation.id, "refund_processed", user_id, method=method, amount=refund.amount)
    db.commit()
    db.refresh(refund)

    logger.info("Processed %s refund of %s for cancellation #%s", method, refund.amount, cancellation_id)
    return refund
