import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from possync.models.inventory import Product, StockMovement
from possync.models.sales import Sale, SaleItem
from possync.schemas.sync import SaleItemIn
from possync.services.change_records import ChangeRecord
from possync.services.entity_reconciler import db_error_message, verify_references
from possync.services.entity_registry import (
    ENTITY_SCHEMAS,
    LOCAL_ID_FIELD,
    normalize_payment_method,
)
from possync.services.idempotency import find_existing_sale
from possync.services.sync_errors import MalformedRecord, PersistenceError, ReferentialError

logger = logging.getLogger(__name__)

CLIENT_ONLY_FIELDS = frozenset(
    {
        "cash_received",
        "cashReceived",
        "cash_change",
        "cashChange",
        "payment_reference",
        "paymentReference",
    }
)


@dataclass(frozen=True)
class SaleOutcome:
    sale_id: int
    items_count: int
    duplicate: bool = False


def client_sale_id_of(payload: dict[str, Any]) -> str | None:
    value = payload.get("client_sale_id", payload.get("clientSaleId"))
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def build_sale_header(payload: dict[str, Any]) -> dict[str, Any]:
    """Project a client sale header onto ``sales`` columns.

    ``total`` is kept exactly as sent; it is never recomputed from the items.
    """
    header = {
        key: value
        for key, value in payload.items()
        if key not in CLIENT_ONLY_FIELDS and key not in {"items", LOCAL_ID_FIELD}
    }
    values = ENTITY_SCHEMAS["sales"].project(header)
    values["payment_method"] = normalize_payment_method(values.get("payment_method"))
    if values.get("client_sale_id") is not None:
        values["client_sale_id"] = values["client_sale_id"].strip()

    total = values.get("total")
    if total is None:
        raise MalformedRecord("Sale total is required")
    if total < 0:
        raise MalformedRecord("Sale total must not be negative")
    return values


def _parse_items(raw_items: list[Any]) -> list[SaleItemIn]:
    items: list[SaleItemIn] = []
    for position, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise MalformedRecord(f"Sale item {position} must be an object")
        try:
            items.append(SaleItemIn.model_validate(raw))
        except ValidationError as exc:
            fields = ", ".join(sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]}))
            raise MalformedRecord(f"Invalid sale item {position}: {fields or 'item'}") from exc
    return items


def _duplicate_outcome(db: Session, sale_id: int) -> SaleOutcome:
    items_count = db.scalar(select(func.count(SaleItem.id)).where(SaleItem.sale_id == sale_id)) or 0
    return SaleOutcome(sale_id=sale_id, items_count=int(items_count), duplicate=True)


def _insert_header(db: Session, business_id: int, values: dict[str, Any]) -> Sale | int:
    """Insert the sale header; return the existing sale id if a concurrent retry won the race."""
    sale = Sale(business_id=business_id, **values)
    try:
        with db.begin_nested():
            db.add(sale)
            db.flush()
    except IntegrityError as exc:
        existing = find_existing_sale(db, business_id, values.get("client_sale_id"))
        if existing is not None:
            return existing
        raise PersistenceError(f"Could not create sale: {db_error_message(exc)}") from exc
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Could not create sale: {db_error_message(exc)}") from exc
    return sale


def _apply_item(db: Session, business_id: int, sale: Sale, position: int, item: SaleItemIn) -> None:
    product_name = db.scalar(
        select(Product.name).where(Product.id == item.product_id, Product.business_id == business_id)
    )
    if product_name is None:
        raise ReferentialError(f"Sale item {position} references unknown product {item.product_id}")

    subtotal = item.subtotal if item.subtotal is not None else item.unit_price * Decimal(item.quantity)
    db.add(
        SaleItem(
            sale_id=sale.id,
            product_id=item.product_id,
            product_name=item.product_name or product_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=subtotal,
        )
    )
    # Blind decrement: stock is allowed to go negative.
    db.execute(
        update(Product)
        .where(Product.id == item.product_id, Product.business_id == business_id)
        .values(stock=Product.stock - item.quantity, updated_at=datetime.utcnow())
    )
    db.add(
        StockMovement(
            product_id=item.product_id,
            user_id=sale.user_id,
            type="sale",
            quantity=item.quantity,
            reason=f"Sale #{sale.id}",
        )
    )
    db.flush()


def reconcile_sale(
    db: Session,
    business_id: int,
    record: ChangeRecord,
    *,
    user_id: int | None = None,
) -> SaleOutcome:
    """Apply a sale with embedded line items.

    Header, items, stock decrements and stock movements are flushed into the
    caller's transaction; the batch commits or rolls back the whole sale as
    one unit.
    """
    payload = record.payload
    client_sale_id = client_sale_id_of(payload)

    existing = find_existing_sale(db, business_id, client_sale_id)
    if existing is not None:
        logger.info("Duplicate sale %s for business %s (sale #%s)", client_sale_id, business_id, existing)
        return _duplicate_outcome(db, existing)

    values = build_sale_header(payload)
    if values.get("user_id") is None and user_id is not None:
        values["user_id"] = user_id
    verify_references(db, business_id, ENTITY_SCHEMAS["sales"], values)
    items = _parse_items(payload["items"])

    inserted = _insert_header(db, business_id, values)
    if isinstance(inserted, int):
        logger.info("Duplicate sale %s for business %s lost insert race (sale #%s)", client_sale_id, business_id, inserted)
        return _duplicate_outcome(db, inserted)
    sale = inserted

    for position, item in enumerate(items, start=1):
        try:
            _apply_item(db, business_id, sale, position, item)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not apply sale item {position}: {db_error_message(exc)}") from exc

    logger.info(
        "Created sale #%s for business %s: total=%s payment=%s items=%s",
        sale.id,
        business_id,
        sale.total,
        sale.payment_method,
        len(items),
    )
    return SaleOutcome(sale_id=sale.id, items_count=len(items))
