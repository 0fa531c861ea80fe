import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.models.inventory import Product
from possync.services.entity_reconciler import db_error_message, verify_references
from possync.services.entity_registry import ENTITY_SCHEMAS, LOCAL_ID_FIELD
from possync.services.sync_errors import MalformedRecord, PersistenceError, SyncError

logger = logging.getLogger(__name__)


@dataclass
class FullReplaceResult:
    count: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)


def _product_values(raw: Any, business_id: int, now: datetime, min_stock: int) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedRecord("Product must be an object")
    values = ENTITY_SCHEMAS["products"].project({k: v for k, v in raw.items() if k != LOCAL_ID_FIELD})

    # Client ids are authoritative on this path.
    if raw.get(LOCAL_ID_FIELD) not in (None, ""):
        try:
            values["id"] = int(raw[LOCAL_ID_FIELD])
        except (TypeError, ValueError) as exc:
            raise MalformedRecord(f"Invalid product id: {raw[LOCAL_ID_FIELD]!r}") from exc

    defaults = {
        "cost": Decimal("0"),
        "stock": 0,
        "min_stock": min_stock,
        "active": True,
        "type": "unit",
        "updated_at": now,
    }
    for column, default in defaults.items():
        if values.get(column) is None:
            values[column] = default
    values["business_id"] = business_id
    return values


def _realign_id_sequence(db: Session) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(
            text(
                "SELECT setval(pg_get_serial_sequence('products', 'id'), "
                "COALESCE((SELECT MAX(id) FROM products), 1))"
            )
        )


def _client_id(raw: Any) -> int | None:
    if not isinstance(raw, dict) or raw.get(LOCAL_ID_FIELD) in (None, ""):
        return None
    try:
        return int(raw[LOCAL_ID_FIELD])
    except (TypeError, ValueError):
        return None


def _delete_products(db: Session, business_id: int, condition) -> int:
    return db.execute(
        delete(Product)
        .where(Product.business_id == business_id, condition)
        .execution_options(synchronize_session="fetch")
    ).rowcount


def replace_product_catalog(
    db: Session,
    business_id: int,
    products: list[Any],
    *,
    default_min_stock: int | None = None,
) -> FullReplaceResult:
    """
    Replace every product of ``business_id`` with ``products``.

    Products whose id is already in the tenant's catalog are overwritten in
    place, so sale items and stock movements keep pointing at them. The rest
    are inserted, and every product missing from ``products`` is deleted.
    Each write runs in its own savepoint: a bad product is recorded and
    skipped instead of aborting the resync. Everything commits together.
    """
    min_stock = settings.full_sync_default_min_stock if default_min_stock is None else default_min_stock
    now = datetime.utcnow()
    result = FullReplaceResult()
    schema = ENTITY_SCHEMAS["products"]

    try:
        existing = set(db.scalars(select(Product.id).where(Product.business_id == business_id)))
        kept = existing & {_client_id(raw) for raw in products}
        result.deleted = _delete_products(db, business_id, Product.id.not_in(kept))
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Could not clear product catalog: {db_error_message(exc)}") from exc

    written: set[int] = set()
    for position, raw in enumerate(products, start=1):
        try:
            values = _product_values(raw, business_id, now, min_stock)
            verify_references(db, business_id, schema, values)
            if values.get("created_at") is None:
                values.pop("created_at", None)
            with db.begin_nested():
                product_id = values.get("id")
                if product_id in kept:
                    db.execute(
                        update(Product)
                        .where(Product.id == product_id, Product.business_id == business_id)
                        .values(**{k: v for k, v in values.items() if k != "id"})
                    )
                else:
                    product = Product(**{"created_at": now, **values})
                    db.add(product)
                    db.flush()
                    product_id = product.id
        except SyncError as exc:
            result.errors.append(f"Product {position}: {exc}")
        except SQLAlchemyError as exc:
            result.errors.append(f"Product {position}: {db_error_message(exc)}")
        else:
            written.add(product_id)
            result.count += 1

    try:
        # Kept ids whose new version failed must not survive with stale data.
        stale = kept - written
        if stale:
            result.deleted += _delete_products(db, business_id, Product.id.in_(stale))
        _realign_id_sequence(db)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Could not commit product catalog: {db_error_message(exc)}") from exc

    for message in result.errors:
        logger.warning("Full product sync for business %s skipped %s", business_id, message)
    logger.info(
        "Full product sync for business %s: deleted=%s written=%s failed=%s",
        business_id,
        result.deleted,
        result.count,
        len(result.errors),
    )
    return result
