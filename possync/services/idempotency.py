from sqlalchemy import select
from sqlalchemy.orm import Session

from possync.models.sales import Sale


def find_existing_sale(db: Session, business_id: int, client_sale_id: str | None) -> int | None:
    """Return the id of a sale already stored under ``client_sale_id`` for this tenant.

    Without a client id there is nothing to dedupe against and the caller must
    apply the sale; legacy registers accept the double-count risk.
    """
    if client_sale_id is None or not str(client_sale_id).strip():
        return None
    return db.scalar(
        select(Sale.id).where(
            Sale.business_id == business_id,
            Sale.client_sale_id == str(client_sale_id).strip(),
        )
    )
