from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from possync.models.inventory import Category, Product
from possync.models.user import User


def load_snapshot(db: Session, business_id: int) -> dict:
    """Full-table reads of the collections a register caches locally."""
    products = db.scalars(select(Product).where(Product.business_id == business_id).order_by(Product.id)).all()
    categories = db.scalars(
        select(Category).where(Category.business_id == business_id).order_by(Category.id)
    ).all()
    users = db.scalars(select(User).where(User.business_id == business_id).order_by(User.id)).all()
    return {
        "products": list(products),
        "categories": list(categories),
        "users": list(users),
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
