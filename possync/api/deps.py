from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from possync.db.database import get_db
from possync.models.business import Business
from possync.models.user import User
from possync.services.notifications import NotificationHub


def get_current_business(
    x_business_id: int = Header(..., alias="X-Business-Id"),
    db: Session = Depends(get_db),
) -> Business:
    business = db.get(Business, x_business_id)
    if not business:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found")
    if not business.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Business is not active")
    return business


def get_acting_user(
    x_user_id: int | None = Header(default=None, alias="X-User-Id"),
    business: Business = Depends(get_current_business),
    db: Session = Depends(get_db),
) -> User | None:
    if x_user_id is None:
        return None
    user = db.scalar(select(User).where(User.id == x_user_id, User.business_id == business.id))
    if not user:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User does not belong to this business")
    if not user.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not active")
    return user


def get_notifier(request: Request) -> NotificationHub:
    return request.app.state.notifier
