from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class CancellationCreateRequest(BaseModel):
    sale_id: int
    reason_code: str = Field(min_length=2, max_length=2)
    observations: str | None = None
    requires_refund: bool = False
    refund_method: str | None = Field(default=None, max_length=16)


class CancellationOut(BaseModel):
    id: int
    sale_id: int
    reason_code: str
    reason_text: str
    requires_refund: bool
    refund_amount: Decimal | None
    refund_status: str | None
    cancelled_at: datetime
    products_reintegrated: int


class RefundCreateRequest(BaseModel):
    method: str = Field(min_length=1, max_length=16)
    reference: str | None = Field(default=None, max_length=120)
    bank_account: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=255)


class RefundOut(BaseModel):
    id: int
    cancellation_id: int
    amount: Decimal
    method: str
    processed_at: datetime

    model_config = {"from_attributes": True}
