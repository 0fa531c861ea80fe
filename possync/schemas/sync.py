from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Operation = Literal["CREATE", "UPDATE", "DELETE"]


class ChangeEntryIn(BaseModel):
    """Wire shape of one batch entry, before payload decoding."""

    model_config = ConfigDict(extra="ignore")

    entity_name: str = Field(
        min_length=1,
        validation_alias=AliasChoices("entityName", "entity_name", "table_name"),
    )
    operation: str = Field(min_length=1)
    payload: dict[str, Any] | str | None = Field(
        default=None,
        validation_alias=AliasChoices("payload", "data"),
    )


class SaleItemIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product_id: int = Field(validation_alias=AliasChoices("product_id", "productId"))
    product_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("product_name", "productName", "name"),
    )
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(validation_alias=AliasChoices("unit_price", "unitPrice", "price"))
    subtotal: Decimal | None = None


class SyncPushRequest(BaseModel):
    changes: list[Any]


class FailedChangeOut(BaseModel):
    operation: Any
    error: str


class AppliedChangeOut(BaseModel):
    index: int
    entity_name: str
    operation: Operation
    id: int | None
    duplicate: bool = False
    items_count: int | None = None


class BatchResultOut(BaseModel):
    success: int
    failed: int
    errors: list[FailedChangeOut]
    applied: list[AppliedChangeOut]


class SyncPushResponse(BaseModel):
    message: str
    results: BatchResultOut


class ProductOut(BaseModel):
    id: int
    business_id: int
    name: str
    barcode: str | None
    price: Decimal
    cost: Decimal
    stock: int
    min_stock: int
    category_id: int | None
    type: str
    provider: str | None
    image: str | None
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CategoryOut(BaseModel):
    id: int
    business_id: int
    name: str
    description: str | None
    color: str | None
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserOut(BaseModel):
    id: int
    business_id: int
    name: str
    email: str | None
    role: str
    active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SyncPullResponse(BaseModel):
    products: list[ProductOut]
    categories: list[CategoryOut]
    users: list[UserOut]
    timestamp: str


class FullProductSyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    business_id: int = Field(alias="businessId")
    products: list[dict[str, Any]]


class FullProductSyncResponse(BaseModel):
    success: bool
    message: str
    count: int
    errors: list[str] = []
