"""
Per-entity field allowlists for sync reconciliation.

Clients push rows straight out of their local database, so payload keys are a
mix of snake_case, camelCase and a few legacy names. Every payload passes
through ``EntitySchema.project`` before it reaches the store: unknown keys are
dropped, aliases are renamed to server columns and values are coerced to the
column's type. ``business_id`` is never client-writable.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String

from possync.db.database import Base
from possync.models.inventory import Category, Product
from possync.models.sales import CashSession, Sale
from possync.models.user import User
from possync.services.sync_errors import MalformedRecord, PersistenceError

PAYMENT_METHOD_MAP = {
    "efectivo": "cash",
    "tarjeta": "card",
    "transferencia": "transfer",
    "otro": "other",
}
SERVER_PAYMENT_METHODS = frozenset({"cash", "card", "transfer", "other"})
DEFAULT_PAYMENT_METHOD = "cash"

LOCAL_ID_FIELD = "id"


def normalize_payment_method(value: Any) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_PAYMENT_METHOD
    key = str(value).strip().lower()
    mapped = PAYMENT_METHOD_MAP.get(key, key)
    return mapped if mapped in SERVER_PAYMENT_METHODS else "other"


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # JS clients send epoch milliseconds.
        seconds = value / 1000 if value > 1e11 else value
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"unsupported datetime value: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class EntitySchema:
    name: str
    model: type[Base]
    event_prefix: str
    fields: frozenset[str]
    aliases: Mapping[str, str] = field(default_factory=dict)
    normalizers: Mapping[str, Callable[[Any], Any]] = field(default_factory=dict)
    # Foreign key columns and the tenant-owned model each one points at.
    references: Mapping[str, type[Base]] = field(default_factory=dict)

    def column_for(self, key: str) -> str | None:
        if key in self.fields:
            return key
        column = self.aliases.get(key)
        if column is None:
            column = next((f for f in self.fields if _camel(f) == key), None)
        return column

    def has_column(self, column: str) -> bool:
        return column in self.model.__table__.columns

    def coerce(self, column: str, value: Any) -> Any:
        normalizer = self.normalizers.get(column)
        if normalizer is not None:
            return normalizer(value)
        if value is None:
            return None
        column_type = self.model.__table__.columns[column].type
        try:
            if isinstance(column_type, DateTime):
                return parse_datetime(value)
            if isinstance(column_type, Boolean):
                return _parse_bool(value)
            if isinstance(column_type, Numeric):
                return Decimal(str(value))
            if isinstance(column_type, Integer):
                if isinstance(value, (float, Decimal)) and value != int(value):
                    raise ValueError("not an integer")
                return int(value)
            if isinstance(column_type, String) and not isinstance(value, str):
                return str(value)
        except (ValueError, TypeError, OverflowError, InvalidOperation) as exc:
            raise MalformedRecord(f"Invalid value for {self.name}.{column}: {value!r}") from exc
        return value

    def project(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for key, value in payload.items():
            column = self.column_for(key)
            if column is None:
                continue
            values[column] = self.coerce(column, value)
        return values


ENTITY_SCHEMAS: dict[str, EntitySchema] = {
    "products": EntitySchema(
        name="products",
        model=Product,
        event_prefix="product",
        fields=frozenset(
            {
                "name",
                "barcode",
                "price",
                "cost",
                "stock",
                "min_stock",
                "category_id",
                "type",
                "provider",
                "image",
                "active",
                "created_at",
                "updated_at",
            }
        ),
        aliases={"is_active": "active", "isActive": "active", "date": "created_at"},
        references={"category_id": Category},
    ),
    "categories": EntitySchema(
        name="categories",
        model=Category,
        event_prefix="category",
        fields=frozenset({"name", "description", "color", "active", "created_at", "updated_at"}),
        aliases={"is_active": "active", "isActive": "active"},
    ),
    "users": EntitySchema(
        name="users",
        model=User,
        event_prefix="user",
        fields=frozenset({"name", "email", "role", "pin", "active", "created_at"}),
        aliases={"is_active": "active", "isActive": "active"},
    ),
    "sales": EntitySchema(
        name="sales",
        model=Sale,
        event_prefix="sale",
        fields=frozenset(
            {
                "user_id",
                "client_sale_id",
                "total",
                "payment_method",
                "status",
                "cancelled",
                "cancelled_at",
                "created_at",
            }
        ),
        aliases={"payment_type": "payment_method", "date": "created_at"},
        normalizers={"payment_method": normalize_payment_method},
        references={"user_id": User},
    ),
    "cash_sessions": EntitySchema(
        name="cash_sessions",
        model=CashSession,
        event_prefix="cash",
        fields=frozenset(
            {
                "user_id",
                "opening_amount",
                "closing_amount",
                "expected_amount",
                "difference",
                "notes",
                "status",
                "opened_at",
                "closed_at",
            }
        ),
        references={"user_id": User},
    ),
}


def get_entity_schema(entity_name: str) -> EntitySchema:
    schema = ENTITY_SCHEMAS.get(entity_name)
    if schema is None:
        raise PersistenceError(f"Unknown collection: {entity_name}")
    return schema
