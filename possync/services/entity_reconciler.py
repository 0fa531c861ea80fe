from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from possync.services.change_records import ChangeRecord
from possync.services.entity_registry import LOCAL_ID_FIELD, EntitySchema, get_entity_schema
from possync.services.sync_errors import MalformedRecord, PersistenceError, ReferentialError

_EVENT_SUFFIX = {"CREATE": "created", "UPDATE": "updated", "DELETE": "deleted"}


@dataclass(frozen=True)
class EntityOutcome:
    entity_name: str
    operation: str
    id: int
    event: str


def db_error_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def require_record_id(record: ChangeRecord) -> int:
    raw = record.payload.get(LOCAL_ID_FIELD)
    if raw is None or raw == "":
        raise MalformedRecord(f"{record.operation} on {record.entity_name} requires an id")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedRecord(f"Invalid id for {record.entity_name}: {raw!r}") from exc


def _without_id(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if key != LOCAL_ID_FIELD}


def verify_references(db: Session, business_id: int, schema: EntitySchema, values: dict[str, Any]) -> None:
    """Reject foreign keys that point at a missing row or at another tenant's row."""
    for column, target in schema.references.items():
        value = values.get(column)
        if value is None:
            continue
        owned = db.scalar(select(target.id).where(target.id == value, target.business_id == business_id))
        if owned is None:
            raise ReferentialError(f"{schema.name}.{column} references unknown {target.__tablename__} {value}")


def _create(db: Session, business_id: int, schema: EntitySchema, record: ChangeRecord) -> int:
    values = schema.project(_without_id(record.payload))
    verify_references(db, business_id, schema, values)
    values["business_id"] = business_id
    row = schema.model(**values)
    db.add(row)
    try:
        db.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Could not create {schema.name} row: {db_error_message(exc)}") from exc
    return row.id


def _update(db: Session, business_id: int, schema: EntitySchema, record: ChangeRecord) -> int:
    record_id = require_record_id(record)
    model = schema.model
    values = schema.project(_without_id(record.payload))
    verify_references(db, business_id, schema, values)
    if schema.has_column("updated_at") and "updated_at" not in values:
        values["updated_at"] = datetime.utcnow()

    try:
        if not values:
            matched = db.scalar(select(model.id).where(model.id == record_id, model.business_id == business_id))
            rowcount = 0 if matched is None else 1
        else:
            result = db.execute(
                update(model)
                .where(model.id == record_id, model.business_id == business_id)
                .values(**values)
            )
            rowcount = result.rowcount
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Could not update {schema.name} {record_id}: {db_error_message(exc)}") from exc

    if rowcount == 0:
        raise PersistenceError(f"{schema.name} {record_id} not found")
    return record_id


def _delete(db: Session, business_id: int, schema: EntitySchema, record: ChangeRecord) -> int:
    record_id = require_record_id(record)
    model = schema.model
    try:
        db.execute(delete(model).where(model.id == record_id, model.business_id == business_id))
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Could not delete {schema.name} {record_id}: {db_error_message(exc)}") from exc
    return record_id


_HANDLERS = {"CREATE": _create, "UPDATE": _update, "DELETE": _delete}


def reconcile_entity(db: Session, business_id: int, record: ChangeRecord) -> EntityOutcome:
    """Apply one generic change to the tenant's rows.

    Writes are flushed but not committed; the batch owns the transaction.
    DELETE of a row that no longer exists succeeds.
    """
    schema = get_entity_schema(record.entity_name)
    record_id = _HANDLERS[record.operation](db, business_id, schema, record)
    return EntityOutcome(
        entity_name=schema.name,
        operation=record.operation,
        id=record_id,
        event=f"{schema.event_prefix}:{_EVENT_SUFFIX[record.operation]}",
    )
