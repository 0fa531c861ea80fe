import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from possync.services.change_records import ChangeRecord, parse_change_record
from possync.services.entity_reconciler import reconcile_entity
from possync.services.notifications import NotificationHub
from possync.services.sale_reconciler import reconcile_sale
from possync.services.sync_errors import SyncError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedChange:
    index: int
    entity_name: str
    operation: str
    id: int | None
    duplicate: bool = False
    items_count: int | None = None


@dataclass
class BatchResult:
    success: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    applied: list[AppliedChange] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
            "applied": [asdict(change) for change in self.applied],
        }


def _dispatch(
    db: Session,
    business_id: int,
    record: ChangeRecord,
    index: int,
    user_id: int | None,
) -> tuple[AppliedChange, str | None, dict[str, Any]]:
    if record.is_sale_with_items:
        outcome = reconcile_sale(db, business_id, record, user_id=user_id)
        applied = AppliedChange(
            index=index,
            entity_name=record.entity_name,
            operation=record.operation,
            id=outcome.sale_id,
            duplicate=outcome.duplicate,
            items_count=outcome.items_count,
        )
        if outcome.duplicate:
            return applied, None, {}
        return applied, "sale:created", {"id": outcome.sale_id, "items_count": outcome.items_count}

    outcome = reconcile_entity(db, business_id, record)
    applied = AppliedChange(
        index=index,
        entity_name=outcome.entity_name,
        operation=outcome.operation,
        id=outcome.id,
    )
    return applied, outcome.event, {"id": outcome.id}


def apply_batch(
    db: Session,
    business_id: int,
    changes: list[Any],
    *,
    user_id: int | None = None,
    notifier: NotificationHub | None = None,
) -> BatchResult:
    """
    Apply a pushed batch of change entries for one business, in order.

    Each entry is its own unit of work: it is committed before the next entry
    starts (later entries may depend on rows created by earlier ones) and
    rolled back on failure. A failing entry is recorded and the batch moves
    on; entries committed before a failure stay committed.
    """
    logger.info("Received %s changes to sync for business %s", len(changes), business_id)
    result = BatchResult()

    for index, entry in enumerate(changes):
        try:
            record = parse_change_record(entry)
            applied, event, data = _dispatch(db, business_id, record, index, user_id)
            db.commit()
        except SyncError as exc:
            db.rollback()
            logger.warning("Sync change %s failed for business %s: %s", index, business_id, exc)
            result.failed += 1
            result.errors.append({"operation": entry, "error": str(exc)})
            continue
        except Exception as exc:
            db.rollback()
            logger.exception("Unexpected error applying sync change %s for business %s", index, business_id)
            result.failed += 1
            result.errors.append({"operation": entry, "error": str(exc) or exc.__class__.__name__})
            continue

        result.success += 1
        result.applied.append(applied)
        if notifier is not None and event is not None:
            notifier.publish(business_id, event, data)

    logger.info(
        "Sync batch for business %s processed: success=%s failed=%s",
        business_id,
        result.success,
        result.failed,
    )
    return result
