import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from possync.schemas.sync import ChangeEntryIn
from possync.services.sync_errors import MalformedRecord

OPERATIONS = ("CREATE", "UPDATE", "DELETE")


@dataclass(frozen=True)
class ChangeRecord:
    entity_name: str
    operation: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_sale_with_items(self) -> bool:
        items = self.payload.get("items")
        return (
            self.entity_name == "sales"
            and self.operation == "CREATE"
            and isinstance(items, list)
            and len(items) > 0
        )


def _decode_payload(raw: dict[str, Any] | str | None) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedRecord(f"Payload is not valid JSON: {exc.msg}") from exc
        if not isinstance(raw, dict):
            raise MalformedRecord("Payload must decode to an object")
    return dict(raw)


def parse_change_record(entry: Any) -> ChangeRecord:
    """Validate one wire entry of a sync push and return a typed record.

    ``payload`` may arrive as a mapping or as its JSON-serialized string; a
    string is decoded here so reconcilers only ever see mappings.
    """
    if not isinstance(entry, dict):
        raise MalformedRecord("Change entry must be an object")
    try:
        parsed = ChangeEntryIn.model_validate(entry)
    except ValidationError as exc:
        missing = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        detail = ", ".join(missing) if missing else "entry"
        raise MalformedRecord(f"Invalid change entry: {detail}") from exc

    operation = parsed.operation.strip().upper()
    if operation not in OPERATIONS:
        raise MalformedRecord(f"Unknown operation: {parsed.operation}")

    return ChangeRecord(
        entity_name=parsed.entity_name.strip(),
        operation=operation,
        payload=_decode_payload(parsed.payload),
    )
