"""
Audit trail for billing document changes.

Every mutation to an estimate, invoice, payment or pay term is logged here.
The audit log is:
- Append-only (entries never modified or deleted)
- Detailed (captures old and new values)
- Written inside the caller's transaction, so it commits with the change
"""

from enum import Enum
from uuid import UUID, uuid4
from typing import Any

from core.store.base import BillingStore
from utils.timezone import now_utc


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    for key in set(old) | set(new):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Writes audit entries through the billing store.

    Always pass model_dump(mode="json") output so UUIDs, dates and Decimals
    are JSON-compatible.

    Usage:
        audit = AuditLogger(store)

        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")}
        )

        changes = compute_changes(
            old.model_dump(mode="json"),
            new.model_dump(mode="json")
        )
        audit.log_change("invoice", invoice.id, AuditAction.UPDATE, changes)

        history = audit.get_entity_history("invoice", invoice.id)
    """

    def __init__(self, store: BillingStore):
        self.store = store

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
    ) -> None:
        """
        Log an entity change.

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        self.store.insert_audit_entry({
            "id": uuid4(),
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action.value,
            "changes": changes,
            "created_at": now_utc(),
        })

    def get_entity_history(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        """Full audit history for an entity, newest first."""
        return self.store.list_audit_entries(entity_type, entity_id)
