"""Append-only change log.

``record`` writes inside the caller's store transaction, so the entry and
the mutation it describes commit or roll back together.
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel

from control_plane.middleware.metrics import MUTATIONS
from control_plane.repositories.base import ControlPlaneStore, StoreTransaction
from control_plane.schemas.audit import AuditEntry, EntityType, FieldChange
from control_plane.schemas.pagination import Page, PageParams
from control_plane.services.common import utcnow

logger = logging.getLogger("control_plane.audit")

# Never reported as changes
BOOKKEEPING_FIELDS = frozenset({
    "id", "version", "created_at", "created_by", "updated_at", "updated_by", "retired_at",
    "toggle_count", "last_toggled_at",
})


def _flatten(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Expand ``config`` into one ``config.<key>`` entry per key.

    Config entries stay tagged so that 1 and true compare as different.
    """
    flat = {}
    for field, value in snapshot.items():
        if field in BOOKKEEPING_FIELDS:
            continue
        if field == "config" and isinstance(value, dict):
            for key, tagged in value.items():
                flat[f"config.{key}"] = tagged
            continue
        flat[field] = value
    return flat


def _plain(value: Any) -> Any:
    if isinstance(value, dict) and "type" in value and "value" in value:
        return value["value"]
    return value


def diff(before: Optional[BaseModel], after: BaseModel) -> Dict[str, FieldChange]:
    """``{field: FieldChange(old, new)}`` for every field that differs.

    ``before=None`` describes a creation: every field is reported with
    ``old=None``.
    """
    old = _flatten(before.model_dump(mode="json")) if before is not None else {}
    new = _flatten(after.model_dump(mode="json"))
    changes = {}
    for field in list(new) + [f for f in old if f not in new]:
        old_value, new_value = old.get(field), new.get(field)
        if before is not None and old_value == new_value:
            continue
        changes[field] = FieldChange(old=_plain(old_value), new=_plain(new_value))
    return changes


class AuditLog:

    def __init__(self, store: ControlPlaneStore):
        self.store = store

    def record(
        self,
        tx: Optional[StoreTransaction],
        entity_id: UUID,
        entity_type: EntityType,
        action: str,
        actor: str,
        changes: Dict[str, FieldChange],
    ) -> AuditEntry:
        """Append one entry. Without ``tx`` the entry gets its own transaction."""
        entry = AuditEntry(
            id=uuid4(),
            entity_id=entity_id,
            entity_type=entity_type,
            action=action,
            changed_by=actor,
            timestamp=utcnow(),
            changes=changes,
        )
        if tx is None:
            with self.store.transaction() as own_tx:
                own_tx.append_audit(entry)
            self.committed(entry)
        else:
            tx.append_audit(entry)
        return entry

    def committed(self, entry: AuditEntry) -> None:
        """Log and count a mutation once its transaction has committed."""
        MUTATIONS.labels(entity=entry.entity_type, action=entry.action).inc()
        logger.info(
            "%s %s by %s",
            entry.action, entry.entity_id, entry.changed_by,
            extra={"entity_type": entry.entity_type, "fields": sorted(entry.changes)},
        )

    def query(self, entity_id: UUID, page: Optional[PageParams] = None) -> Page[AuditEntry]:
        """Entries for ``entity_id``, newest first."""
        params = (page or PageParams()).normalized()
        items, total = self.store.list_audit(entity_id, params.offset, params.limit)
        return Page[AuditEntry].build(items, total, params)
