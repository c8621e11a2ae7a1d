from datetime import datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict

EntityType = Literal["feature", "role", "admin_user"]


class FieldChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    old: Any = None
    new: Any = None


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    entity_id: UUID
    entity_type: EntityType
    action: str
    changed_by: str
    timestamp: datetime
    changes: Dict[str, FieldChange]
    sequence: Optional[int] = None    # assigned by the store on append
