"""Admin role and admin user schemas."""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# Permission vocabulary; role permission sets must be a subset of it
PERMISSIONS = (
    "read",
    "write",
    "approve",
    "manage_admins",
    "manage_members",
    "manage_loans",
    "manage_investments",
    "manage_compliance",
    "manage_features",
    "view_analytics",
    "export_data",
    "manage_roles",
    "manage_permissions",
    "view_audit_logs",
    "manage_communications",
    "manage_documents",
)

PermissionName = Literal[
    "read",
    "write",
    "approve",
    "manage_admins",
    "manage_members",
    "manage_loans",
    "manage_investments",
    "manage_compliance",
    "manage_features",
    "view_analytics",
    "export_data",
    "manage_roles",
    "manage_permissions",
    "view_audit_logs",
    "manage_communications",
    "manage_documents",
]

AdminStatus = Literal["active", "suspended", "removed"]

# Display only. Never consulted for authorization.
LEVEL_LABELS = {
    0: "Super Admin",
    1: "Admin",
    2: "Moderator",
    3: "Support",
}

UNLIMITED = -1


def level_label(level: int) -> str:
    return LEVEL_LABELS.get(level, "Unknown")


def _sorted_unique(values: List[str]) -> List[str]:
    return sorted(set(values))


# ─── Admin Role Schemas ───

class AdminRoleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(pattern=r"^[a-z][a-z0-9_]{0,63}$")
    display_name: str = Field(min_length=1, max_length=255)
    description: str = ""
    level: int = Field(ge=0)
    permissions: List[PermissionName] = Field(default_factory=list)
    is_active: bool = True
    max_admins: int = Field(default=UNLIMITED, ge=UNLIMITED)

    @field_validator("permissions")
    @classmethod
    def _normalize(cls, v: List[str]) -> List[str]:
        return _sorted_unique(v)


class AdminRoleUpdate(BaseModel):
    """``name`` and ``level`` are fixed at creation; they are accepted here only to be rejected."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    level: Optional[int] = None
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    permissions: Optional[List[PermissionName]] = None
    is_active: Optional[bool] = None
    max_admins: Optional[int] = Field(default=None, ge=UNLIMITED)

    @field_validator("permissions")
    @classmethod
    def _normalize(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _sorted_unique(v) if v is not None else v


class RoleFilter(BaseModel):
    search: Optional[str] = None
    is_active: Optional[bool] = None


class AdminRoleRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str = ""
    level: int
    permissions: List[PermissionName]
    is_active: bool = True
    max_admins: int = UNLIMITED
    is_deleted: bool = False
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime
    version: int = 1

    @property
    def level_label(self) -> str:
        return level_label(self.level)


class AdminRoleOut(AdminRoleRecord):
    """API projection; adds the display label for ``level``."""

    @computed_field
    @property
    def level_label(self) -> str:
        return level_label(self.level)


class PermissionChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    permission: str


# ─── Admin User Schemas ───

class AdminUserAssign(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_ref: str = Field(min_length=1, max_length=255)
    role_id: UUID


class AdminUserFilter(BaseModel):
    search: Optional[str] = None
    status: Optional[AdminStatus] = None
    role_id: Optional[UUID] = None
    include_removed: bool = False


class AdminUserRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    user_ref: str
    role_id: UUID
    status: AdminStatus = "active"
    assigned_by: str
    created_at: datetime
    updated_at: datetime
    version: int = 1


class AdminUserReassign(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role_id: UUID


class AdminCheck(BaseModel):
    user_ref: str
    is_admin: bool
