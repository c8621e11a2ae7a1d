"""
Role-based authorization for control plane mutations.

Permissions are always explicit per role. ``level`` orders roles for
display; it is never consulted when deciding access.
"""
import logging
from typing import Any, FrozenSet, Optional, Tuple
from uuid import UUID, uuid4

from control_plane.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from control_plane.repositories.base import ControlPlaneStore, StoreReader, StoreTransaction
from control_plane.schemas.admin import (
    PERMISSIONS,
    UNLIMITED,
    AdminRoleCreate,
    AdminRoleRecord,
    AdminRoleUpdate,
    AdminUserFilter,
    AdminUserRecord,
    RoleFilter,
)
from control_plane.schemas.audit import AuditEntry
from control_plane.schemas.pagination import Page, PageParams
from control_plane.services.audit_log import AuditLog, diff
from control_plane.services.common import (
    check_expected_version,
    evolve,
    parse_input,
    utcnow,
)

logger = logging.getLogger("control_plane.authorization")

# Assignees that occupy a seat for max_admins purposes
SEAT_STATUSES = ("active", "suspended")


class RoleAuthorization:

    def __init__(self, store: ControlPlaneStore, audit: AuditLog):
        self.store = store
        self.audit = audit

    # ─── Authorization ───

    def _resolve_role(self, actor: Optional[str], reader: StoreReader) -> Optional[AdminRoleRecord]:
        if not actor:
            return None
        admin_user = reader.get_admin_user_by_ref(actor)
        if admin_user is None or admin_user.status != "active":
            return None
        role = reader.get_role(admin_user.role_id)
        if role is None or role.is_deleted or not role.is_active:
            return None
        return role

    def authorize(
        self,
        actor: Optional[str],
        permission: str,
        reader: Optional[StoreReader] = None,
    ) -> AdminRoleRecord:
        """Return the actor's role if it grants ``permission``.

        Raises PermissionDeniedError otherwise. The error never says which
        check failed; the reason is logged instead.
        """
        role = self._resolve_role(actor, (reader or self.store).without_locks())
        if role is None or permission not in role.permissions:
            logger.warning(
                "Permission denied: actor=%s permission=%s role=%s",
                actor, permission, role.name if role else "-",
            )
            raise PermissionDeniedError()
        return role

    def permissions_for(self, actor: Optional[str]) -> FrozenSet[str]:
        role = self._resolve_role(actor, self.store)
        return frozenset(role.permissions) if role else frozenset()

    # ─── Reads ───

    @staticmethod
    def _live_role(reader: StoreReader, role_id: UUID) -> AdminRoleRecord:
        role = reader.get_role(role_id)
        if role is None or role.is_deleted:
            raise NotFoundError("Role", str(role_id))
        return role

    def get_role(self, actor: str, role_id: UUID) -> AdminRoleRecord:
        self.authorize(actor, "read")
        return self._live_role(self.store, role_id)

    def get_role_by_name(self, actor: str, name: str) -> AdminRoleRecord:
        self.authorize(actor, "read")
        role = self.store.get_role_by_name(name)
        if role is None or role.is_deleted:
            raise NotFoundError("Role", name)
        return role

    def list_roles(
        self,
        actor: str,
        filters: Optional[RoleFilter] = None,
        page: Optional[PageParams] = None,
    ) -> Page[AdminRoleRecord]:
        """Non-deleted roles ordered by level, then name."""
        self.authorize(actor, "read")
        params = (page or PageParams()).normalized()
        items, total = self.store.list_roles(filters or RoleFilter(), params.offset, params.limit)
        return Page[AdminRoleRecord].build(items, total, params)

    def list_role_users(
        self,
        actor: str,
        role_id: UUID,
        page: Optional[PageParams] = None,
    ) -> Page[AdminUserRecord]:
        self.authorize(actor, "read")
        if self.store.get_role(role_id) is None:
            raise NotFoundError("Role", str(role_id))
        params = (page or PageParams()).normalized()
        items, total = self.store.list_admin_users(
            AdminUserFilter(role_id=role_id), params.offset, params.limit
        )
        return Page[AdminUserRecord].build(items, total, params)

    # ─── Mutations ───

    def _write(
        self,
        tx: StoreTransaction,
        actor: str,
        current: AdminRoleRecord,
        action: str,
        **changes: Any,
    ) -> Tuple[AdminRoleRecord, Optional[AuditEntry]]:
        updated = evolve(current, **changes)
        delta = diff(current, updated)
        if not delta:
            return current, None
        updated = evolve(updated, updated_by=actor, updated_at=utcnow(), version=current.version + 1)
        tx.put_role(updated, current.version)
        return updated, self.audit.record(tx, current.id, "role", action, actor, delta)

    def create_role(self, actor: str, data: Any) -> AdminRoleRecord:
        spec = parse_input(AdminRoleCreate, data)
        with self.store.transaction() as tx:
            self.authorize(actor, "manage_admins", tx)
            if tx.get_role_by_name(spec.name) is not None:
                raise ValidationError(
                    f"Role name '{spec.name}' already exists",
                    [{"field": "name", "error": "duplicate"}],
                )
            now = utcnow()
            role = AdminRoleRecord(
                id=uuid4(),
                **spec.model_dump(),
                created_by=actor,
                updated_by=actor,
                created_at=now,
                updated_at=now,
            )
            tx.put_role(role, None)
            entry = self.audit.record(tx, role.id, "role", "role_created", actor, diff(None, role))
        self.audit.committed(entry)
        return role

    def update_role(
        self,
        actor: str,
        role_id: UUID,
        patch: Any,
        expected_version: Optional[int] = None,
    ) -> AdminRoleRecord:
        """Partial update. ``name`` and ``level`` are fixed at creation."""
        changes = parse_input(AdminRoleUpdate, patch)
        with self.store.transaction() as tx:
            self.authorize(actor, "manage_admins", tx)
            role = self._live_role(tx, role_id)
            check_expected_version("Role", role, expected_version)
            if changes.name is not None and changes.name != role.name:
                raise ValidationError("Role name cannot be changed", [{"field": "name", "error": "immutable"}])
            if changes.level is not None and changes.level != role.level:
                raise ValidationError("Role level cannot be changed", [{"field": "level", "error": "immutable"}])
            if changes.max_admins is not None and changes.max_admins != UNLIMITED:
                seated = tx.count_role_assignees(role.id, SEAT_STATUSES)
                if seated > changes.max_admins:
                    raise ConflictError(
                        f"Role '{role.name}' has {seated} admins; reassign some before "
                        f"lowering max_admins to {changes.max_admins}"
                    )
            updated, entry = self._write(
                tx, actor, role, "role_updated",
                **changes.model_dump(exclude_none=True, exclude={"name", "level"}),
            )
        self._committed(entry)
        return updated

    def add_permission(self, actor: str, role_id: UUID, permission: str) -> AdminRoleRecord:
        self._check_vocabulary(permission)
        with self.store.transaction() as tx:
            self.authorize(actor, "manage_admins", tx)
            role = self._live_role(tx, role_id)
            permissions = sorted(set(role.permissions) | {permission})
            updated, entry = self._write(tx, actor, role, "permission_added", permissions=permissions)
        self._committed(entry)
        return updated

    def remove_permission(self, actor: str, role_id: UUID, permission: str) -> AdminRoleRecord:
        self._check_vocabulary(permission)
        with self.store.transaction() as tx:
            self.authorize(actor, "manage_admins", tx)
            role = self._live_role(tx, role_id)
            permissions = sorted(set(role.permissions) - {permission})
            updated, entry = self._write(tx, actor, role, "permission_removed", permissions=permissions)
        self._committed(entry)
        return updated

    def delete_role(self, actor: str, role_id: UUID, expected_version: Optional[int] = None) -> AdminRoleRecord:
        """Mark the role deleted. Refused while any active admin holds it.

        The record stays so audit entries and suspended assignments keep a
        resolvable reference; the name stays reserved.
        """
        with self.store.transaction() as tx:
            self.authorize(actor, "manage_admins", tx)
            role = self._live_role(tx, role_id)
            check_expected_version("Role", role, expected_version)
            active = tx.count_role_assignees(role.id, ("active",))
            if active:
                raise ConflictError(
                    f"Role '{role.name}' still has {active} active admin(s); "
                    "reassign or suspend them first"
                )
            updated, entry = self._write(tx, actor, role, "role_deleted", is_deleted=True)
        self._committed(entry)
        return updated

    # ─── helpers ───

    @staticmethod
    def _check_vocabulary(permission: str) -> None:
        if permission not in PERMISSIONS:
            raise ValidationError(
                f"Unknown permission '{permission}'",
                [{"field": "permission", "error": "unknown"}],
            )

    def _committed(self, entry: Optional[AuditEntry]) -> None:
        if entry is not None:
            self.audit.committed(entry)
