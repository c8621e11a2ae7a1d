"""
Admin user directory.

Binds a person (``user_ref``) to exactly one admin role. Lifecycle:

    active <-> suspended      (suspend / activate)
    active | suspended -> removed   (terminal)

Role capacity (``max_admins``) counts active and suspended assignees and is
checked inside the write transaction, after the role row is locked.
"""
import logging
from typing import Any, Optional, Tuple
from uuid import UUID, uuid4

from control_plane.exceptions import ConflictError, NotFoundError
from control_plane.repositories.base import ControlPlaneStore, StoreReader, StoreTransaction
from control_plane.schemas.admin import (
    UNLIMITED,
    AdminRoleRecord,
    AdminUserAssign,
    AdminUserFilter,
    AdminUserRecord,
)
from control_plane.schemas.audit import AuditEntry
from control_plane.schemas.pagination import Page, PageParams
from control_plane.services.audit_log import AuditLog, diff
from control_plane.services.common import check_expected_version, evolve, parse_input, utcnow
from control_plane.services.role_authorization import SEAT_STATUSES, RoleAuthorization

logger = logging.getLogger("control_plane.admin_directory")


class AdminUserDirectory:

    def __init__(self, store: ControlPlaneStore, audit: AuditLog, authorization: RoleAuthorization):
        self.store = store
        self.audit = audit
        self.authorization = authorization

    # ─── Reads ───

    def get(self, actor: str, admin_user_id: UUID) -> AdminUserRecord:
        self.authorization.authorize(actor, "read")
        admin_user = self.store.get_admin_user(admin_user_id)
        if admin_user is None:
            raise NotFoundError("Admin user", str(admin_user_id))
        return admin_user

    def get_by_user_ref(self, actor: str, user_ref: str) -> AdminUserRecord:
        self.authorization.authorize(actor, "read")
        admin_user = self.store.get_admin_user_by_ref(user_ref)
        if admin_user is None:
            raise NotFoundError("Admin user", user_ref)
        return admin_user

    def is_admin(self, user_ref: str) -> bool:
        """True if ``user_ref`` holds an active admin assignment."""
        admin_user = self.store.get_admin_user_by_ref(user_ref)
        return admin_user is not None and admin_user.status == "active"

    def list(
        self,
        actor: str,
        filters: Optional[AdminUserFilter] = None,
        page: Optional[PageParams] = None,
    ) -> Page[AdminUserRecord]:
        self.authorization.authorize(actor, "read")
        params = (page or PageParams()).normalized()
        items, total = self.store.list_admin_users(filters or AdminUserFilter(), params.offset, params.limit)
        return Page[AdminUserRecord].build(items, total, params)

    # ─── Mutations ───

    @staticmethod
    def _assignable_role(tx: StoreReader, role_id: UUID) -> AdminRoleRecord:
        role = tx.get_role(role_id)
        if role is None or role.is_deleted or not role.is_active:
            raise NotFoundError("Role", str(role_id))
        return role

    @staticmethod
    def _check_capacity(tx: StoreReader, role: AdminRoleRecord) -> None:
        if role.max_admins == UNLIMITED:
            return
        seated = tx.count_role_assignees(role.id, SEAT_STATUSES)
        if seated >= role.max_admins:
            raise ConflictError(
                f"Role '{role.name}' is at capacity ({seated}/{role.max_admins} admins)"
            )

    @staticmethod
    def _live_admin_user(tx: StoreReader, admin_user_id: UUID) -> AdminUserRecord:
        admin_user = tx.get_admin_user(admin_user_id)
        if admin_user is None:
            raise NotFoundError("Admin user", str(admin_user_id))
        if admin_user.status == "removed":
            raise ConflictError(f"Admin user '{admin_user_id}' has been removed")
        return admin_user

    def _write(
        self,
        tx: StoreTransaction,
        actor: str,
        current: AdminUserRecord,
        action: str,
        **changes: Any,
    ) -> Tuple[AdminUserRecord, Optional[AuditEntry]]:
        updated = evolve(current, **changes)
        delta = diff(current, updated)
        if not delta:
            return current, None
        updated = evolve(updated, updated_at=utcnow(), version=current.version + 1)
        tx.put_admin_user(updated, current.version)
        return updated, self.audit.record(tx, current.id, "admin_user", action, actor, delta)

    def _committed(self, entry: Optional[AuditEntry]) -> None:
        if entry is not None:
            self.audit.committed(entry)

    def assign(self, actor: str, user_ref: str, role_id: UUID) -> AdminUserRecord:
        """Make ``user_ref`` an active admin holding ``role_id``."""
        request = parse_input(AdminUserAssign, {"user_ref": user_ref, "role_id": role_id})
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, "manage_admins", tx)
            role = self._assignable_role(tx, request.role_id)
            if tx.get_admin_user_by_ref(request.user_ref) is not None:
                raise ConflictError(f"'{request.user_ref}' is already an admin")
            self._check_capacity(tx, role)
            now = utcnow()
            admin_user = AdminUserRecord(
                id=uuid4(),
                user_ref=request.user_ref,
                role_id=role.id,
                status="active",
                assigned_by=actor,
                created_at=now,
                updated_at=now,
            )
            tx.put_admin_user(admin_user, None)
            entry = self.audit.record(
                tx, admin_user.id, "admin_user", "admin_assigned", actor, diff(None, admin_user)
            )
        self._committed(entry)
        return admin_user

    def reassign(
        self,
        actor: str,
        admin_user_id: UUID,
        new_role_id: UUID,
        expected_version: Optional[int] = None,
    ) -> AdminUserRecord:
        """Move the admin to another role; the audit entry carries both role ids."""
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, "manage_admins", tx)
            admin_user = self._live_admin_user(tx, admin_user_id)
            check_expected_version("Admin user", admin_user, expected_version)
            if admin_user.role_id == new_role_id:
                return admin_user
            role = self._assignable_role(tx, new_role_id)
            self._check_capacity(tx, role)
            updated, entry = self._write(tx, actor, admin_user, "admin_reassigned", role_id=role.id)
        self._committed(entry)
        return updated

    def suspend(self, actor: str, admin_user_id: UUID, expected_version: Optional[int] = None) -> AdminUserRecord:
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, "manage_admins", tx)
            admin_user = self._live_admin_user(tx, admin_user_id)
            check_expected_version("Admin user", admin_user, expected_version)
            updated, entry = self._write(tx, actor, admin_user, "admin_suspended", status="suspended")
        self._committed(entry)
        return updated

    def activate(self, actor: str, admin_user_id: UUID, expected_version: Optional[int] = None) -> AdminUserRecord:
        """Reactivate a suspended admin. Their role must still be assignable."""
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, "manage_admins", tx)
            admin_user = self._live_admin_user(tx, admin_user_id)
            check_expected_version("Admin user", admin_user, expected_version)
            if admin_user.status == "active":
                return admin_user
            self._assignable_role(tx, admin_user.role_id)
            updated, entry = self._write(tx, actor, admin_user, "admin_activated", status="active")
        self._committed(entry)
        return updated

    def remove(self, actor: str, admin_user_id: UUID, expected_version: Optional[int] = None) -> AdminUserRecord:
        """Terminal. The record is kept for the audit trail; the seat is freed."""
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, "manage_admins", tx)
            admin_user = self._live_admin_user(tx, admin_user_id)
            check_expected_version("Admin user", admin_user, expected_version)
            updated, entry = self._write(tx, actor, admin_user, "admin_removed", status="removed")
        self._committed(entry)
        return updated
