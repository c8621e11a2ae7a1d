"""
Seed data: the standard admin roles and the first super admin.

Both run without an acting admin (there is none yet) and are audited with
actor ``system``.
"""
import logging
from typing import List
from uuid import uuid4

from control_plane.exceptions import ConflictError, NotFoundError
from control_plane.repositories.base import ControlPlaneStore
from control_plane.schemas.admin import PERMISSIONS, AdminRoleCreate, AdminRoleRecord, AdminUserRecord
from control_plane.services.audit_log import AuditLog, diff
from control_plane.services.common import utcnow

logger = logging.getLogger("control_plane.bootstrap")

SYSTEM_ACTOR = "system"

DEFAULT_ROLES = [
    AdminRoleCreate(
        name="super_admin",
        display_name="Super Admin",
        description="Full access to every control plane operation",
        level=0,
        permissions=list(PERMISSIONS),
        max_admins=3,
    ),
    AdminRoleCreate(
        name="finance",
        display_name="Finance",
        description="Loan and investment approvals",
        level=1,
        permissions=["read", "write", "approve", "manage_loans", "manage_investments", "export_data"],
        max_admins=5,
    ),
    AdminRoleCreate(
        name="operations",
        display_name="Operations",
        description="Member operations and feature rollout",
        level=1,
        permissions=["read", "write", "manage_members", "manage_features", "view_analytics"],
    ),
    AdminRoleCreate(
        name="compliance",
        display_name="Compliance",
        description="Compliance review and audit access",
        level=1,
        permissions=["read", "approve", "manage_compliance", "view_audit_logs", "export_data"],
    ),
    AdminRoleCreate(
        name="technology",
        display_name="Technology",
        description="Platform configuration",
        level=1,
        permissions=["read", "write", "manage_features", "view_analytics", "view_audit_logs"],
    ),
    AdminRoleCreate(
        name="investment",
        display_name="Investment",
        description="Investment pool management",
        level=2,
        permissions=["read", "write", "manage_investments", "view_analytics"],
    ),
    AdminRoleCreate(
        name="member_support",
        display_name="Member Support",
        description="Member enquiries and documents",
        level=3,
        permissions=["read", "manage_communications", "manage_documents"],
    ),
]


def seed_default_roles(store: ControlPlaneStore, audit: AuditLog) -> List[AdminRoleRecord]:
    """Create any standard role that does not exist yet. Returns the roles created."""
    created = []
    for spec in DEFAULT_ROLES:
        with store.transaction() as tx:
            if tx.get_role_by_name(spec.name) is not None:
                continue
            now = utcnow()
            role = AdminRoleRecord(
                id=uuid4(),
                **spec.model_dump(),
                created_by=SYSTEM_ACTOR,
                updated_by=SYSTEM_ACTOR,
                created_at=now,
                updated_at=now,
            )
            tx.put_role(role, None)
            entry = audit.record(tx, role.id, "role", "role_created", SYSTEM_ACTOR, diff(None, role))
        audit.committed(entry)
        created.append(role)
    logger.info("Seeded %d default role(s)", len(created))
    return created


def bootstrap_super_admin(
    store: ControlPlaneStore,
    audit: AuditLog,
    user_ref: str,
    role_name: str = "super_admin",
) -> AdminUserRecord:
    """Assign the very first admin. Refused once any admin exists."""
    with store.transaction() as tx:
        if tx.count_admin_users() > 0:
            raise ConflictError("An admin already exists; use the admin directory instead")
        role = tx.get_role_by_name(role_name)
        if role is None or role.is_deleted or not role.is_active:
            raise NotFoundError("Role", role_name)
        now = utcnow()
        admin_user = AdminUserRecord(
            id=uuid4(),
            user_ref=user_ref,
            role_id=role.id,
            status="active",
            assigned_by=SYSTEM_ACTOR,
            created_at=now,
            updated_at=now,
        )
        tx.put_admin_user(admin_user, None)
        entry = audit.record(
            tx, admin_user.id, "admin_user", "admin_assigned", SYSTEM_ACTOR, diff(None, admin_user)
        )
    audit.committed(entry)
    return admin_user
