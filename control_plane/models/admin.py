import uuid
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, JSON, Uuid
from control_plane.db.base_class import Base


class AdminRole(Base):
    """Named permission bundle; ``level`` is for display and sorting only."""
    __tablename__ = "admin_roles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(64), unique=True, nullable=False, index=True)    # super_admin, finance, ...
    display_name = Column(String(255), nullable=False)
    description = Column(String, default="")
    level = Column(Integer, nullable=False)                                 # 0 = Super Admin
    permissions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    max_admins = Column(Integer, nullable=False, default=-1)                # -1 = unlimited
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(255), nullable=False)
    updated_by = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=1)


class AdminUser(Base):
    """Binding of a person to exactly one admin role."""
    __tablename__ = "admin_users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_ref = Column(String(255), nullable=False, index=True)
    role_id = Column(Uuid(as_uuid=True), ForeignKey("admin_roles.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="active", index=True)  # active, suspended, removed
    assigned_by = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=1)
