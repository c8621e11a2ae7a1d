from sqlalchemy import Column, String, DateTime, Integer, JSON, Uuid, Index
from control_plane.db.base_class import Base


class AuditLogEntry(Base):
    """Append-only change record; rows are never updated or deleted."""
    __tablename__ = "audit_log_entries"
    __table_args__ = (
        Index("ix_audit_entity_sequence", "entity_id", "sequence"),
    )

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Uuid(as_uuid=True), unique=True, nullable=False)
    entity_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    entity_type = Column(String(32), nullable=False)      # feature, role, admin_user
    action = Column(String(64), nullable=False, index=True)  # enabled, rollout_updated, role_created, ...
    changed_by = Column(String(255), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    changes = Column(JSON, nullable=False, default=dict)  # {field: {"old": ..., "new": ...}}
