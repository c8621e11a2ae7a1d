"""Feature flags for gradual, platform-scoped releases.

- Master switch (``enabled``) overrides everything
- Platform scoping (web / mobile / admin_dashboard)
- Percentage rollout bucketed by a stable hash of name + target key
- Retired features keep their row and audit trail
"""

import uuid
from sqlalchemy import Column, String, Boolean, Integer, DateTime, JSON, Uuid, CheckConstraint
from control_plane.db.base_class import Base


class Feature(Base):
    """Platform-wide feature flag with rollout tracking."""
    __tablename__ = "features"
    __table_args__ = (
        CheckConstraint("rollout_percentage >= 0 AND rollout_percentage <= 100", name="ck_features_rollout_range"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(128), unique=True, nullable=False, index=True)   # e.g. "new_loan_ui"
    display_name = Column(String(255), nullable=False)
    description = Column(String, default="")
    category = Column(String(32), nullable=False, index=True)
    platforms = Column(JSON, nullable=False, default=list)             # ["web", "mobile"]
    status = Column(String(32), nullable=False, default="planning", index=True)
    priority = Column(String(16), nullable=False, default="medium")
    enabled = Column(Boolean, nullable=False, default=False)            # global kill switch
    rollout_percentage = Column(Integer, nullable=False, default=0)     # 0-100
    config = Column(JSON, nullable=False, default=dict)                 # {key: {"type": ..., "value": ...}}
    retired = Column(Boolean, nullable=False, default=False, index=True)
    retired_at = Column(DateTime(timezone=True), nullable=True)
    toggle_count = Column(Integer, nullable=False, default=0)          # enabled flips
    last_toggled_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(String(255), nullable=False)
    updated_by = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=1)
