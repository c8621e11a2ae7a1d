from control_plane.db.base_class import Base
from control_plane.models.feature import Feature
from control_plane.models.admin import AdminRole, AdminUser
from control_plane.models.audit import AuditLogEntry
