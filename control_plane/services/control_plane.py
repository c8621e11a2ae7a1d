"""Wires the control plane components around one injected store."""
import random
from typing import Optional

from control_plane.repositories.base import ControlPlaneStore
from control_plane.services import rollout
from control_plane.services.admin_directory import AdminUserDirectory
from control_plane.services.audit_log import AuditLog
from control_plane.services.feature_registry import FeatureRegistry
from control_plane.services.role_authorization import RoleAuthorization


class ControlPlane:
    """Entry point used by the HTTP layer, scripts and tests.

    Every component shares ``store``; there is no module-level state.
    """

    def __init__(self, store: ControlPlaneStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng
        self.audit = AuditLog(store)
        self.authorization = RoleAuthorization(store, self.audit)
        self.features = FeatureRegistry(store, self.audit, self.authorization)
        self.admin_users = AdminUserDirectory(store, self.audit, self.authorization)

    def is_feature_enabled(self, name: str, platform: str, target_key: Optional[str] = None) -> bool:
        """Evaluate a feature for one identity. No authorization; unknown names are off.

        Reads the latest committed snapshot, so a committed change is seen by
        the next call. Without ``target_key`` the answer is random per call.
        """
        feature = self.store.get_feature_by_name(name)
        if feature is None:
            return False
        return rollout.is_enabled(feature, platform, target_key, self.rng)
