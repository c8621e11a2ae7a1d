"""Storage contract for the control plane.

Every component receives a store at construction. A store supports
read-by-id, filtered reads with pagination, and per-id atomic writes where
the audit append commits in the same transaction as the entity write.
"""
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from control_plane.schemas.admin import (
    AdminRoleRecord,
    AdminUserFilter,
    AdminUserRecord,
    RoleFilter,
)
from control_plane.schemas.audit import AuditEntry
from control_plane.schemas.feature import FeatureFilter, FeatureRecord

PRIORITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}


class StoreReader(ABC):
    """Point reads shared by the store and its transactions."""

    @abstractmethod
    def get_feature(self, feature_id: UUID) -> Optional[FeatureRecord]: ...

    @abstractmethod
    def get_feature_by_name(self, name: str) -> Optional[FeatureRecord]: ...

    @abstractmethod
    def get_role(self, role_id: UUID) -> Optional[AdminRoleRecord]: ...

    @abstractmethod
    def get_role_by_name(self, name: str) -> Optional[AdminRoleRecord]: ...

    @abstractmethod
    def get_admin_user(self, admin_user_id: UUID) -> Optional[AdminUserRecord]: ...

    @abstractmethod
    def get_admin_user_by_ref(self, user_ref: str) -> Optional[AdminUserRecord]:
        """The non-removed admin record for ``user_ref``, if any."""

    @abstractmethod
    def count_role_assignees(self, role_id: UUID, statuses: Iterable[str]) -> int: ...

    @abstractmethod
    def count_admin_users(self) -> int:
        """Number of non-removed admin users."""

    def without_locks(self) -> "StoreReader":
        """The same view, but reads never take row locks.

        Used to resolve the acting admin, so concurrent writers only ever
        lock the entities they modify.
        """
        return self


class StoreTransaction(StoreReader):
    """Staged writes; nothing is visible to other readers until commit.

    ``expected_version=None`` means insert (the id must not exist yet);
    otherwise the stored version must equal ``expected_version`` or the
    write fails with ConflictError.
    """

    @abstractmethod
    def put_feature(self, feature: FeatureRecord, expected_version: Optional[int]) -> None: ...

    @abstractmethod
    def put_role(self, role: AdminRoleRecord, expected_version: Optional[int]) -> None: ...

    @abstractmethod
    def put_admin_user(self, admin_user: AdminUserRecord, expected_version: Optional[int]) -> None: ...

    @abstractmethod
    def append_audit(self, entry: AuditEntry) -> None: ...


class ControlPlaneStore(StoreReader):

    @abstractmethod
    def transaction(self) -> AbstractContextManager[StoreTransaction]:
        """Open a write transaction.

        Commits on normal exit; any exception discards every staged write,
        entity and audit alike.
        """

    @abstractmethod
    def list_features(
        self, filters: FeatureFilter, offset: int, limit: int
    ) -> Tuple[List[FeatureRecord], int]: ...

    @abstractmethod
    def all_features(self) -> List[FeatureRecord]:
        """Every feature, retired included, in insertion order."""

    @abstractmethod
    def list_roles(
        self, filters: RoleFilter, offset: int, limit: int
    ) -> Tuple[List[AdminRoleRecord], int]: ...

    @abstractmethod
    def list_admin_users(
        self, filters: AdminUserFilter, offset: int, limit: int
    ) -> Tuple[List[AdminUserRecord], int]: ...

    @abstractmethod
    def list_audit(
        self, entity_id: UUID, offset: int, limit: int
    ) -> Tuple[List[AuditEntry], int]:
        """Entries for one entity, newest first."""
