"""In-process store.

Readers never lock: committed state lives in dicts that are replaced
wholesale on commit (copy-on-write), so a reader always sees one complete
snapshot. Writers serialize on a single lock held for the duration of a
transaction, which gives read-modify-write atomicity per entity.
"""
import itertools
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from uuid import UUID

from control_plane.deadline import check_deadline
from control_plane.exceptions import ConflictError
from control_plane.repositories.base import (
    PRIORITY_RANK,
    ControlPlaneStore,
    StoreTransaction,
)
from control_plane.schemas.admin import (
    AdminRoleRecord,
    AdminUserFilter,
    AdminUserRecord,
    RoleFilter,
)
from control_plane.schemas.audit import AuditEntry
from control_plane.schemas.feature import FeatureFilter, FeatureRecord

logger = logging.getLogger("control_plane.store.memory")


def _contains(needle: Optional[str], *haystacks: str) -> bool:
    if not needle:
        return True
    needle = needle.lower()
    return any(needle in (h or "").lower() for h in haystacks)


def feature_matches(feature: FeatureRecord, filters: FeatureFilter) -> bool:
    if feature.retired and not filters.include_retired:
        return False
    if filters.category and feature.category != filters.category:
        return False
    if filters.status and feature.status != filters.status:
        return False
    if filters.enabled is not None and feature.enabled != filters.enabled:
        return False
    if filters.platform and filters.platform not in feature.platforms:
        return False
    if filters.priority and feature.priority != filters.priority:
        return False
    return _contains(filters.search, feature.name, feature.display_name, feature.description)


def sort_features(features: List[FeatureRecord], sort: str) -> List[FeatureRecord]:
    if sort == "name":
        return sorted(features, key=lambda f: f.name)
    if sort == "priority":
        # stable sort keeps insertion order within a priority
        return sorted(features, key=lambda f: PRIORITY_RANK[f.priority])
    if sort == "updated":
        return sorted(features, key=lambda f: f.updated_at, reverse=True)
    return features


class _State:
    """One committed generation of the store."""

    def __init__(self):
        self.features: Dict[UUID, FeatureRecord] = {}
        self.feature_names: Dict[str, UUID] = {}
        self.roles: Dict[UUID, AdminRoleRecord] = {}
        self.role_names: Dict[str, UUID] = {}
        self.admin_users: Dict[UUID, AdminUserRecord] = {}
        self.audit: Dict[UUID, Tuple[AuditEntry, ...]] = {}

    def copy(self) -> "_State":
        clone = _State()
        clone.features = dict(self.features)
        clone.feature_names = dict(self.feature_names)
        clone.roles = dict(self.roles)
        clone.role_names = dict(self.role_names)
        clone.admin_users = dict(self.admin_users)
        clone.audit = dict(self.audit)
        return clone


class _Reads:
    """Point reads over a ``_State``."""

    def _state(self) -> _State:
        raise NotImplementedError

    def get_feature(self, feature_id: UUID) -> Optional[FeatureRecord]:
        check_deadline()
        return self._state().features.get(feature_id)

    def get_feature_by_name(self, name: str) -> Optional[FeatureRecord]:
        check_deadline()
        state = self._state()
        feature_id = state.feature_names.get(name)
        return state.features.get(feature_id) if feature_id else None

    def get_role(self, role_id: UUID) -> Optional[AdminRoleRecord]:
        check_deadline()
        return self._state().roles.get(role_id)

    def get_role_by_name(self, name: str) -> Optional[AdminRoleRecord]:
        check_deadline()
        state = self._state()
        role_id = state.role_names.get(name)
        return state.roles.get(role_id) if role_id else None

    def get_admin_user(self, admin_user_id: UUID) -> Optional[AdminUserRecord]:
        check_deadline()
        return self._state().admin_users.get(admin_user_id)

    def get_admin_user_by_ref(self, user_ref: str) -> Optional[AdminUserRecord]:
        check_deadline()
        for admin_user in self._state().admin_users.values():
            if admin_user.user_ref == user_ref and admin_user.status != "removed":
                return admin_user
        return None

    def count_role_assignees(self, role_id: UUID, statuses: Iterable[str]) -> int:
        check_deadline()
        wanted = set(statuses)
        return sum(
            1 for u in self._state().admin_users.values()
            if u.role_id == role_id and u.status in wanted
        )

    def count_admin_users(self) -> int:
        check_deadline()
        return sum(1 for u in self._state().admin_users.values() if u.status != "removed")


class _MemoryTransaction(_Reads, StoreTransaction):

    def __init__(self, store: "InMemoryStore", base: _State):
        self._store = store
        self._staged = base.copy()

    def _state(self) -> _State:
        return self._staged

    @staticmethod
    def _check_version(kind: str, current, entity_id: UUID, expected_version: Optional[int]) -> None:
        if expected_version is None:
            if current is not None:
                raise ConflictError(f"{kind} '{entity_id}' already exists")
            return
        if current is None:
            raise ConflictError(f"{kind} '{entity_id}' was removed concurrently")
        if current.version != expected_version:
            raise ConflictError(
                f"{kind} '{entity_id}' was modified concurrently "
                f"(expected version {expected_version}, found {current.version})"
            )

    def put_feature(self, feature: FeatureRecord, expected_version: Optional[int]) -> None:
        check_deadline()
        current = self._staged.features.get(feature.id)
        self._check_version("Feature", current, feature.id, expected_version)
        owner = self._staged.feature_names.get(feature.name)
        if owner is not None and owner != feature.id:
            raise ConflictError(f"Feature name '{feature.name}' is already taken")
        self._staged.features[feature.id] = feature
        self._staged.feature_names[feature.name] = feature.id

    def put_role(self, role: AdminRoleRecord, expected_version: Optional[int]) -> None:
        check_deadline()
        current = self._staged.roles.get(role.id)
        self._check_version("Role", current, role.id, expected_version)
        owner = self._staged.role_names.get(role.name)
        if owner is not None and owner != role.id:
            raise ConflictError(f"Role name '{role.name}' is already taken")
        self._staged.roles[role.id] = role
        self._staged.role_names[role.name] = role.id

    def put_admin_user(self, admin_user: AdminUserRecord, expected_version: Optional[int]) -> None:
        check_deadline()
        current = self._staged.admin_users.get(admin_user.id)
        self._check_version("Admin user", current, admin_user.id, expected_version)
        self._staged.admin_users[admin_user.id] = admin_user

    def append_audit(self, entry: AuditEntry) -> None:
        check_deadline()
        sequenced = entry.model_copy(update={"sequence": next(self._store._sequence)})
        existing = self._staged.audit.get(entry.entity_id, ())
        self._staged.audit[entry.entity_id] = existing + (sequenced,)


class InMemoryStore(_Reads, ControlPlaneStore):
    """Thread-safe in-process store; state does not survive a restart."""

    def __init__(self):
        self._committed = _State()
        self._write_lock = threading.Lock()
        self._sequence = itertools.count(1)

    def _state(self) -> _State:
        return self._committed

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        check_deadline()
        with self._write_lock:
            tx = _MemoryTransaction(self, self._committed)
            yield tx
            self._commit(tx._staged)

    def _commit(self, staged: _State) -> None:
        check_deadline()
        # single reference swap; readers see the old or the new generation, never a mix
        self._committed = staged

    # ─── Filtered reads ───

    def list_features(
        self, filters: FeatureFilter, offset: int, limit: int
    ) -> Tuple[List[FeatureRecord], int]:
        check_deadline()
        matched = [f for f in self._committed.features.values() if feature_matches(f, filters)]
        matched = sort_features(matched, filters.sort)
        return matched[offset:offset + limit], len(matched)

    def all_features(self) -> List[FeatureRecord]:
        check_deadline()
        return list(self._committed.features.values())

    def list_roles(
        self, filters: RoleFilter, offset: int, limit: int
    ) -> Tuple[List[AdminRoleRecord], int]:
        check_deadline()
        matched = [
            r for r in self._committed.roles.values()
            if not r.is_deleted
            and (filters.is_active is None or r.is_active == filters.is_active)
            and _contains(filters.search, r.name, r.display_name, r.description)
        ]
        matched.sort(key=lambda r: (r.level, r.name))
        return matched[offset:offset + limit], len(matched)

    def list_admin_users(
        self, filters: AdminUserFilter, offset: int, limit: int
    ) -> Tuple[List[AdminUserRecord], int]:
        check_deadline()
        matched = []
        for admin_user in self._committed.admin_users.values():
            if filters.status:
                if admin_user.status != filters.status:
                    continue
            elif admin_user.status == "removed" and not filters.include_removed:
                continue
            if filters.role_id and admin_user.role_id != filters.role_id:
                continue
            if not _contains(filters.search, admin_user.user_ref):
                continue
            matched.append(admin_user)
        return matched[offset:offset + limit], len(matched)

    def list_audit(
        self, entity_id: UUID, offset: int, limit: int
    ) -> Tuple[List[AuditEntry], int]:
        check_deadline()
        entries = self._committed.audit.get(entity_id, ())
        newest_first = sorted(entries, key=lambda e: (e.timestamp, e.sequence), reverse=True)
        return newest_first[offset:offset + limit], len(newest_first)
