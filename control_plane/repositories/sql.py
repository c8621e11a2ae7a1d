"""SQLAlchemy-backed store.

Version checks are conditional updates (``WHERE id = :id AND version = :v``);
a zero row count means someone else committed first. Entities read inside a
transaction are locked with ``SELECT ... FOR UPDATE`` where the dialect
supports it; the acting admin is resolved through ``without_locks()`` so a
writer only locks what it modifies. Deadlocks and serialization failures
surface as ConflictError.
"""
import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Tuple, Type
from uuid import UUID

from sqlalchemy import String, case, cast, func, or_, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, sessionmaker

from control_plane.deadline import check_deadline, remaining
from control_plane.exceptions import ConflictError, StorageError
from control_plane.models.admin import AdminRole, AdminUser
from control_plane.models.audit import AuditLogEntry
from control_plane.models.feature import Feature
from control_plane.repositories.base import (
    PRIORITY_RANK,
    ControlPlaneStore,
    StoreReader,
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

logger = logging.getLogger("control_plane.store.sql")

# deadlock_detected, serialization_failure
RETRYABLE_PGCODES = ("40P01", "40001")


def _contains(column, needle: str):
    return func.lower(column).contains(needle.lower(), autoescape=True)


def _to_feature(row: Optional[Feature]) -> Optional[FeatureRecord]:
    return FeatureRecord.model_validate(row) if row is not None else None


def _to_role(row: Optional[AdminRole]) -> Optional[AdminRoleRecord]:
    return AdminRoleRecord.model_validate(row) if row is not None else None


def _to_admin_user(row: Optional[AdminUser]) -> Optional[AdminUserRecord]:
    return AdminUserRecord.model_validate(row) if row is not None else None


class _SqlReads(StoreReader):
    """Point reads against one session. ``lock`` adds FOR UPDATE."""

    lock = False

    def __init__(self, db: Session):
        self.db = db

    def _query(self, model: Type) -> Query:
        check_deadline()
        query = self.db.query(model)
        if self.lock:
            query = query.populate_existing().with_for_update()
        return query

    def get_feature(self, feature_id: UUID) -> Optional[FeatureRecord]:
        return _to_feature(self._query(Feature).filter(Feature.id == feature_id).first())

    def get_feature_by_name(self, name: str) -> Optional[FeatureRecord]:
        return _to_feature(self._query(Feature).filter(Feature.name == name).first())

    def get_role(self, role_id: UUID) -> Optional[AdminRoleRecord]:
        return _to_role(self._query(AdminRole).filter(AdminRole.id == role_id).first())

    def get_role_by_name(self, name: str) -> Optional[AdminRoleRecord]:
        return _to_role(self._query(AdminRole).filter(AdminRole.name == name).first())

    def get_admin_user(self, admin_user_id: UUID) -> Optional[AdminUserRecord]:
        return _to_admin_user(
            self._query(AdminUser).filter(AdminUser.id == admin_user_id).first()
        )

    def get_admin_user_by_ref(self, user_ref: str) -> Optional[AdminUserRecord]:
        row = (
            self._query(AdminUser)
            .filter(AdminUser.user_ref == user_ref, AdminUser.status != "removed")
            .first()
        )
        return _to_admin_user(row)

    def count_role_assignees(self, role_id: UUID, statuses: Iterable[str]) -> int:
        check_deadline()
        return (
            self.db.query(func.count(AdminUser.id))
            .filter(AdminUser.role_id == role_id, AdminUser.status.in_(list(statuses)))
            .scalar()
        )

    def count_admin_users(self) -> int:
        check_deadline()
        return self.db.query(func.count(AdminUser.id)).filter(AdminUser.status != "removed").scalar()


class _SqlTransaction(_SqlReads, StoreTransaction):

    lock = True

    def without_locks(self) -> StoreReader:
        return _SqlReads(self.db)

    def _put(self, model: Type, record, expected_version: Optional[int], kind: str) -> None:
        check_deadline()
        values = record.model_dump()
        if expected_version is None:
            self.db.add(model(**values))
            self.db.flush()
            return
        entity_id = values.pop("id")
        matched = (
            self.db.query(model)
            .filter(model.id == entity_id, model.version == expected_version)
            .update(values, synchronize_session=False)
        )
        if matched == 0:
            raise ConflictError(f"{kind} '{entity_id}' was modified concurrently")

    def put_feature(self, feature: FeatureRecord, expected_version: Optional[int]) -> None:
        self._put(Feature, feature, expected_version, "Feature")

    def put_role(self, role: AdminRoleRecord, expected_version: Optional[int]) -> None:
        self._put(AdminRole, role, expected_version, "Role")

    def put_admin_user(self, admin_user: AdminUserRecord, expected_version: Optional[int]) -> None:
        self._put(AdminUser, admin_user, expected_version, "Admin user")

    def append_audit(self, entry: AuditEntry) -> None:
        check_deadline()
        payload = entry.model_dump(mode="json", exclude={"sequence"})
        self.db.add(
            AuditLogEntry(
                id=entry.id,
                entity_id=entry.entity_id,
                entity_type=entry.entity_type,
                action=entry.action,
                changed_by=entry.changed_by,
                timestamp=entry.timestamp,
                changes=payload["changes"],
            )
        )


class SqlAlchemyStore(ControlPlaneStore):
    """Store over any SQLAlchemy session factory (PostgreSQL in deployment)."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        check_deadline()
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            logger.exception("Store read failed")
            raise StorageError() from exc
        finally:
            db.close()

    def _apply_statement_timeout(self, db: Session) -> None:
        left = remaining()
        if left is None or db.get_bind().dialect.name != "postgresql":
            return
        db.execute(text(f"SET LOCAL statement_timeout = {max(int(left * 1000), 1)}"))

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        check_deadline()
        db = self._session_factory()
        try:
            self._apply_statement_timeout(db)
            yield _SqlTransaction(db)
            check_deadline()
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.warning("Store transaction rejected by a constraint", extra={"error": str(exc.orig)})
            raise ConflictError("Conflicting modification") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            if getattr(getattr(exc, "orig", None), "pgcode", None) in RETRYABLE_PGCODES:
                logger.warning("Store transaction lost a lock race", extra={"error": str(exc.orig)})
                raise ConflictError("Concurrent modification; re-read and retry") from exc
            logger.exception("Store transaction failed")
            raise StorageError() from exc
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()

    # ─── Point reads ───

    def get_feature(self, feature_id: UUID) -> Optional[FeatureRecord]:
        with self._session() as db:
            return _SqlReads(db).get_feature(feature_id)

    def get_feature_by_name(self, name: str) -> Optional[FeatureRecord]:
        with self._session() as db:
            return _SqlReads(db).get_feature_by_name(name)

    def get_role(self, role_id: UUID) -> Optional[AdminRoleRecord]:
        with self._session() as db:
            return _SqlReads(db).get_role(role_id)

    def get_role_by_name(self, name: str) -> Optional[AdminRoleRecord]:
        with self._session() as db:
            return _SqlReads(db).get_role_by_name(name)

    def get_admin_user(self, admin_user_id: UUID) -> Optional[AdminUserRecord]:
        with self._session() as db:
            return _SqlReads(db).get_admin_user(admin_user_id)

    def get_admin_user_by_ref(self, user_ref: str) -> Optional[AdminUserRecord]:
        with self._session() as db:
            return _SqlReads(db).get_admin_user_by_ref(user_ref)

    def count_role_assignees(self, role_id: UUID, statuses: Iterable[str]) -> int:
        with self._session() as db:
            return _SqlReads(db).count_role_assignees(role_id, statuses)

    def count_admin_users(self) -> int:
        with self._session() as db:
            return _SqlReads(db).count_admin_users()

    # ─── Filtered reads ───

    def list_features(
        self, filters: FeatureFilter, offset: int, limit: int
    ) -> Tuple[List[FeatureRecord], int]:
        with self._session() as db:
            query = db.query(Feature)
            if not filters.include_retired:
                query = query.filter(Feature.retired.is_(False))
            if filters.category:
                query = query.filter(Feature.category == filters.category)
            if filters.status:
                query = query.filter(Feature.status == filters.status)
            if filters.enabled is not None:
                query = query.filter(Feature.enabled.is_(filters.enabled))
            if filters.priority:
                query = query.filter(Feature.priority == filters.priority)
            if filters.platform:
                # platforms is a JSON array of known tokens; match the quoted element
                query = query.filter(cast(Feature.platforms, String).contains(f'"{filters.platform}"'))
            if filters.search:
                query = query.filter(or_(
                    _contains(Feature.name, filters.search),
                    _contains(Feature.display_name, filters.search),
                    _contains(Feature.description, filters.search),
                ))

            total = query.count()
            if filters.sort == "name":
                query = query.order_by(Feature.name)
            elif filters.sort == "priority":
                rank = case(PRIORITY_RANK, value=Feature.priority, else_=len(PRIORITY_RANK))
                query = query.order_by(rank, Feature.created_at, Feature.name)
            elif filters.sort == "updated":
                query = query.order_by(Feature.updated_at.desc(), Feature.name)
            else:
                query = query.order_by(Feature.created_at, Feature.name)
            rows = query.offset(offset).limit(limit).all()
            return [_to_feature(row) for row in rows], total

    def all_features(self) -> List[FeatureRecord]:
        with self._session() as db:
            rows = db.query(Feature).order_by(Feature.created_at, Feature.name).all()
            return [_to_feature(row) for row in rows]

    def list_roles(
        self, filters: RoleFilter, offset: int, limit: int
    ) -> Tuple[List[AdminRoleRecord], int]:
        with self._session() as db:
            query = db.query(AdminRole).filter(AdminRole.is_deleted.is_(False))
            if filters.is_active is not None:
                query = query.filter(AdminRole.is_active.is_(filters.is_active))
            if filters.search:
                query = query.filter(or_(
                    _contains(AdminRole.name, filters.search),
                    _contains(AdminRole.display_name, filters.search),
                    _contains(AdminRole.description, filters.search),
                ))
            total = query.count()
            rows = query.order_by(AdminRole.level, AdminRole.name).offset(offset).limit(limit).all()
            return [_to_role(row) for row in rows], total

    def list_admin_users(
        self, filters: AdminUserFilter, offset: int, limit: int
    ) -> Tuple[List[AdminUserRecord], int]:
        with self._session() as db:
            query = db.query(AdminUser)
            if filters.status:
                query = query.filter(AdminUser.status == filters.status)
            elif not filters.include_removed:
                query = query.filter(AdminUser.status != "removed")
            if filters.role_id:
                query = query.filter(AdminUser.role_id == filters.role_id)
            if filters.search:
                query = query.filter(_contains(AdminUser.user_ref, filters.search))
            total = query.count()
            rows = query.order_by(AdminUser.created_at, AdminUser.user_ref).offset(offset).limit(limit).all()
            return [_to_admin_user(row) for row in rows], total

    def list_audit(
        self, entity_id: UUID, offset: int, limit: int
    ) -> Tuple[List[AuditEntry], int]:
        with self._session() as db:
            query = db.query(AuditLogEntry).filter(AuditLogEntry.entity_id == entity_id)
            total = query.count()
            rows = (
                query.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.sequence.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [AuditEntry.model_validate(row) for row in rows], total
