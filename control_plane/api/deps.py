from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Header, Query

from control_plane.config import settings
from control_plane.repositories.memory import InMemoryStore
from control_plane.schemas.admin import AdminStatus, AdminUserFilter, RoleFilter
from control_plane.schemas.feature import Category, FeatureFilter, Platform, Priority, Status
from control_plane.schemas.pagination import PageParams
from control_plane.services.bootstrap import bootstrap_super_admin, seed_default_roles
from control_plane.services.control_plane import ControlPlane


@lru_cache
def get_control_plane() -> ControlPlane:
    """Process-wide control plane over the configured store backend."""
    if settings.STORE_BACKEND == "memory":
        # fresh store per process: standard roles plus FIRST_SUPER_ADMIN_REF
        store = InMemoryStore()
        cp = ControlPlane(store)
        seed_default_roles(store, cp.audit)
        bootstrap_super_admin(store, cp.audit, settings.FIRST_SUPER_ADMIN_REF)
        return cp

    from control_plane.db.session import SessionLocal
    from control_plane.repositories.sql import SqlAlchemyStore

    return ControlPlane(SqlAlchemyStore(SessionLocal))


def get_actor(x_actor: Optional[str] = Header(default=None)) -> str:
    """Acting admin's user_ref. Missing means anonymous, which every permission check denies."""
    return (x_actor or "").strip()


def get_page_params(
    page: int = Query(default=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def get_feature_filter(
    category: Optional[Category] = None,
    status: Optional[Status] = None,
    enabled: Optional[bool] = None,
    platform: Optional[Platform] = None,
    priority: Optional[Priority] = None,
    search: Optional[str] = None,
    include_retired: bool = False,
    sort: str = Query(default="created", pattern="^(created|name|priority|updated)$"),
) -> FeatureFilter:
    return FeatureFilter(
        category=category,
        status=status,
        enabled=enabled,
        platform=platform,
        priority=priority,
        search=search,
        include_retired=include_retired,
        sort=sort,
    )


def get_role_filter(search: Optional[str] = None, is_active: Optional[bool] = None) -> RoleFilter:
    return RoleFilter(search=search, is_active=is_active)


def get_admin_user_filter(
    search: Optional[str] = None,
    status: Optional[AdminStatus] = None,
    role_id: Optional[UUID] = None,
    include_removed: bool = False,
) -> AdminUserFilter:
    return AdminUserFilter(search=search, status=status, role_id=role_id, include_removed=include_removed)

