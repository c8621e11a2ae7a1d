"""Admin role management API.

Endpoints:
- GET    /admin-roles                              → list (search, is_active)
- POST   /admin-roles                              → create
- GET    /admin-roles/name/{name}                  → get by name
- GET    /admin-roles/{id}                         → get
- PATCH  /admin-roles/{id}                         → update (name / level fixed)
- DELETE /admin-roles/{id}                         → delete (no active admins)
- POST   /admin-roles/{id}/permissions/add         → grant one permission
- POST   /admin-roles/{id}/permissions/remove      → revoke one permission
- GET    /admin-roles/{id}/users                   → admins holding the role
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from control_plane.api import deps
from control_plane.schemas.admin import (
    AdminRoleCreate,
    AdminRoleOut,
    AdminRoleUpdate,
    AdminUserRecord,
    PermissionChange,
    RoleFilter,
)
from control_plane.schemas.pagination import Page, PageParams
from control_plane.services.control_plane import ControlPlane

router = APIRouter()


@router.get("/", response_model=Page[AdminRoleOut])
def list_roles(
    filters: RoleFilter = Depends(deps.get_role_filter),
    page: PageParams = Depends(deps.get_page_params),
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.list_roles(actor, filters, page)


@router.post("/", response_model=AdminRoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    body: AdminRoleCreate,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.create_role(actor, body)


@router.get("/name/{name}", response_model=AdminRoleOut)
def get_role_by_name(
    name: str,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.get_role_by_name(actor, name)


@router.get("/{role_id}", response_model=AdminRoleOut)
def get_role(
    role_id: UUID,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.get_role(actor, role_id)


@router.patch("/{role_id}", response_model=AdminRoleOut)
def update_role(
    role_id: UUID,
    body: AdminRoleUpdate,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.update_role(actor, role_id, body, expected_version)


@router.delete("/{role_id}", response_model=AdminRoleOut)
def delete_role(
    role_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.delete_role(actor, role_id, expected_version)


@router.post("/{role_id}/permissions/add", response_model=AdminRoleOut)
def add_permission(
    role_id: UUID,
    body: PermissionChange,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.add_permission(actor, role_id, body.permission)


@router.post("/{role_id}/permissions/remove", response_model=AdminRoleOut)
def remove_permission(
    role_id: UUID,
    body: PermissionChange,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.remove_permission(actor, role_id, body.permission)


@router.get("/{role_id}/users", response_model=Page[AdminUserRecord])
def list_role_users(
    role_id: UUID,
    page: PageParams = Depends(deps.get_page_params),
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.authorization.list_role_users(actor, role_id, page)
