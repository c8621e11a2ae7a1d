"""Admin user directory API.

Endpoints:
- POST   /admin-users                     → assign a role to a user_ref
- GET    /admin-users                     → list (search, status, role_id)
- GET    /admin-users/check/{user_ref}    → is the user an active admin
- GET    /admin-users/{id}                → get
- POST   /admin-users/{id}/reassign       → move to another role
- POST   /admin-users/{id}/suspend
- POST   /admin-users/{id}/activate
- DELETE /admin-users/{id}                → remove (terminal)
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from control_plane.api import deps
from control_plane.schemas.admin import (
    AdminCheck,
    AdminUserAssign,
    AdminUserFilter,
    AdminUserReassign,
    AdminUserRecord,
)
from control_plane.schemas.pagination import Page, PageParams
from control_plane.services.control_plane import ControlPlane

router = APIRouter()


@router.post("/", response_model=AdminUserRecord, status_code=status.HTTP_201_CREATED)
def assign_admin(
    body: AdminUserAssign,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.admin_users.assign(actor, body.user_ref, body.role_id)


@router.get("/", response_model=Page[AdminUserRecord])
def list_admins(
    filters: AdminUserFilter = Depends(deps.get_admin_user_filter),
    page: PageParams = Depends(deps.get_page_params),
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.admin_users.list(actor, filters, page)


@router.get("/check/{user_ref}", response_model=AdminCheck)
def check_admin(
    user_ref: str,
    cp: ControlPlane = Depends(deps.get_control_plane),
) -> Any:
    return AdminCheck(user_ref=user_ref, is_admin=cp.admin_users.is_admin(user_ref))


@router.get("/{admin_user_id}", response_model=AdminUserRecord)
def get_admin(
    admin_user_id: UUID,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.admin_users.get(actor, admin_user_id)


@router.post("/{admin_user_id}/reassign", response_model=AdminUserRecord)
def reassign_admin(
    admin_user_id: UUID,
    body: AdminUserReassign,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.admin_users.reassign(actor, admin_user_id, body.role_id, expected_version)


@router.post("/{admin_user_id}/suspend", response_model=AdminUserRecord)
def suspend_admin(
    admin_user_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.admin_users.suspend(actor, admin_user_id, expected_version)


@router.post("/{admin_user_id}/activate", response_model=AdminUserRecord)
def activate_admin(
    admin_user_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.admin_users.activate(actor, admin_user_id, expected_version)


@router.delete("/{admin_user_id}", response_model=AdminUserRecord)
def remove_admin(
    admin_user_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.admin_users.remove(actor, admin_user_id, expected_version)
