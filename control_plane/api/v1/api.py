from fastapi import APIRouter

from control_plane.api.v1.endpoints import admin_roles, admin_users, features

api_router = APIRouter()
api_router.include_router(features.router, prefix="/features", tags=["features"])
api_router.include_router(admin_roles.router, prefix="/admin-roles", tags=["admin-roles"])
api_router.include_router(admin_users.router, prefix="/admin-users", tags=["admin-users"])
