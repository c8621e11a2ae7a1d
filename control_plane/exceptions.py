"""Typed errors raised by the control plane.

Every failed mutation surfaces one of these and leaves state unchanged.
"""
from typing import Optional


class ControlPlaneError(Exception):
    """Base exception for all control plane errors."""

    code = "CONTROL_PLANE_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[list[dict[str, str]]] = None):
        self.message = message
        self.details = details or []
        super().__init__(message)


class ValidationError(ControlPlaneError):
    """Malformed input; reported before any state change (400)."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[list[dict[str, str]]] = None,
    ):
        super().__init__(message, details)


class NotFoundError(ControlPlaneError):
    """Referenced feature / role / admin user does not exist (404)."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource_type: str = "Resource", resource_id: Optional[str] = None):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} '{resource_id}' not found"
        super().__init__(message)
        self.resource_type = resource_type
        self.resource_id = resource_id


class PermissionDeniedError(ControlPlaneError):
    """Actor lacks the required permission (403).

    The message never names the missing permission.
    """

    code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(self, message: str = "Insufficient privilege"):
        super().__init__(message)


class ConflictError(ControlPlaneError):
    """Constraint violated under concurrent modification; re-read and retry (409)."""

    code = "CONFLICT"
    status_code = 409

    def __init__(self, message: str = "Conflicting modification"):
        super().__init__(message)


class StorageError(ControlPlaneError):
    """Underlying persistence failure; nothing was committed (503)."""

    code = "STORAGE_ERROR"
    status_code = 503

    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message)


class DeadlineExceededError(StorageError):
    """The caller's deadline passed before the store call was made (504)."""

    code = "DEADLINE_EXCEEDED"
    status_code = 504

    def __init__(self, message: str = "Request deadline exceeded"):
        super().__init__(message)
