"""Map control plane errors onto HTTP responses.

Body shape: ``{"error": {"code", "message", "details"}}``.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from control_plane.exceptions import ControlPlaneError, StorageError

logger = logging.getLogger("control_plane.api")


def _error_response(status_code: int, code: str, message: str, details: list) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details}},
    )


async def control_plane_error_handler(request: Request, exc: ControlPlaneError) -> JSONResponse:
    if isinstance(exc, StorageError):
        # full detail was logged where the failure happened; the caller gets the generic message
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
        for err in exc.errors()
    ]
    return _error_response(400, "VALIDATION_ERROR", "Invalid input", details)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ControlPlaneError, control_plane_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
