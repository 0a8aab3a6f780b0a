"""FastAPI dependencies and error translation."""
from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from .errors import AuthError, AuthErrorCode, StorageError, StorageErrorKind, ValidationError
from .session import SessionController
from .tracking import HealthTracker

logger = logging.getLogger(__name__)

_AUTH_STATUS = {
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.USER_NOT_FOUND: 401,
    AuthErrorCode.NOT_AUTHENTICATED: 401,
    AuthErrorCode.EMAIL_ALREADY_IN_USE: 409,
    AuthErrorCode.WEAK_PASSWORD: 422,
    AuthErrorCode.NETWORK_ERROR: 503,
    AuthErrorCode.UNKNOWN: 400,
}

_STORAGE_STATUS = {
    StorageErrorKind.NOT_FOUND: 404,
    StorageErrorKind.CONFLICT: 409,
    StorageErrorKind.LOCAL: 409,
    StorageErrorKind.NETWORK: 503,
}


def get_controller(request: Request) -> SessionController:
    return request.app.state.controller


def get_tracker(request: Request) -> HealthTracker:
    return HealthTracker(get_controller(request).store)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, AuthError):
        return HTTPException(
            status_code=_AUTH_STATUS[exc.code],
            detail={"error": exc.code.value, "message": exc.message},
        )
    if isinstance(exc, StorageError):
        return HTTPException(
            status_code=_STORAGE_STATUS[exc.kind],
            detail={"error": exc.kind.value, "message": exc.detail},
        )
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=422,
            detail={"error": "validation", "step": exc.step, "message": exc.detail},
        )
    logger.exception("unmapped error", exc_info=exc)
    return HTTPException(status_code=500, detail="Internal error")
