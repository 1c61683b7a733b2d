"""
Exception handlers for the HTTP API.

Responses carry a fixed, generic message per status; the specific reason is
written to the server log only.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..database.repository import ConflictError, NotFoundError, StorageError
from ..services.auth import AuthenticationError, AuthServiceError, PermissionDeniedError

logger = logging.getLogger(__name__)

GENERIC_MESSAGES = {
    401: "Authentication required",
    403: "Forbidden",
    404: "Not found",
    409: "Conflict",
    500: "Internal server error",
}


def _error_response(status_code: int) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": GENERIC_MESSAGES[status_code]},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    def handle_not_found(request: Request, exc: NotFoundError):
        logger.info("404 %s %s: %s", request.method, request.url.path, exc)
        return _error_response(404)

    @app.exception_handler(ConflictError)
    def handle_conflict(request: Request, exc: ConflictError):
        logger.info("409 %s %s: %s (%s)", request.method, request.url.path, exc, type(exc).__name__)
        return _error_response(409)

    @app.exception_handler(AuthenticationError)
    def handle_unauthenticated(request: Request, exc: AuthenticationError):
        logger.info("401 %s %s: %s", request.method, request.url.path, exc)
        return _error_response(401)

    @app.exception_handler(PermissionDeniedError)
    def handle_forbidden(request: Request, exc: PermissionDeniedError):
        logger.warning("403 %s %s: %s", request.method, request.url.path, exc)
        return _error_response(403)

    @app.exception_handler(StorageError)
    def handle_storage(request: Request, exc: StorageError):
        logger.error("500 %s %s: storage failure: %s", request.method, request.url.path, exc)
        return _error_response(500)

    @app.exception_handler(AuthServiceError)
    def handle_auth_service(request: Request, exc: AuthServiceError):
        logger.error("500 %s %s: auth service failure: %s", request.method, request.url.path, exc)
        return _error_response(500)
