"""
Service errors and their HTTP rendering.

Services raise these; the handlers registered in main.py turn them
(and FastAPI's own HTTPException) into a {"status": "error", "message": ...} body.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(ServiceError):
    """Missing or malformed input the caller can fix."""
    status_code = 400


class PermissionDeniedError(ServiceError):
    """Role or eligibility mismatch."""
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """Target is already in the state the caller tried to move it to."""
    status_code = 400


class UpstreamError(ServiceError):
    status_code = 500


def error_body(message: str) -> dict:
    return {"status": "error", "message": message}


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error envelope to every error path."""

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
        return JSONResponse(status_code=422, content=error_body(message))

    @app.exception_handler(PyMongoError)
    async def database_error_handler(request: Request, exc: PyMongoError):
        logger.exception("Database failure on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body("Database operation failed"))
