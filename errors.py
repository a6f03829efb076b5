"""JSON error rendering shared by every route and the request gate."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

LOGGER = logging.getLogger(__name__)


def error_response(
    status_code: int,
    message: str,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=dict(headers or {}))


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for issue in exc.errors():
        location = [str(item) for item in issue.get("loc", ()) if item != "body"]
        path = ".".join(location) or "body"
        parts.append(f"{path}: {issue.get('msg', 'invalid value')}")
    return ", ".join(parts) or "Invalid request"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict):
            return JSONResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)
        return error_response(exc.status_code, str(exc.detail), exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(400, _format_validation_errors(exc))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        LOGGER.info("Duplicate key on %s %s: %s", request.method, request.url.path, exc)
        return error_response(409, "This record already exists")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        LOGGER.exception(
            "Unhandled error while processing %s %s", request.method, request.url.path
        )
        return error_response(500, "Internal server error")


__all__ = ["error_response", "install_error_handlers"]
