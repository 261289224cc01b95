"""
src/symptomcore/core/error_handlers.py

Unified exception handlers for the SymptomCore FastAPI app.

All errors return:
    {
        "error": "<short message>",
        "request_id": "<uuid | null>",
        "code": <http_status_int>
    }

Domain errors add "error_code" (LIBRARY_UNAVAILABLE, INVALID_DIMENSION, ...).
Stack traces are NEVER exposed in the response body.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from symptomcore.config import get_settings
from symptomcore.core.errors import InvalidDimension, LibraryUnavailable, SymptomCoreError

_log = logging.getLogger("symptomcore.errors")


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _err_body(message: str, code: int, request: Request) -> dict:
    return {
        "error": message,
        "request_id": _request_id(request),
        "code": code,
    }


def status_for(exc: SymptomCoreError) -> int:
    if isinstance(exc, LibraryUnavailable):
        return 503
    if isinstance(exc, InvalidDimension):
        return 422
    return 400


def register_error_handlers(app: FastAPI) -> None:
    """Attach all unified error handlers to the given FastAPI app."""

    @app.exception_handler(SymptomCoreError)
    async def domain_error_handler(request: Request, exc: SymptomCoreError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            _log.error("%s request_id=%s path=%s: %s", exc.code, _request_id(request), request.url.path, exc)
        else:
            _log.warning("%s request_id=%s path=%s", exc.code, _request_id(request), request.url.path)
        body = _err_body(str(exc), status, request)
        body["error_code"] = exc.code
        return JSONResponse(status_code=status, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = str(exc.detail) if exc.detail else "Request error"
        if exc.status_code >= 500:
            _log.error(
                "HTTP %d %s request_id=%s path=%s",
                exc.status_code,
                detail,
                _request_id(request),
                request.url.path,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=_err_body(detail, exc.status_code, request),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        _log.warning(
            "Validation error request_id=%s path=%s",
            _request_id(request),
            request.url.path,
        )
        body = _err_body("Invalid request body or parameters", 422, request)
        if not get_settings().is_production:
            body["detail"] = jsonable_errors(exc)
        return JSONResponse(status_code=422, content=body)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        _log.exception(
            "Unhandled exception request_id=%s path=%s",
            _request_id(request),
            request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=_err_body("Unexpected server error", 500, request),
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic puts the raw exception object in ctx for custom validators
    out = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        err.pop("url", None)
        out.append(err)
    return out
