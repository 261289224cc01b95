"""
src/symptomcore/core/health.py

Health + readiness probe endpoints.

GET /health/live  - liveness: always 200 (process is alive)
GET /health/ready - readiness: the reference library loads and is non-empty,
                    503 otherwise
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from symptomcore.api.deps import get_library
from symptomcore.core.errors import LibraryUnavailable

_log = logging.getLogger("symptomcore.health")

router = APIRouter(tags=["health"])


@router.get("/health/live")
async def health_live() -> JSONResponse:
    """Liveness probe: always 200 while the process runs."""
    return JSONResponse(status_code=200, content={"status": "ok", "probe": "live"})


@router.get("/health/ready")
async def health_ready(request: Request) -> JSONResponse:
    """
    Readiness probe: 200 only when the library is loaded with records.

    Uses the same dependency as the matching endpoints, so an override in
    tests or a cached load in production is what gets probed.
    """
    provider = request.app.dependency_overrides.get(get_library, get_library)
    try:
        library = provider()
    except LibraryUnavailable as exc:
        _log.error("health_ready: library unavailable: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "error", "probe": "ready", "library": "unavailable"},
        )

    if len(library) == 0:
        _log.error("health_ready: library is empty")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "probe": "ready", "library": "empty"},
        )

    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "probe": "ready",
            "library": "loaded",
            "records": len(library),
            "fingerprint": library.fingerprint,
        },
    )
