# src/symptomcore/api/main.py
from __future__ import annotations

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from symptomcore import MATCHER_VERSION, __version__
from symptomcore.api.deps import EngineCache, get_engine_cache, get_library
from symptomcore.api.schemas import (
    ClassifyItem,
    ClassifyRequest,
    ClassifyResponse,
    ExtractRequest,
    ExtractResponse,
    MatcherOptions,
    PivotRequest,
    PivotResponse,
)
from symptomcore.config import get_settings
from symptomcore.core.error_handlers import register_error_handlers
from symptomcore.core.health import router as health_router
from symptomcore.core.logging import setup_json_logging
from symptomcore.core.middleware import RequestIDMiddleware
from symptomcore.extraction.library import SymptomLibrary
from symptomcore.extraction.matcher import PRESETS, MatcherConfig, preset
from symptomcore.extraction.models import SymptomOrProblem
from symptomcore.pipeline import intensity
from symptomcore.pipeline.aggregator import Dimension
from symptomcore.pipeline.batch import aggregate_corpus, extract_events

log = logging.getLogger("symptomcore.api")

router = APIRouter()


def _matcher_config(opts: MatcherOptions) -> MatcherConfig:
    settings = get_settings()
    overrides = {"min_phrase_chars": settings.MIN_PHRASE_CHARS}
    overrides["negation_window"] = opts.negation_window or settings.NEGATION_WINDOW
    if opts.expand_shared_segments is not None:
        overrides["expand_shared_segments"] = opts.expand_shared_segments
    return replace(preset(opts.preset), **overrides)


@router.get("/version")
async def version() -> dict:
    return {"version": __version__, "matcher": MATCHER_VERSION, "presets": sorted(PRESETS)}


@router.post("/extract", response_model=ExtractResponse)
async def extract(
    payload: ExtractRequest,
    request: Request,
    library: SymptomLibrary = Depends(get_library),
    cache: EngineCache = Depends(get_engine_cache),
) -> ExtractResponse:
    engine = cache.get(library, _matcher_config(payload.matcher))
    rows = [n.to_row() for n in payload.notes]

    # matching is CPU bound; keep it off the event loop
    result = await run_in_threadpool(extract_events, rows, engine)

    return ExtractResponse(
        events=[e.to_dict() for e in result.events],
        warnings=[w.to_dict() for w in result.warnings],
        summary=result.summary(),
        request_id=getattr(request.state, "request_id", None),
    )


@router.post("/pivot", response_model=PivotResponse)
async def pivot(
    payload: PivotRequest,
    request: Request,
    library: SymptomLibrary = Depends(get_library),
    cache: EngineCache = Depends(get_engine_cache),
) -> PivotResponse:
    settings = get_settings()
    dimension = Dimension.parse(payload.dimension)
    engine = cache.get(library, _matcher_config(payload.matcher))

    max_rows = payload.max_rows if payload.max_rows is not None else settings.PIVOT_MAX_ROWS
    date_range = None
    if payload.date_from or payload.date_to:
        date_range = (payload.date_from, payload.date_to)

    matrix, result = await run_in_threadpool(
        lambda: aggregate_corpus(
            [n.to_row() for n in payload.notes],
            engine,
            dimension,
            date_range,
            include_negated=payload.include_negated,
            patient_ids=payload.patient_ids,
            kind=SymptomOrProblem(payload.kind) if payload.kind else None,
            max_rows=max_rows or None,
        )
    )

    body = matrix.to_response()
    if "heatmap" in payload.series:
        body["heatmap"] = matrix.heatmap_series()
    if "bubble" in payload.series:
        body["bubble"] = matrix.bubble_series()
    if "percentages" in payload.series:
        body["percentages"] = matrix.percentages()

    return PivotResponse(
        **body,
        warnings=[w.to_dict() for w in result.warnings],
        request_id=getattr(request.state, "request_id", None),
    )


@router.post("/intensity/classify", response_model=ClassifyResponse)
async def classify(payload: ClassifyRequest) -> ClassifyResponse:
    if payload.theme not in intensity.COLOR_THEMES:
        raise HTTPException(status_code=422, detail=f"unknown theme: {payload.theme}")

    results = []
    for v in payload.values:
        bucket = intensity.classify(v, payload.max_value)
        results.append(
            ClassifyItem(
                value=v,
                bucket=bucket.value,
                color=intensity.bucket_color(bucket, payload.theme),
                radius=intensity.bubble_radius(bucket),
            )
        )
    return ClassifyResponse(max_value=payload.max_value, theme=payload.theme, results=results)


@router.get("/intensity/legend")
async def intensity_legend(
    max_value: float = Query(0.0, ge=0),
    theme: str = Query(intensity.DEFAULT_THEME),
) -> dict:
    if theme not in intensity.COLOR_THEMES:
        raise HTTPException(status_code=422, detail=f"unknown theme: {theme}")
    return {"max_value": max_value, "theme": theme, "buckets": intensity.legend(max_value, theme)}


def create_app() -> FastAPI:
    settings = get_settings()
    setup_json_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.APP_NAME, version=__version__)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(router)

    log.info("app created env=%s", settings.ENV)
    return app


app = create_app()
