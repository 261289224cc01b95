"""
src/symptomcore/core/logging.py

JSON structured logging + request_id / run_id contextvars for SymptomCore.

Usage:
    from symptomcore.core.logging import setup_json_logging, bound_run_id

    setup_json_logging()  # call once at startup (API or CLI)

    with bound_run_id() as run_id:
        ...  # every record carries run_id
"""
from __future__ import annotations

import json
import logging
import os
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

__all__ = [
    "request_id_ctx",
    "run_id_ctx",
    "bound_run_id",
    "setup_json_logging",
]

# ── Context variables ────────────────────────────────────────────────────────
# request_id: one HTTP request; run_id: one extraction / comparison run
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
run_id_ctx: ContextVar[str] = ContextVar("run_id", default="")


# ── JSON log formatter ────────────────────────────────────────────────────────

class _JsonFormatter(logging.Formatter):
    """Emit one JSON object per log record.

    Fields always present:
        timestamp  ISO-8601 UTC
        level      DEBUG / INFO / WARNING / ERROR / CRITICAL
        logger     logger name
        message    formatted log message

    Fields injected from context (empty string when absent):
        request_id
        run_id

    For records carrying exc_info the ``exc`` field is added (type + str only).
    Note text never reaches the log: matchers log ids and counts, not content.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self._utc_iso(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_ctx.get(""),
            "run_id": run_id_ctx.get(""),
        }

        if record.exc_info:
            exc_type, exc_val, _ = record.exc_info
            payload["exc"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "detail": str(exc_val),
            }

        return json.dumps(payload, ensure_ascii=False, default=str)

    @staticmethod
    def _utc_iso(created: float) -> str:
        t = time.gmtime(created)
        ms = int((created % 1) * 1000)
        return (
            f"{t.tm_year:04d}-{t.tm_mon:02d}-{t.tm_mday:02d}"
            f"T{t.tm_hour:02d}:{t.tm_min:02d}:{t.tm_sec:02d}.{ms:03d}Z"
        )


# ── Public helpers ───────────────────────────────────────────────────────────

@contextmanager
def bound_run_id(run_id: str | None = None) -> Iterator[str]:
    """Tag every record emitted inside the block with one run_id.

    Reuses an enclosing run_id so a comparison and its two extraction passes
    share a single identifier.
    """
    current = run_id_ctx.get("")
    rid = run_id or current or uuid.uuid4().hex
    token = run_id_ctx.set(rid)
    try:
        yield rid
    finally:
        run_id_ctx.reset(token)



def setup_json_logging(level: str | None = None) -> None:
    """Configure root logger with JSON formatter.

    Safe to call multiple times; won't add duplicate handlers.
    """
    root = logging.getLogger()

    if any(isinstance(h, logging.StreamHandler) and isinstance(h.formatter, _JsonFormatter)
           for h in root.handlers):
        return

    effective_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root.setLevel(effective_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter())
    root.addHandler(handler)
