from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from symptomcore.pipeline.comparison import ComparisonReport


LOG_NAME = "comparison_log.jsonl"


def log_comparison(report: "ComparisonReport", log_path: str | Path) -> Path:
    """Append one JSON line per comparison run; the file is never rewritten."""
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    entry = {
        "entry_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "run_id": report.run_id,
        "library_fingerprint": report.library_fingerprint,
        "library_records": report.library_records,
        "engine_a": report.engine_a,
        "engine_b": report.engine_b,
        "notes_compared": report.notes_compared,
        "notes_skipped": report.notes_skipped,
        "events_a": report.events_a,
        "events_b": report.events_b,
        "missed_by_a": report.missed_by_a,
        "missed_by_b": report.missed_by_b,
        "precision": round(report.precision, 6),
        "recall": round(report.recall, 6),
        "f1": round(report.f1, 6),
    }

    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry) + "\n")

    return path
