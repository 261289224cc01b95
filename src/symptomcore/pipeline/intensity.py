"""
Intensity Classifier: the one shared threshold ladder for every chart.

classify(value, max_value) -> IntensityBucket

    n     = clamp(value / max_value, 0, 1)        (max_value <= 0 -> LOWEST)
    score = max(n, log(1 + 9n) / log(10))
    >= 0.80 HIGHEST, >= 0.60 HIGH, >= 0.40 MEDIUM, >= 0.20 LOW, else LOWEST

Heatmap colours, bubble radii and legends are looked up from the bucket; no
chart recomputes a threshold of its own.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Any


class IntensityBucket(str, Enum):
    HIGHEST = "HIGHEST"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    LOWEST = "LOWEST"

    @property
    def rank(self) -> int:
        """0 for LOWEST up to 4 for HIGHEST."""
        return _RANK[self]


# (threshold, bucket), checked top-down
THRESHOLDS: tuple[tuple[float, IntensityBucket], ...] = (
    (0.80, IntensityBucket.HIGHEST),
    (0.60, IntensityBucket.HIGH),
    (0.40, IntensityBucket.MEDIUM),
    (0.20, IntensityBucket.LOW),
)

_RANK = {
    IntensityBucket.LOWEST: 0,
    IntensityBucket.LOW: 1,
    IntensityBucket.MEDIUM: 2,
    IntensityBucket.HIGH: 3,
    IntensityBucket.HIGHEST: 4,
}

COLOR_THEMES: dict[str, dict[IntensityBucket, str]] = {
    "iridis": {
        IntensityBucket.HIGHEST: "#994C99",
        IntensityBucket.HIGH: "#8856A7",
        IntensityBucket.MEDIUM: "#8C96C6",
        IntensityBucket.LOW: "#B3CDE3",
        IntensityBucket.LOWEST: "#EDF8FB",
    },
    "viridis": {
        IntensityBucket.HIGHEST: "#440154",
        IntensityBucket.HIGH: "#3B528B",
        IntensityBucket.MEDIUM: "#21908C",
        IntensityBucket.LOW: "#5DC963",
        IntensityBucket.LOWEST: "#FDE725",
    },
    "grayscale": {
        IntensityBucket.HIGHEST: "#252525",
        IntensityBucket.HIGH: "#636363",
        IntensityBucket.MEDIUM: "#969696",
        IntensityBucket.LOW: "#CCCCCC",
        IntensityBucket.LOWEST: "#F7F7F7",
    },
}
DEFAULT_THEME = "iridis"

# bubble radius in px per bucket
BUBBLE_RADIUS: dict[IntensityBucket, int] = {
    IntensityBucket.HIGHEST: 20,
    IntensityBucket.HIGH: 16,
    IntensityBucket.MEDIUM: 12,
    IntensityBucket.LOW: 8,
    IntensityBucket.LOWEST: 5,
}


def normalized_score(value: float, max_value: float) -> float:
    if max_value <= 0:
        return 0.0
    n = min(1.0, max(0.0, float(value) / float(max_value)))
    return max(n, math.log(1 + 9 * n) / math.log(10))


def classify(value: float, max_value: float) -> IntensityBucket:
    if max_value <= 0:
        return IntensityBucket.LOWEST
    score = normalized_score(value, max_value)
    for threshold, bucket in THRESHOLDS:
        if score >= threshold:
            return bucket
    return IntensityBucket.LOWEST


def bucket_color(bucket: IntensityBucket, theme: str = DEFAULT_THEME) -> str:
    try:
        return COLOR_THEMES[theme][bucket]
    except KeyError:
        raise ValueError(f"unknown colour theme {theme!r}; expected one of {sorted(COLOR_THEMES)}") from None


def bubble_radius(bucket: IntensityBucket) -> int:
    return BUBBLE_RADIUS[bucket]


def _min_fraction(threshold: float) -> float:
    # smallest n with log(1 + 9n) / log(10) >= threshold
    return (10 ** threshold - 1) / 9


def legend(max_value: float, theme: str = DEFAULT_THEME) -> list[dict[str, Any]]:
    """Legend rows HIGHEST..LOWEST with the smallest value landing in each bucket.

    ``min_value`` is the raw count lower bound for the given matrix maximum, so
    the legend is reproducible from the data alone.
    """
    rows: list[dict[str, Any]] = []
    for threshold, bucket in THRESHOLDS:
        frac = _min_fraction(threshold)
        rows.append({
            "bucket": bucket.value,
            "threshold": threshold,
            "min_fraction": round(frac, 6),
            "min_value": round(frac * max_value, 6) if max_value > 0 else None,
            "color": bucket_color(bucket, theme),
            "radius": bubble_radius(bucket),
        })
    rows.append({
        "bucket": IntensityBucket.LOWEST.value,
        "threshold": 0.0,
        "min_fraction": 0.0,
        "min_value": 0.0,
        "color": bucket_color(IntensityBucket.LOWEST, theme),
        "radius": bubble_radius(IntensityBucket.LOWEST),
    })
    return rows
