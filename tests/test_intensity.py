from __future__ import annotations

import pytest

from symptomcore.pipeline.intensity import (
    COLOR_THEMES,
    IntensityBucket,
    bubble_radius,
    bucket_color,
    classify,
    legend,
    normalized_score,
)


@pytest.mark.parametrize(
    "value, max_value, expected",
    [
        (0, 0, IntensityBucket.LOWEST),
        (5, 0, IntensityBucket.LOWEST),
        (0, 10, IntensityBucket.LOWEST),
        (1, 10, IntensityBucket.LOW),
        (3, 10, IntensityBucket.MEDIUM),
        (5, 10, IntensityBucket.HIGH),
        (7, 10, IntensityBucket.HIGHEST),
        (10, 10, IntensityBucket.HIGHEST),
        (20, 10, IntensityBucket.HIGHEST),
        (-3, 10, IntensityBucket.LOWEST),
    ],
)
def test_classify(value, max_value, expected):
    assert classify(value, max_value) is expected


def test_log_scale_lifts_small_values():
    # raw share 0.1 would be LOWEST on a linear scale
    assert normalized_score(1, 10) > 0.2


@pytest.mark.parametrize("max_value", [1, 2, 7, 50, 400])
def test_monotone_in_value(max_value):
    ranks = [classify(v, max_value).rank for v in range(0, max_value + 1)]
    assert ranks == sorted(ranks)
    assert ranks[-1] == IntensityBucket.HIGHEST.rank


def test_same_input_same_bucket_for_every_chart():
    bucket = classify(3, 8)
    assert bucket_color(bucket) == COLOR_THEMES["iridis"][bucket]
    assert bubble_radius(bucket) > bubble_radius(IntensityBucket.LOWEST)


def test_default_palette():
    assert bucket_color(IntensityBucket.HIGHEST) == "#994C99"
    assert bucket_color(IntensityBucket.LOWEST) == "#EDF8FB"


def test_every_theme_covers_every_bucket():
    for theme in COLOR_THEMES.values():
        assert set(theme) == set(IntensityBucket)


def test_unknown_theme():
    with pytest.raises(ValueError):
        bucket_color(IntensityBucket.HIGH, "neon")


def test_legend_bounds_reproduce_buckets():
    rows = legend(10)
    assert [r["bucket"] for r in rows] == ["HIGHEST", "HIGH", "MEDIUM", "LOW", "LOWEST"]
    for r in rows:
        assert classify(r["min_value"] + 1e-6, 10).value == r["bucket"]


def test_legend_without_data():
    rows = legend(0)
    assert rows[0]["min_value"] is None
    assert rows[-1]["min_value"] == 0.0
