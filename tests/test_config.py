from __future__ import annotations

import pytest
from pydantic import ValidationError

from symptomcore.config import Settings


def test_defaults():
    s = Settings()
    assert s.NEGATION_WINDOW == 5
    assert s.PIVOT_MAX_ROWS == 400
    assert s.is_production is False


def test_env_override(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "25")
    monkeypatch.setenv("ENV", "prod")
    s = Settings()
    assert s.BATCH_SIZE == 25
    assert s.is_production is True


@pytest.mark.parametrize(
    "field, value",
    [("NEGATION_WINDOW", 0), ("NEGATION_WINDOW", 21), ("BATCH_SIZE", 0), ("MAX_WORKERS", 0), ("PIVOT_MAX_ROWS", -1)],
)
def test_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})
