# tests/conftest.py

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
import yaml

from core.config import Settings
from services.date_adjuster import DateAdjuster
from services.weekday_conditions import WeekdayEvaluator


@pytest.fixture()
def evaluator() -> WeekdayEvaluator:
    """Evaluator on the default weekend-as-holiday calendar."""
    return WeekdayEvaluator()


@pytest.fixture()
def adjuster(evaluator: WeekdayEvaluator) -> DateAdjuster:
    return DateAdjuster(evaluator)


@pytest.fixture()
def january_2025() -> list[date]:
    """Four full weeks starting on Wednesday 2025-01-01."""
    return [date(2025, 1, day) for day in range(1, 29)]


@pytest.fixture()
def write_config(tmp_path: Path):
    def _write(data: dict) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a per-test config path (absent unless written)."""
    return Settings(RECURRENCE_CONFIG_PATH=str(tmp_path / "config.yaml"))
