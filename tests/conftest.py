from __future__ import annotations

import calendar
import json
from pathlib import Path
from typing import Callable

import pytest

from build_calendars import RunConfig, YearRecord, parse_year_record
from languages import DEFAULT_LANGUAGES



def full_month(year: int, month: int, hours: float = 8) -> dict[str, float]:
    return {str(day): hours for day in range(1, calendar.monthrange(year, month)[1] + 1)}


@pytest.fixture
def month_days() -> Callable[..., dict[str, float]]:
    return full_month


@pytest.fixture
def year_payload() -> Callable[..., dict[str, object]]:
    def build(year: int, months: list[int] | None = None, hours: float = 8) -> dict[str, object]:
        return {
            "year": year,
            "months": {str(month): full_month(year, month, hours) for month in (months or range(1, 13))},
        }

    return build


@pytest.fixture
def year_record(year_payload) -> Callable[..., YearRecord]:
    def build(year: int, months: list[int] | None = None, hours: float = 8) -> YearRecord:
        return parse_year_record(year_payload(year, months, hours))

    return build


@pytest.fixture
def write_year_file() -> Callable[[Path, str, dict[str, object]], Path]:
    def write(folder: Path, name: str, payload: dict[str, object]) -> Path:
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return write


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    return RunConfig(
        input_folder=tmp_path / "input",
        output_dir=tmp_path / "calendars",
        skip_days=frozenset({0, 6}),
        languages=DEFAULT_LANGUAGES,
        dtstamp="20240601T123000Z",
    )


def unfold(text: str) -> list[str]:
    return text.replace("\r\n ", "").split("\r\n")


@pytest.fixture
def unfold_lines() -> Callable[[str], list[str]]:
    return unfold
