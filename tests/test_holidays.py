# tests/test_holidays.py

from __future__ import annotations

from datetime import date, datetime

from core.config import HolidayConfig, Settings
from services.holidays import ConfiguredHolidayCalendar, build_holiday_lookup, weekend_as_holiday


def test_weekend_fallback() -> None:
    assert weekend_as_holiday(date(2025, 1, 18))
    assert weekend_as_holiday(datetime(2025, 1, 19, 12, 0))
    assert not weekend_as_holiday(date(2025, 1, 17))


def test_configured_ranges_are_inclusive() -> None:
    calendar = ConfiguredHolidayCalendar(
        [HolidayConfig(name="Winter break", start="2025-12-24", end="2025-12-26")],
        weekend_is_holiday=False,
    )
    assert calendar(date(2025, 12, 24))
    assert calendar(date(2025, 12, 26))
    assert not calendar(date(2025, 12, 27))
    assert calendar.holiday_name(date(2025, 12, 25)) == "Winter break"


def test_configured_calendar_can_keep_weekends() -> None:
    calendar = ConfiguredHolidayCalendar([HolidayConfig(name="New Year", start="2025-01-01")])
    assert calendar(date(2025, 1, 1))
    assert calendar(date(2025, 1, 4))
    assert not calendar(date(2025, 1, 2))


def test_inverted_range_is_ignored() -> None:
    calendar = ConfiguredHolidayCalendar([HolidayConfig(name="Typo", start="2025-05-10", end="2025-05-01")])
    assert len(calendar) == 0


def test_lookup_without_config_file_is_weekend_fallback(settings: Settings) -> None:
    assert build_holiday_lookup(settings) is weekend_as_holiday


def test_lookup_from_yaml(settings: Settings, write_config) -> None:
    write_config(
        {
            "holiday_calendar": {
                "weekend_is_holiday": False,
                "holidays": [{"name": "Golden Week", "start": "2025-04-29", "end": "2025-05-06"}],
            }
        }
    )
    lookup = build_holiday_lookup(settings)
    assert lookup(date(2025, 5, 1))
    assert not lookup(date(2025, 5, 10))


def test_app_config_defaults(settings: Settings) -> None:
    config = settings.load_app_config()
    assert config.recurrence.scan_limit == 366
    assert config.recurrence.occurrence_limit == 200
    assert config.recurrence.preview_count == 20
    assert config.holiday_calendar.weekend_is_holiday is True


def test_reload_picks_up_changes(settings: Settings, write_config) -> None:
    write_config({"recurrence": {"preview_count": 5}})
    assert settings.load_app_config().recurrence.preview_count == 5

    write_config({"recurrence": {"preview_count": 7}})
    assert settings.reload_app_config().recurrence.preview_count == 7
