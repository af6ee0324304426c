"""Holiday lookups injected into the weekday evaluator.

A lookup is any ``Callable[[date], bool]``. Without a richer calendar the
engine treats Saturday and Sunday as holidays; this is a placeholder, not a
public-holiday calendar.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Iterable

from core.config import HolidayCalendarConfig, HolidayConfig, Settings, get_settings
from core.time_utils import as_date

logger = logging.getLogger(__name__)

HolidayLookup = Callable[[date], bool]


def weekend_as_holiday(day: date | datetime) -> bool:
    """Fallback lookup: Saturday and Sunday are holidays."""
    return as_date(day).weekday() >= 5


class ConfiguredHolidayCalendar:
    """Holiday lookup backed by explicit (inclusive) date ranges."""

    def __init__(
        self,
        holidays: Iterable[HolidayConfig] = (),
        *,
        weekend_is_holiday: bool = True,
    ) -> None:
        self.weekend_is_holiday = weekend_is_holiday
        self._ranges: list[tuple[date, date, str]] = []
        for holiday in holidays:
            start, end = holiday.as_date_range()
            if end < start:
                logger.warning("Ignoring holiday %r: end %s precedes start %s", holiday.name, end, start)
                continue
            self._ranges.append((start, end, holiday.name))

    @classmethod
    def from_config(cls, config: HolidayCalendarConfig) -> ConfiguredHolidayCalendar:
        return cls(config.holidays, weekend_is_holiday=config.weekend_is_holiday)

    def holiday_name(self, day: date | datetime) -> str | None:
        target = as_date(day)
        for start, end, name in self._ranges:
            if start <= target <= end:
                return name
        return None

    def __call__(self, day: date | datetime) -> bool:
        if self.weekend_is_holiday and weekend_as_holiday(day):
            return True
        return self.holiday_name(day) is not None

    def __len__(self) -> int:
        return len(self._ranges)


def build_holiday_lookup(settings: Settings | None = None) -> HolidayLookup:
    """Build the lookup described by the app config's ``holiday_calendar`` section."""
    settings = settings or get_settings()
    config = settings.load_app_config().holiday_calendar
    if not config.holidays and config.weekend_is_holiday:
        return weekend_as_holiday
    calendar = ConfiguredHolidayCalendar.from_config(config)
    logger.debug("Loaded holiday calendar with %d configured ranges", len(calendar))
    return calendar
