from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DayNumber = Annotated[int, Field(ge=1, le=31)]
MonthNumber = Annotated[int, Field(ge=1, le=12)]

WEEKDAY_INDEX = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def index(self) -> int:
        """Weekday index with 0=Sunday .. 6=Saturday."""
        return WEEKDAY_INDEX[self.value]


class WeekdayCategory(str, Enum):
    """Categories a date can be tested against (``if_weekday``)."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"
    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"
    NON_HOLIDAY = "non_holiday"
    WEEKEND_ONLY = "weekend_only"
    NON_WEEKEND = "non_weekend"
    WEEKEND_HOLIDAY = "weekend_holiday"
    NON_WEEKEND_HOLIDAY = "non_weekend_holiday"


class AdjustmentTarget(str, Enum):
    """Categories a date can be moved to (``then_target``)."""

    SPECIFIC_WEEKDAY = "specific_weekday"
    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"
    NON_HOLIDAY = "non_holiday"
    WEEKEND_HOLIDAY = "weekend_holiday"
    NON_WEEKEND_HOLIDAY = "non_weekend_holiday"
    DAYS = "days"


class AdjustmentDirection(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"

    @property
    def step(self) -> int:
        return 1 if self is AdjustmentDirection.NEXT else -1


class RecurrenceUnit(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    HALFYEAR = "halfyear"
    YEAR = "year"


class LegacyRecurrenceUnit(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    HALF_YEAR = "half_year"
    YEAR = "year"


class WeekOfMonth(str, Enum):
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    FOURTH = "fourth"
    LAST = "last"


class DateRelation(str, Enum):
    BEFORE = "before"
    ON_OR_BEFORE = "on_or_before"
    SAME = "same"
    ON_OR_AFTER = "on_or_after"
    AFTER = "after"


class HolidayAdjustment(str, Enum):
    """What happens to an occurrence that lands on a holiday."""

    NONE = "none"
    SKIP = "skip"
    BEFORE = "before"
    AFTER = "after"


class MonthEndAdjustment(str, Enum):
    """What happens when the requested day-of-month does not exist.

    ``none`` skips such months, ``lastDay`` uses the month's last day and
    ``before`` also uses the last day but moves back to the previous
    business day when that day is a weekend or holiday.
    """

    NONE = "none"
    LAST_DAY = "lastDay"
    BEFORE = "before"


class EndCondition(str, Enum):
    NEVER = "never"
    COUNT = "count"
    UNTIL = "until"
    COUNT_OR_UNTIL = "count_or_until"


class CamelModel(BaseModel):
    """Unified-shape base: camelCase on the wire, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Adjustment conditions (shared by both rule shapes)
# ---------------------------------------------------------------------------


class WeekdayCondition(CamelModel):
    """If a date falls in ``if_weekday``, move it towards ``then_target``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str | None = None
    if_weekday: WeekdayCategory
    then_target: AdjustmentTarget
    then_direction: AdjustmentDirection
    then_weekday: DayOfWeek | None = None
    then_days: int | None = None

    @model_validator(mode="after")
    def _check_target_payload(self) -> WeekdayCondition:
        if self.then_target is AdjustmentTarget.SPECIFIC_WEEKDAY and self.then_weekday is None:
            raise ValueError("then_weekday is required when then_target is 'specific_weekday'")
        if self.then_target is AdjustmentTarget.DAYS and self.then_days is None:
            raise ValueError("then_days is required when then_target is 'days'")
        return self


class DateCondition(CamelModel):
    """Relation of a candidate date to a fixed reference date."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str | None = None
    relation: DateRelation
    reference_date: date | datetime

    def holds_for(self, target: date | datetime) -> bool:
        day = target.date() if isinstance(target, datetime) else target
        ref = self.reference_date
        ref_day = ref.date() if isinstance(ref, datetime) else ref
        if self.relation is DateRelation.BEFORE:
            return day < ref_day
        if self.relation is DateRelation.ON_OR_BEFORE:
            return day <= ref_day
        if self.relation is DateRelation.SAME:
            return day == ref_day
        if self.relation is DateRelation.ON_OR_AFTER:
            return day >= ref_day
        return day > ref_day


class RecurrenceAdjustment(CamelModel):
    holiday_adjustment: HolidayAdjustment | None = None
    month_end_adjustment: MonthEndAdjustment | None = None
    date_conditions: list[DateCondition] = Field(default_factory=list)
    weekday_conditions: list[WeekdayCondition] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Unified rule
# ---------------------------------------------------------------------------


class MonthlyPattern(CamelModel):
    """Day selection inside a month.

    ``day_of_month`` picks a date (clamped to the month length) and wins over
    the weekday fields; otherwise ``week_of_month`` + ``day_of_week`` picks
    the nth weekday, counted from the end of the month when ``from_end`` is
    set.
    """

    day_of_month: int | None = Field(default=None, ge=1, le=31)
    week_of_month: int | None = Field(default=None, ge=1, le=5)
    day_of_week: DayOfWeek | None = None
    from_end: bool = False


class YearlyPattern(MonthlyPattern):
    """Monthly selection applied to ``month`` and/or every month in ``months``."""

    month: MonthNumber | None = None
    months: list[MonthNumber] | None = None

    @model_validator(mode="after")
    def _check_months(self) -> YearlyPattern:
        if self.month is None and not self.months:
            raise ValueError("yearly pattern needs month or months")
        return self

    @property
    def all_months(self) -> tuple[int, ...]:
        selected = set(self.months or ())
        if self.month is not None:
            selected.add(self.month)
        return tuple(sorted(selected))


# ---------------------------------------------------------------------------
# Extended patterns (several selections per period)
# ---------------------------------------------------------------------------


class WeekdayInMonth(CamelModel):
    """Nth weekday of a month; week 5 means the last one."""

    week: int = Field(ge=1, le=5)
    day_of_week: DayOfWeek


class WeekdayInQuarter(CamelModel):
    """Weekday in the Nth week counted from the first day of the quarter."""

    week: int = Field(ge=1, le=13)
    day_of_week: DayOfWeek


class WeekdayInHalfyear(CamelModel):
    week: int = Field(ge=1, le=26)
    day_of_week: DayOfWeek


def _require_selection(pattern: Any, weeks: list) -> None:
    if not pattern.days_of_month and not weeks:
        raise ValueError(f"{type(pattern).__name__} needs days of month or weeks")


class ExtendedWeeklyPattern(CamelModel):
    days_of_week: list[DayOfWeek] = Field(min_length=1)


class ExtendedMonthlyPattern(CamelModel):
    days_of_month: list[DayNumber] = Field(default_factory=list)
    weeks_of_month: list[WeekdayInMonth] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_selection(self) -> ExtendedMonthlyPattern:
        _require_selection(self, self.weeks_of_month)
        return self


class ExtendedQuarterlyPattern(CamelModel):
    """Days inside each quarter; ``offset_months`` picks the months (0-2)."""

    offset_months: list[Annotated[int, Field(ge=0, le=2)]] = Field(default_factory=list)
    days_of_month: list[DayNumber] = Field(default_factory=list)
    weeks_of_quarter: list[WeekdayInQuarter] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_selection(self) -> ExtendedQuarterlyPattern:
        _require_selection(self, self.weeks_of_quarter)
        return self

    @property
    def weeks_of_period(self) -> list[WeekdayInQuarter]:
        return self.weeks_of_quarter


class ExtendedHalfyearPattern(CamelModel):
    """Days inside each half year; ``offset_months`` picks the months (0-5)."""

    offset_months: list[Annotated[int, Field(ge=0, le=5)]] = Field(default_factory=list)
    days_of_month: list[DayNumber] = Field(default_factory=list)
    weeks_of_halfyear: list[WeekdayInHalfyear] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_selection(self) -> ExtendedHalfyearPattern:
        _require_selection(self, self.weeks_of_halfyear)
        return self

    @property
    def weeks_of_period(self) -> list[WeekdayInHalfyear]:
        return self.weeks_of_halfyear


class ExtendedYearlyMonthPattern(CamelModel):
    month: MonthNumber
    days_of_month: list[DayNumber] = Field(default_factory=list)
    weeks_of_month: list[WeekdayInMonth] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_selection(self) -> ExtendedYearlyMonthPattern:
        _require_selection(self, self.weeks_of_month)
        return self


class ExtendedYearlyPattern(CamelModel):
    months: list[ExtendedYearlyMonthPattern] = Field(min_length=1)


class ExtendedRecurrencePattern(CamelModel):
    """Per-unit extended selections; only the entry for the rule's unit is used."""

    weekly: ExtendedWeeklyPattern | None = None
    monthly: ExtendedMonthlyPattern | None = None
    quarterly: ExtendedQuarterlyPattern | None = None
    halfyear: ExtendedHalfyearPattern | None = None
    yearly: ExtendedYearlyPattern | None = None


class RecurrencePattern(CamelModel):
    monthly: MonthlyPattern | None = None
    yearly: YearlyPattern | None = None
    extended: ExtendedRecurrencePattern | None = None
    # Kept for the legacy editor; generation does not evaluate these.
    date_conditions: list[DateCondition] | None = None


class RecurrenceRule(CamelModel):
    """Canonical recurrence rule used for computation."""

    id: str | None = None
    unit: RecurrenceUnit
    interval: int = Field(default=1, ge=1)
    days_of_week: list[DayOfWeek] | None = None
    pattern: RecurrencePattern | None = None
    adjustment: RecurrenceAdjustment | None = None
    end_date: date | datetime | None = None
    max_occurrences: int | None = Field(default=None, ge=1)

    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted: bool = False
    updated_by: str | None = None

    @property
    def end_condition(self) -> EndCondition:
        if self.end_date is not None and self.max_occurrences is not None:
            return EndCondition.COUNT_OR_UNTIL
        if self.end_date is not None:
            return EndCondition.UNTIL
        if self.max_occurrences is not None:
            return EndCondition.COUNT
        return EndCondition.NEVER

    def to_payload(self) -> dict[str, Any]:
        """Serialise for a persistence backend (camelCase, no unset optionals)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Legacy (UI-facing) rule
# ---------------------------------------------------------------------------


class RecurrenceDetails(BaseModel):
    specific_date: int | None = Field(default=None, ge=1, le=31)
    week_of_period: WeekOfMonth | None = None
    weekday_of_week: DayOfWeek | None = None
    date_conditions: list[DateCondition] | None = None


class LegacyRecurrenceAdjustment(BaseModel):
    date_conditions: list[DateCondition] = Field(default_factory=list)
    weekday_conditions: list[WeekdayCondition] = Field(default_factory=list)


class LegacyRecurrenceRule(BaseModel):
    unit: LegacyRecurrenceUnit
    interval: int = Field(ge=1)
    days_of_week: list[DayOfWeek] | None = None
    details: RecurrenceDetails | None = None
    adjustment: LegacyRecurrenceAdjustment | None = None
    end_date: date | datetime | None = None
    max_occurrences: int | None = Field(default=None, ge=1)
