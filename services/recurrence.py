from __future__ import annotations

import calendar
import heapq
import logging
from datetime import date, datetime
from enum import Enum
from itertools import dropwhile, groupby, islice
from typing import Any, Iterable, Iterator, List, Mapping

from dateutil.relativedelta import relativedelta
from dateutil.rrule import (
    DAILY,
    FR,
    HOURLY,
    MINUTELY,
    MO,
    MONTHLY,
    SA,
    SU,
    TH,
    TU,
    WE,
    WEEKLY,
    YEARLY,
    rrule,
    rruleset,
)
from pydantic import ValidationError

from core.config import Settings, get_settings
from core.errors import RecurrenceError, RuleValidationError, UnboundedScanError
from core.models import (
    AdjustmentDirection,
    AdjustmentTarget,
    DayOfWeek,
    ExtendedHalfyearPattern,
    ExtendedMonthlyPattern,
    ExtendedQuarterlyPattern,
    ExtendedWeeklyPattern,
    ExtendedYearlyPattern,
    HolidayAdjustment,
    LegacyRecurrenceRule,
    MonthEndAdjustment,
    MonthlyPattern,
    RecurrenceRule,
    RecurrenceUnit,
    WeekdayCategory,
    WeekdayCondition,
    WeekdayInMonth,
)
from core.time_utils import is_after, to_datetime
from services.date_adjuster import DateAdjuster
from services.holidays import HolidayLookup, build_holiday_lookup
from services.rule_converter import coerce_rule
from services.weekday_conditions import WeekdayEvaluator

logger = logging.getLogger(__name__)

DEFAULT_OCCURRENCE_LIMIT = 200

WEEKDAY_LOOKUP = {
    "mon": DayOfWeek.MONDAY,
    "tue": DayOfWeek.TUESDAY,
    "wed": DayOfWeek.WEDNESDAY,
    "thu": DayOfWeek.THURSDAY,
    "fri": DayOfWeek.FRIDAY,
    "sat": DayOfWeek.SATURDAY,
    "sun": DayOfWeek.SUNDAY,
}

RRULE_WEEKDAY = {
    DayOfWeek.MONDAY: MO,
    DayOfWeek.TUESDAY: TU,
    DayOfWeek.WEDNESDAY: WE,
    DayOfWeek.THURSDAY: TH,
    DayOfWeek.FRIDAY: FR,
    DayOfWeek.SATURDAY: SA,
    DayOfWeek.SUNDAY: SU,
}

# unit -> (rrule frequency, interval multiplier)
FREQ_MAP = {
    RecurrenceUnit.MINUTE: (MINUTELY, 1),
    RecurrenceUnit.HOUR: (HOURLY, 1),
    RecurrenceUnit.DAY: (DAILY, 1),
    RecurrenceUnit.WEEK: (WEEKLY, 1),
    RecurrenceUnit.MONTH: (MONTHLY, 1),
    RecurrenceUnit.QUARTER: (MONTHLY, 3),
    RecurrenceUnit.HALFYEAR: (MONTHLY, 6),
    RecurrenceUnit.YEAR: (YEARLY, 1),
}

EXTENDED_FIELD = {
    RecurrenceUnit.WEEK: "weekly",
    RecurrenceUnit.MONTH: "monthly",
    RecurrenceUnit.QUARTER: "quarterly",
    RecurrenceUnit.HALFYEAR: "halfyear",
    RecurrenceUnit.YEAR: "yearly",
}

SUB_DAY_UNITS = {RecurrenceUnit.MINUTE, RecurrenceUnit.HOUR}

_BUSINESS_DAY_BEFORE_HOLIDAY = WeekdayCondition(
    if_weekday=WeekdayCategory.HOLIDAY,
    then_target=AdjustmentTarget.NON_WEEKEND_HOLIDAY,
    then_direction=AdjustmentDirection.PREVIOUS,
)
_BUSINESS_DAY_AFTER_HOLIDAY = WeekdayCondition(
    if_weekday=WeekdayCategory.HOLIDAY,
    then_target=AdjustmentTarget.NON_WEEKEND_HOLIDAY,
    then_direction=AdjustmentDirection.NEXT,
)
_BUSINESS_DAY_BEFORE_MONTH_END = WeekdayCondition(
    if_weekday=WeekdayCategory.WEEKEND_HOLIDAY,
    then_target=AdjustmentTarget.NON_WEEKEND_HOLIDAY,
    then_direction=AdjustmentDirection.PREVIOUS,
)


class GenerationState(str, Enum):
    SEEDED = "seeded"
    STEPPING = "stepping"
    ADJUSTING = "adjusting"
    EMIT = "emit"
    TERMINAL = "terminal"


def parse_weekday_tokens(tokens: Iterable[str]) -> List[DayOfWeek]:
    days: List[DayOfWeek] = []
    for token in tokens:
        token_lower = token.strip().lower()[:3]
        if token_lower in WEEKDAY_LOOKUP:
            days.append(WEEKDAY_LOOKUP[token_lower])
    # Deduplicate while preserving order
    seen = set()
    ordered: List[DayOfWeek] = []
    for day in days:
        if day not in seen:
            seen.add(day)
            ordered.append(day)
    return ordered


def validate_rule(rule: RecurrenceRule | LegacyRecurrenceRule | Mapping[str, Any]) -> RecurrenceRule:
    """Return a fully validated unified rule or raise RuleValidationError."""
    unified = coerce_rule(rule)
    # Re-validate so rules assembled with model_construct() get checked too.
    try:
        return RecurrenceRule.model_validate(unified.model_dump())
    except ValidationError as exc:
        raise RuleValidationError(f"Invalid recurrence rule: {exc}") from exc


def extended_pattern(rule: RecurrenceRule) -> Any:
    """The extended selection for the rule's unit, if the rule carries one."""
    field = EXTENDED_FIELD.get(rule.unit)
    if field is None or rule.pattern is None or rule.pattern.extended is None:
        return None
    return getattr(rule.pattern.extended, field)


def clamps_month_end(rule: RecurrenceRule) -> bool:
    adjustment = rule.adjustment
    return adjustment is None or adjustment.month_end_adjustment is not MonthEndAdjustment.NONE


def _monthday(day: int, clamp: bool) -> dict[str, Any]:
    if day <= 28 or not clamp:
        return {"bymonthday": day}
    # Last existing day of 28..day, so the 31st falls back to the month end.
    return {"bymonthday": tuple(range(28, day + 1)), "bysetpos": -1}


def _monthday_rrules(base: dict[str, Any], days: Iterable[int], clamp: bool) -> list[rrule]:
    days = sorted(set(days))
    plain = tuple(day for day in days if day <= 28 or not clamp)
    rules = [rrule(**base, bymonthday=plain)] if plain else []
    rules.extend(rrule(**base, **_monthday(day, clamp)) for day in days if clamp and day > 28)
    return rules


def _nth(entry: WeekdayInMonth) -> Any:
    return RRULE_WEEKDAY[entry.day_of_week](-1 if entry.week == 5 else entry.week)


def _nth_weekday(pattern: MonthlyPattern | None, days_of_week: list[DayOfWeek] | None) -> Any:
    if pattern is None or pattern.week_of_month is None:
        return None
    weekday = pattern.day_of_week
    if weekday is None and days_of_week:
        weekday = days_of_week[0]
    if weekday is None:
        return None
    return RRULE_WEEKDAY[weekday](-pattern.week_of_month if pattern.from_end else pattern.week_of_month)


def _standard_pattern(rule: RecurrenceRule) -> MonthlyPattern | None:
    if rule.pattern is None:
        return None
    if rule.unit is RecurrenceUnit.YEAR and rule.pattern.yearly is not None:
        return rule.pattern.yearly
    return rule.pattern.monthly


def requested_month_days(rule: RecurrenceRule, anchor: date | datetime) -> frozenset[int]:
    """Days-of-month the rule asks for, used to spot month-end clamping."""
    extended = extended_pattern(rule)
    if isinstance(extended, ExtendedYearlyPattern):
        return frozenset(day for month in extended.months for day in month.days_of_month)
    if extended is not None:
        return frozenset(getattr(extended, "days_of_month", ()))

    freq, _ = FREQ_MAP[rule.unit]
    if freq not in (MONTHLY, YEARLY):
        return frozenset()
    pattern = _standard_pattern(rule)
    if pattern is not None and pattern.day_of_month is not None:
        return frozenset({pattern.day_of_month})
    if _nth_weekday(pattern, rule.days_of_week) is not None:
        return frozenset()
    return frozenset({anchor.day})


def _extended_rrules(extended: Any, base: dict[str, Any], anchor: datetime, clamp: bool) -> list[rrule]:
    if isinstance(extended, ExtendedWeeklyPattern):
        return [rrule(**base, wkst=SU, byweekday=[RRULE_WEEKDAY[day] for day in extended.days_of_week])]

    if isinstance(extended, ExtendedMonthlyPattern):
        rules = _monthday_rrules(base, extended.days_of_month, clamp)
        rules.extend(rrule(**base, byweekday=_nth(entry)) for entry in extended.weeks_of_month)
        return rules

    if isinstance(extended, ExtendedYearlyPattern):
        rules = []
        for month in extended.months:
            month_base = {**base, "bymonth": month.month}
            rules.extend(_monthday_rrules(month_base, month.days_of_month, clamp))
            rules.extend(rrule(**month_base, byweekday=_nth(entry)) for entry in month.weeks_of_month)
        return rules

    # Quarter / half year: periods start on the first of the anchor's month.
    period_start = anchor.replace(day=1)
    rules = []
    for offset in sorted(set(extended.offset_months)) or [0]:
        offset_base = {**base, "dtstart": period_start + relativedelta(months=offset)}
        rules.extend(_monthday_rrules(offset_base, extended.days_of_month, clamp))
    return rules


def _standard_rrule(rule: RecurrenceRule, base: dict[str, Any], anchor: datetime, clamp: bool) -> rrule:
    kwargs = dict(base)
    freq = kwargs["freq"]
    if rule.unit is RecurrenceUnit.WEEK:
        # Weeks start on Sunday
        kwargs["wkst"] = SU
        if rule.days_of_week:
            kwargs["byweekday"] = [RRULE_WEEKDAY[day] for day in rule.days_of_week]
        return rrule(**kwargs)
    if freq not in (MONTHLY, YEARLY):
        return rrule(**kwargs)

    pattern = _standard_pattern(rule)
    if freq == YEARLY:
        yearly = rule.pattern.yearly if rule.pattern else None
        kwargs["bymonth"] = yearly.all_months if yearly else anchor.month

    nth = _nth_weekday(pattern, rule.days_of_week)
    if pattern is not None and pattern.day_of_month is not None:
        kwargs.update(_monthday(pattern.day_of_month, clamp))
    elif nth is not None:
        kwargs["byweekday"] = nth
    else:
        kwargs.update(_monthday(anchor.day, clamp))
    return rrule(**kwargs)


def build_rrule(rule: RecurrenceRule, anchor: datetime) -> rruleset:
    """Translate the date-selecting part of a rule into a dateutil rruleset.

    Nth-weekday-of-quarter/half-year selections have no rrule form and are
    produced by :func:`iter_candidates` instead.
    """
    freq, multiplier = FREQ_MAP[rule.unit]
    base = {"freq": freq, "interval": rule.interval * multiplier, "dtstart": anchor}
    clamp = clamps_month_end(rule)

    rules = rruleset()
    extended = extended_pattern(rule)
    if extended is not None:
        for item in _extended_rrules(extended, base, anchor, clamp):
            rules.rrule(item)
    else:
        rules.rrule(_standard_rrule(rule, base, anchor, clamp))
    return rules


def _period_weekdays(weeks: list, anchor: datetime, interval_months: int, period_months: int) -> Iterator[datetime]:
    for start in rrule(MONTHLY, interval=interval_months, dtstart=anchor.replace(day=1)):
        end = start + relativedelta(months=period_months)
        found = {
            start + relativedelta(weeks=entry.week - 1, weekday=RRULE_WEEKDAY[entry.day_of_week](+1))
            for entry in weeks
        }
        for candidate in sorted(found):
            if candidate < end:
                yield candidate


def iter_candidates(rule: RecurrenceRule, anchor: datetime) -> Iterator[datetime]:
    """Ascending, de-duplicated candidate datetimes strictly after ``anchor``."""
    streams: list[Iterator[datetime]] = [build_rrule(rule, anchor).xafter(anchor)]
    extended = extended_pattern(rule)
    if isinstance(extended, (ExtendedQuarterlyPattern, ExtendedHalfyearPattern)) and extended.weeks_of_period:
        _, multiplier = FREQ_MAP[rule.unit]
        periods = _period_weekdays(extended.weeks_of_period, anchor, rule.interval * multiplier, multiplier)
        streams.append(dropwhile(lambda candidate: candidate <= anchor, periods))
    return (candidate for candidate, _ in groupby(heapq.merge(*streams)))


class OccurrenceGenerator:
    """Lazily expands a recurrence rule into concrete occurrence dates.

    Each run walks forward from the anchor (which is not itself emitted):
    step to the next candidate, apply the month-end and holiday adjustments
    and then the weekday conditions in list order (each one sees the date
    produced by the previous one), then emit it. Stepping resumes after the
    last emitted date, so occurrences are strictly increasing; candidates
    that a backward adjustment moves onto or before the previous occurrence,
    and holidays under ``skip``, are dropped. The run ends when
    ``max_occurrences`` dates have been emitted, an adjusted candidate passes
    ``end_date``, or the safety limit is reached for rules with no end
    condition. Generators are single-use.
    """

    def __init__(
        self,
        rule: RecurrenceRule | LegacyRecurrenceRule | Mapping[str, Any],
        anchor: date | datetime,
        *,
        adjuster: DateAdjuster | None = None,
        holiday_lookup: HolidayLookup | None = None,
        limit: int | None = None,
    ) -> None:
        self.rule = validate_rule(rule)
        self.anchor = anchor
        if adjuster is None:
            adjuster = DateAdjuster(WeekdayEvaluator(holiday_lookup))
        self.adjuster = adjuster
        self.evaluator = adjuster.evaluator

        if self.rule.max_occurrences is not None:
            self.limit: int | None = self.rule.max_occurrences
        elif self.rule.end_date is not None:
            self.limit = None
        else:
            self.limit = limit if limit is not None else DEFAULT_OCCURRENCE_LIMIT

        self._as_date = not isinstance(anchor, datetime) and self.rule.unit not in SUB_DAY_UNITS
        self._anchor_dt = to_datetime(anchor)
        self._month_days = requested_month_days(self.rule, self._anchor_dt)
        self._candidates: Iterator[datetime] | None = None
        self._last = self._anchor_dt
        self.emitted = 0
        self.state = GenerationState.SEEDED

    def __iter__(self) -> OccurrenceGenerator:
        return self

    def __next__(self) -> date | datetime:
        if self.state is GenerationState.TERMINAL:
            raise StopIteration
        if self.limit is not None and self.emitted >= self.limit:
            self._finish("limit of %d occurrences reached", self.limit)
        if self._candidates is None:
            self._candidates = iter_candidates(self.rule, self._anchor_dt)

        while True:
            self.state = GenerationState.STEPPING
            raw = next(self._candidates, None)
            if raw is None:
                self._finish("recurrence pattern exhausted")
            if raw <= self._last:
                continue

            self.state = GenerationState.ADJUSTING
            try:
                adjusted = self._adjust(raw)
                occurrence = self._output(raw if adjusted is None else adjusted)
                if self.rule.end_date is not None and is_after(occurrence, self.rule.end_date):
                    self._finish("occurrence %s is past end date %s", occurrence, self.rule.end_date)
                if adjusted is None or adjusted <= self._last:
                    self._check_drop_span(raw)
                    logger.debug("Dropping candidate %s (adjusted to %s)", raw, adjusted)
                    continue
            except RecurrenceError:
                self.state = GenerationState.TERMINAL
                raise

            self._last = adjusted
            self.state = GenerationState.EMIT
            self.emitted += 1
            return occurrence

    def _output(self, candidate: datetime) -> date | datetime:
        return candidate.date() if self._as_date else candidate

    def _finish(self, reason: str, *args: Any) -> None:
        logger.debug("Recurrence run from %s finished: " + reason, self.anchor, *args)
        self.state = GenerationState.TERMINAL
        raise StopIteration

    def _check_drop_span(self, raw: datetime) -> None:
        limit = self.adjuster.scan_limit
        if (raw.date() - self._last.date()).days > limit:
            logger.error("No usable occurrence within %d days after %s", limit, self._last)
            raise UnboundedScanError(f"No usable occurrence within {limit} days after {self._last}", limit=limit)

    def _is_clamped(self, candidate: datetime) -> bool:
        last_day = calendar.monthrange(candidate.year, candidate.month)[1]
        return (
            candidate.day == last_day
            and candidate.day not in self._month_days
            and any(day > last_day for day in self._month_days)
        )

    def _adjust(self, candidate: datetime) -> datetime | None:
        adjustment = self.rule.adjustment
        if adjustment is None:
            return candidate

        if adjustment.month_end_adjustment is MonthEndAdjustment.BEFORE and self._is_clamped(candidate):
            if self.evaluator.satisfies(candidate, _BUSINESS_DAY_BEFORE_MONTH_END):
                candidate = self.adjuster.adjust(candidate, _BUSINESS_DAY_BEFORE_MONTH_END)

        holiday_mode = adjustment.holiday_adjustment
        if holiday_mode not in (None, HolidayAdjustment.NONE) and self.evaluator.matches(
            candidate, WeekdayCategory.HOLIDAY
        ):
            if holiday_mode is HolidayAdjustment.SKIP:
                return None
            if holiday_mode is HolidayAdjustment.BEFORE:
                candidate = self.adjuster.adjust(candidate, _BUSINESS_DAY_BEFORE_HOLIDAY)
            else:
                candidate = self.adjuster.adjust(candidate, _BUSINESS_DAY_AFTER_HOLIDAY)

        if adjustment.date_conditions and not all(
            condition.holds_for(candidate) for condition in adjustment.date_conditions
        ):
            return candidate
        for condition in adjustment.weekday_conditions:
            if self.evaluator.satisfies(candidate, condition):
                candidate = self.adjuster.adjust(candidate, condition)
        return candidate


def configured_generator(
    rule: RecurrenceRule | LegacyRecurrenceRule | Mapping[str, Any],
    anchor: date | datetime,
    *,
    settings: Settings | None = None,
    holiday_lookup: HolidayLookup | None = None,
) -> OccurrenceGenerator:
    """Generator using the holiday calendar and limits from the app config."""
    settings = settings or get_settings()
    config = settings.load_app_config().recurrence
    lookup = holiday_lookup or build_holiday_lookup(settings)
    adjuster = DateAdjuster(WeekdayEvaluator(lookup), scan_limit=config.scan_limit)
    return OccurrenceGenerator(rule, anchor, adjuster=adjuster, limit=config.occurrence_limit)


def generate_occurrences(
    *,
    rule: RecurrenceRule | LegacyRecurrenceRule | Mapping[str, Any],
    start: date | datetime,
    count: int | None = None,
    settings: Settings | None = None,
    holiday_lookup: HolidayLookup | None = None,
) -> List[date | datetime]:
    """
    Expand a recurrence rule into concrete occurrence dates after ``start``.

    Returns at most ``count`` dates (when given), ordered as generated.
    """
    generator = configured_generator(rule, start, settings=settings, holiday_lookup=holiday_lookup)
    if count is None:
        return list(generator)
    return list(islice(generator, count))


def next_occurrence(
    base: date | datetime,
    rule: RecurrenceRule | LegacyRecurrenceRule | Mapping[str, Any],
    *,
    settings: Settings | None = None,
    holiday_lookup: HolidayLookup | None = None,
) -> date | datetime | None:
    """Next occurrence strictly after ``base``, or None once the rule has ended."""
    generator = configured_generator(rule, base, settings=settings, holiday_lookup=holiday_lookup)
    return next(generator, None)


def preview_occurrences(
    rule: RecurrenceRule | LegacyRecurrenceRule | Mapping[str, Any] | None,
    anchor: date | datetime,
    count: int | None = None,
    *,
    settings: Settings | None = None,
    holiday_lookup: HolidayLookup | None = None,
) -> List[date | datetime]:
    """Dates shown while a rule is being edited; empty when the rule is unusable."""
    if rule is None:
        return []
    settings = settings or get_settings()
    preview_count = settings.load_app_config().recurrence.preview_count

    try:
        generator = configured_generator(rule, anchor, settings=settings, holiday_lookup=holiday_lookup)
        return list(islice(generator, count or preview_count))
    except RecurrenceError as exc:
        logger.warning("Recurrence preview failed: %s", exc)
        return []
