"""Conversion between the UI-facing legacy rule shape and the unified rule.

Both directions pass ``None`` through. A mapping that lacks a field required
by both shapes (``unit``, ``interval``) converts to ``None``; callers must
check for it.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from core.errors import RuleValidationError
from core.models import (
    LegacyRecurrenceAdjustment,
    LegacyRecurrenceRule,
    LegacyRecurrenceUnit,
    MonthlyPattern,
    RecurrenceAdjustment,
    RecurrenceDetails,
    RecurrencePattern,
    RecurrenceRule,
    RecurrenceUnit,
    WeekOfMonth,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("unit", "interval")

_UNIT_TO_UNIFIED = {
    LegacyRecurrenceUnit.MINUTE: RecurrenceUnit.MINUTE,
    LegacyRecurrenceUnit.HOUR: RecurrenceUnit.HOUR,
    LegacyRecurrenceUnit.DAY: RecurrenceUnit.DAY,
    LegacyRecurrenceUnit.WEEK: RecurrenceUnit.WEEK,
    LegacyRecurrenceUnit.MONTH: RecurrenceUnit.MONTH,
    LegacyRecurrenceUnit.QUARTER: RecurrenceUnit.QUARTER,
    LegacyRecurrenceUnit.HALF_YEAR: RecurrenceUnit.HALFYEAR,
    LegacyRecurrenceUnit.YEAR: RecurrenceUnit.YEAR,
}
_UNIT_TO_LEGACY = {unified: legacy for legacy, unified in _UNIT_TO_UNIFIED.items()}

_WEEK_NUMBER = {
    WeekOfMonth.FIRST: 1,
    WeekOfMonth.SECOND: 2,
    WeekOfMonth.THIRD: 3,
    WeekOfMonth.FOURTH: 4,
}
_WEEK_NAME = {number: name for name, number in _WEEK_NUMBER.items()}


def _missing_required(data: Mapping[str, Any]) -> list[str]:
    return [name for name in REQUIRED_FIELDS if data.get(name) is None]


def _validate(model: type, data: Any, shape: str):
    if isinstance(data, model):
        return data
    if isinstance(data, Mapping):
        missing = _missing_required(data)
        if missing:
            logger.warning("Cannot convert %s rule without %s", shape, ", ".join(missing))
            return None
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RuleValidationError(f"Invalid {shape} recurrence rule: {exc}") from exc


def _details_to_pattern(details: RecurrenceDetails | None) -> RecurrencePattern | None:
    if details is None:
        return None
    monthly = None
    if details.specific_date is not None or details.week_of_period is not None or details.weekday_of_week is not None:
        if details.week_of_period is WeekOfMonth.LAST:
            week, from_end = 1, True
        else:
            week, from_end = _WEEK_NUMBER.get(details.week_of_period), False
        monthly = MonthlyPattern(
            day_of_month=details.specific_date,
            week_of_month=week,
            day_of_week=details.weekday_of_week,
            from_end=from_end,
        )
    conditions = list(details.date_conditions) if details.date_conditions is not None else None
    return RecurrencePattern(monthly=monthly, date_conditions=conditions)


def _pattern_to_details(pattern: RecurrencePattern | None) -> RecurrenceDetails | None:
    if pattern is None:
        return None
    monthly = pattern.monthly
    week_of_period = None
    if monthly is not None and monthly.week_of_month is not None:
        # legacy only knows "last" counted from the end, and has no fifth week
        exact = monthly.week_of_month == 1 if monthly.from_end else monthly.week_of_month in _WEEK_NAME
        if not exact:
            logger.warning(
                "Week %d%s of the month has no legacy equivalent; using 'last'",
                monthly.week_of_month,
                " from the end" if monthly.from_end else "",
            )
        if monthly.from_end or not exact:
            week_of_period = WeekOfMonth.LAST
        else:
            week_of_period = _WEEK_NAME[monthly.week_of_month]
    conditions = list(pattern.date_conditions) if pattern.date_conditions is not None else None
    return RecurrenceDetails(
        specific_date=monthly.day_of_month if monthly else None,
        week_of_period=week_of_period,
        weekday_of_week=monthly.day_of_week if monthly else None,
        date_conditions=conditions,
    )


def to_unified(legacy: LegacyRecurrenceRule | Mapping[str, Any] | None) -> RecurrenceRule | None:
    if legacy is None:
        return None
    rule = _validate(LegacyRecurrenceRule, legacy, "legacy")
    if rule is None:
        return None

    adjustment = None
    if rule.adjustment is not None:
        adjustment = RecurrenceAdjustment(
            date_conditions=list(rule.adjustment.date_conditions),
            weekday_conditions=list(rule.adjustment.weekday_conditions),
        )

    return RecurrenceRule(
        unit=_UNIT_TO_UNIFIED[rule.unit],
        interval=rule.interval,
        days_of_week=list(rule.days_of_week) if rule.days_of_week is not None else None,
        pattern=_details_to_pattern(rule.details),
        adjustment=adjustment,
        end_date=rule.end_date,
        max_occurrences=rule.max_occurrences,
    )


def to_legacy(unified: RecurrenceRule | Mapping[str, Any] | None) -> LegacyRecurrenceRule | None:
    if unified is None:
        return None
    rule = _validate(RecurrenceRule, unified, "unified")
    if rule is None:
        return None

    if rule.pattern is not None and rule.pattern.yearly is not None:
        logger.debug("Dropping yearly pattern of rule %s: no legacy equivalent", rule.id)
    if rule.pattern is not None and rule.pattern.extended is not None:
        logger.debug("Dropping extended pattern of rule %s: no legacy equivalent", rule.id)

    adjustment = None
    if rule.adjustment is not None:
        if rule.adjustment.holiday_adjustment is not None or rule.adjustment.month_end_adjustment is not None:
            logger.debug("Dropping holiday/month-end adjustment of rule %s: no legacy equivalent", rule.id)
        adjustment = LegacyRecurrenceAdjustment(
            date_conditions=list(rule.adjustment.date_conditions),
            weekday_conditions=list(rule.adjustment.weekday_conditions),
        )

    return LegacyRecurrenceRule(
        unit=_UNIT_TO_LEGACY[rule.unit],
        interval=rule.interval,
        days_of_week=list(rule.days_of_week) if rule.days_of_week is not None else None,
        details=_pattern_to_details(rule.pattern),
        adjustment=adjustment,
        end_date=rule.end_date,
        max_occurrences=rule.max_occurrences,
    )


def coerce_rule(rule: RecurrenceRule | LegacyRecurrenceRule | Mapping[str, Any]) -> RecurrenceRule:
    """Return a validated unified rule from either model or a unified-shape mapping."""
    if isinstance(rule, RecurrenceRule):
        return rule
    if isinstance(rule, LegacyRecurrenceRule):
        return to_unified(rule)
    converted = _validate(RecurrenceRule, rule, "unified")
    if converted is None:
        raise RuleValidationError(f"Recurrence rule is missing {', '.join(_missing_required(rule))}")
    return converted
