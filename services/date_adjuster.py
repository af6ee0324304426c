from __future__ import annotations

import logging
from typing import Callable

from core.errors import RuleValidationError, UnboundedScanError
from core.models import AdjustmentTarget, WeekdayCondition
from core.time_utils import DateLike, shift_days, weekday_index
from services.holidays import HolidayLookup
from services.weekday_conditions import WeekdayEvaluator

logger = logging.getLogger(__name__)

DEFAULT_SCAN_LIMIT = 366


class DateAdjuster:
    """Moves a date to the nearest day matching a condition's target.

    Adjustment works on the date part only; time-of-day and tzinfo of the
    input are carried over to the result.
    """

    def __init__(
        self,
        evaluator: WeekdayEvaluator | None = None,
        *,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ) -> None:
        if scan_limit < 1:
            raise ValueError("scan_limit must be positive")
        self.evaluator = evaluator or WeekdayEvaluator()
        self.scan_limit = scan_limit

    @classmethod
    def with_holidays(cls, holiday_lookup: HolidayLookup, *, scan_limit: int = DEFAULT_SCAN_LIMIT) -> DateAdjuster:
        return cls(WeekdayEvaluator(holiday_lookup), scan_limit=scan_limit)

    def adjust(self, day: DateLike, condition: WeekdayCondition) -> DateLike:
        step = condition.then_direction.step

        if condition.then_days is not None:
            return shift_days(day, step * condition.then_days)

        predicate = self._target_predicate(condition)
        candidate = day
        for _ in range(self.scan_limit):
            candidate = shift_days(candidate, step)
            if predicate(candidate):
                return candidate

        logger.error(
            "Adjustment scan from %s towards %s (%s) found no match in %d days",
            day,
            condition.then_target.value,
            condition.then_direction.value,
            self.scan_limit,
        )
        raise UnboundedScanError(
            f"No {condition.then_target.value} date within {self.scan_limit} days "
            f"{condition.then_direction.value} of {day}",
            limit=self.scan_limit,
        )

    def _target_predicate(self, condition: WeekdayCondition) -> Callable[[DateLike], bool]:
        target = condition.then_target
        if target is AdjustmentTarget.SPECIFIC_WEEKDAY:
            wanted = condition.then_weekday.index
            return lambda candidate: weekday_index(candidate) == wanted
        if target is AdjustmentTarget.DAYS:
            raise RuleValidationError("then_days is required when then_target is 'days'")
        return lambda candidate: self.evaluator.matches(candidate, target)
