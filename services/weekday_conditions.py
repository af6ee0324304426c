from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Callable

from core.errors import RuleValidationError
from core.models import WEEKDAY_INDEX, WeekdayCondition
from core.time_utils import as_date, weekday_index
from services.holidays import HolidayLookup, weekend_as_holiday


def _is_weekend(index: int) -> bool:
    return index in (0, 6)


# Each predicate receives (weekday index, holiday flag thunk).
_CATEGORY_PREDICATES: dict[str, Callable[[int, Callable[[], bool]], bool]] = {
    "weekday": lambda idx, _holiday: 1 <= idx <= 5,
    "weekend": lambda idx, _holiday: _is_weekend(idx),
    "holiday": lambda _idx, holiday: holiday(),
    "non_holiday": lambda _idx, holiday: not holiday(),
    "weekend_only": lambda idx, _holiday: _is_weekend(idx),
    "non_weekend": lambda idx, _holiday: not _is_weekend(idx),
    "weekend_holiday": lambda idx, holiday: _is_weekend(idx) or holiday(),
    "non_weekend_holiday": lambda idx, holiday: not (_is_weekend(idx) or holiday()),
}

for _name, _index in WEEKDAY_INDEX.items():
    _CATEGORY_PREDICATES[_name] = lambda idx, _holiday, _target=_index: idx == _target
del _name, _index


def known_categories() -> frozenset[str]:
    return frozenset(_CATEGORY_PREDICATES)


class WeekdayEvaluator:
    """Decides whether a date falls into a named weekday category.

    The holiday lookup is only consulted for holiday-aware categories.
    """

    def __init__(self, holiday_lookup: HolidayLookup | None = None) -> None:
        self.holiday_lookup = holiday_lookup or weekend_as_holiday

    def matches(self, day: date | datetime, category: str | Enum) -> bool:
        key = category.value if isinstance(category, Enum) else str(category)
        predicate = _CATEGORY_PREDICATES.get(key)
        if predicate is None:
            raise RuleValidationError(f"Unknown weekday category: {key!r}")
        target = as_date(day)
        return predicate(weekday_index(target), lambda: bool(self.holiday_lookup(target)))

    def satisfies(self, day: date | datetime, condition: WeekdayCondition) -> bool:
        return self.matches(day, condition.if_weekday)
