"""
Print the upcoming occurrences of a recurrence rule.

The rule is read from a YAML or JSON file in the unified shape (camelCase or
snake_case keys), or in the legacy UI shape with --legacy:

    python preview_recurrence.py rule.yaml --anchor "next monday" --count 10
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

import yaml

from core.config import get_settings
from core.errors import RecurrenceError
from core.logging import configure_logging, get_logger
from core.time_utils import get_timezone, parse_human_datetime
from services.date_adjuster import DateAdjuster
from services.holidays import build_holiday_lookup
from services.recurrence import OccurrenceGenerator, parse_weekday_tokens
from services.rule_converter import to_unified
from services.weekday_conditions import WeekdayEvaluator

logger = get_logger(__name__)


def load_rule_file(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        if path.suffix.lower() == ".json":
            data = json.load(fh)
        else:
            data = yaml.safe_load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a rule mapping")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("rule_file", type=Path)
    parser.add_argument("--anchor", default="today", help="ISO or natural language start date")
    parser.add_argument("--count", type=int, default=None, help="number of dates to print")
    parser.add_argument("--days", default=None, help="override days of week, e.g. mon,wed,fri")
    parser.add_argument("--legacy", action="store_true", help="rule file uses the legacy shape")
    parser.add_argument("--keep-time", action="store_true", help="keep the anchor's time of day")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)
    app_config = settings.load_app_config()

    try:
        raw_rule = load_rule_file(args.rule_file)
        rule = to_unified(raw_rule) if args.legacy else raw_rule
        if rule is None:
            print("Rule is missing its unit or interval", file=sys.stderr)
            return 2

        if args.days:
            days = parse_weekday_tokens(args.days.replace(",", " ").split())
            if isinstance(rule, dict):
                rule = {**rule, "days_of_week": days}
                rule.pop("daysOfWeek", None)
            else:
                rule = rule.model_copy(update={"days_of_week": days})

        anchor = parse_human_datetime(args.anchor, get_timezone(settings.timezone))
        adjuster = DateAdjuster(
            WeekdayEvaluator(build_holiday_lookup(settings)),
            scan_limit=app_config.recurrence.scan_limit,
        )
        generator = OccurrenceGenerator(
            rule,
            anchor if args.keep_time else anchor.date(),
            adjuster=adjuster,
            limit=app_config.recurrence.occurrence_limit,
        )
        count = args.count or app_config.recurrence.preview_count
        for index, occurrence in enumerate(generator, start=1):
            print(occurrence.isoformat())
            if index >= count:
                break
    except (RecurrenceError, ValueError) as exc:
        logger.error("Cannot preview %s: %s", args.rule_file, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
