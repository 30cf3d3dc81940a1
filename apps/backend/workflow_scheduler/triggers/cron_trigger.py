"""
Cron expression handling for APScheduler.

Expressions use the crontab field order (``minute hour day month
day_of_week``, optionally preceded by a seconds field). Crontab numbers
weekdays from Sunday (0 or 7) while APScheduler starts at Monday, so numeric
weekdays are rewritten to names before building the trigger.
"""

import logging
import re
from datetime import timedelta
from typing import Dict, List

import pytz
from apscheduler.triggers.cron import CronTrigger as APCronTrigger

from workflow_scheduler.core.exceptions import InvalidScheduleError

logger = logging.getLogger(__name__)

# Test-mode tick periods
TEST_MODE_INTERVALS: Dict[str, str] = {
    "1min": "* * * * *",
    "5min": "*/5 * * * *",
    "10min": "*/10 * * * *",
    "15min": "*/15 * * * *",
    "30min": "*/30 * * * *",
    "1hr": "0 * * * *",
    "2hr": "0 */2 * * *",
    "6hr": "0 */6 * * *",
    "12hr": "0 */12 * * *",
    "1day": "0 0 * * *",
}

# Test-mode session lifetimes
TEST_MODE_DURATIONS: Dict[str, timedelta] = {
    "15min": timedelta(minutes=15),
    "30min": timedelta(minutes=30),
    "1hr": timedelta(hours=1),
    "2hr": timedelta(hours=2),
    "6hr": timedelta(hours=6),
    "12hr": timedelta(hours=12),
    "1day": timedelta(days=1),
}
DEFAULT_TEST_DURATION = "30min"

_CRON_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]
_RANGE_RE = re.compile(r"^(\d+)-(\d+)(?:/(\d+))?$")
_STEP_RE = re.compile(r"^\*/(\d+)$")


def resolve_timezone(name: str) -> str:
    """Return ``name`` if pytz knows it, else UTC"""
    try:
        pytz.timezone(name)
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {name}, using UTC")
        return "UTC"
    return name


def _weekday_name(value: str, expression: str) -> str:
    number = int(value)
    if number > 7:
        raise InvalidScheduleError(f"Invalid day of week {value} in cron expression: {expression}")
    return _CRON_WEEKDAYS[number]


def convert_day_of_week(field: str, expression: str = "") -> str:
    """Rewrite crontab weekday numbers (Sunday = 0/7) as APScheduler names.

    Ranges and ``*/N`` steps are expanded to explicit lists so ``0-6`` does
    not turn into the backwards ``sun-sat`` and steps count from Sunday.
    """
    parts: List[str] = []
    for part in field.split(","):
        if part.isdigit():
            parts.append(_weekday_name(part, expression))
            continue

        step_match = _STEP_RE.match(part)
        match = _RANGE_RE.match(part)
        if step_match:
            start, end, step = 0, 6, int(step_match.group(1))
        elif match:
            start, end, step = int(match.group(1)), int(match.group(2)), int(match.group(3) or 1)
        else:
            # '*', names and name ranges are understood as-is
            parts.append(part)
            continue

        if start > end or step < 1:
            raise InvalidScheduleError(f"Invalid day of week range {part} in cron expression: {expression}")
        for number in range(start, end + 1, step):
            name = _weekday_name(str(number), expression)
            if name not in parts:
                parts.append(name)
    return ",".join(parts)


def build_cron_trigger(expression: str, timezone: str = "UTC") -> APCronTrigger:
    """Parse a 5- or 6-field cron expression into an APScheduler trigger"""
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidScheduleError("Cron expression is empty")

    cron_parts = expression.strip().split()
    if len(cron_parts) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = cron_parts
    elif len(cron_parts) == 6:
        second, minute, hour, day, month, day_of_week = cron_parts
    else:
        raise InvalidScheduleError(f"Invalid cron expression format: {expression}")

    try:
        return APCronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=convert_day_of_week(day_of_week, expression),
            timezone=resolve_timezone(timezone),
        )
    except ValueError as e:
        raise InvalidScheduleError(f"Invalid cron expression {expression}: {e}") from e


def interval_to_cron(interval: str) -> str:
    try:
        return TEST_MODE_INTERVALS[interval]
    except KeyError:
        raise InvalidScheduleError(
            f"Invalid interval: {interval}. Expected one of {', '.join(TEST_MODE_INTERVALS)}"
        ) from None


def parse_duration(duration: str) -> timedelta:
    """Map a test-mode duration label to a timedelta; unknown labels mean 30 minutes"""
    if duration not in TEST_MODE_DURATIONS:
        logger.warning(f"Unknown test duration {duration!r}, defaulting to {DEFAULT_TEST_DURATION}")
    return TEST_MODE_DURATIONS.get(duration, TEST_MODE_DURATIONS[DEFAULT_TEST_DURATION])


__all__ = [
    "TEST_MODE_INTERVALS",
    "TEST_MODE_DURATIONS",
    "DEFAULT_TEST_DURATION",
    "resolve_timezone",
    "convert_day_of_week",
    "build_cron_trigger",
    "interval_to_cron",
    "parse_duration",
]
