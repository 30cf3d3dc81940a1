"""
Schedule parsing for workflow_scheduler
"""

from .cron_trigger import (
    TEST_MODE_DURATIONS,
    TEST_MODE_INTERVALS,
    build_cron_trigger,
    interval_to_cron,
    parse_duration,
)

__all__ = [
    "TEST_MODE_DURATIONS",
    "TEST_MODE_INTERVALS",
    "build_cron_trigger",
    "interval_to_cron",
    "parse_duration",
]
