"""Work-week definitions.

A work week is a set of lowercase weekday names.  Every weekday outside
the set counts as *weekend* for scheduling, so a four-day week treats
Friday exactly like Saturday.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable

# Index matches ``datetime.date.weekday()``: 0 = Monday … 6 = Sunday.
WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

WORK_WEEK_PRESETS: dict[str, tuple[str, ...]] = {
    "standard": ("monday", "tuesday", "wednesday", "thursday", "friday"),
    "four_day": ("monday", "tuesday", "wednesday", "thursday"),
    "four_day_fri": ("tuesday", "wednesday", "thursday", "friday"),
    "six_day": ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday"),
}

DEFAULT_WORK_WEEK: frozenset[str] = frozenset(WORK_WEEK_PRESETS["standard"])


def weekday_name(d: datetime.date) -> str:
    """Return the lowercase weekday name of *d*."""
    return WEEKDAYS[d.weekday()]


def parse_work_week(days: Iterable[str]) -> frozenset[str]:
    """Normalise weekday names into a work-week set.

    Raises ``ValueError`` for anything that is not a weekday name.
    """
    work_week = set()
    for day in days:
        name = day.strip().lower()
        if not name:
            continue
        if name not in WEEKDAYS:
            msg = f"Unknown weekday {day!r}. Use one of: {', '.join(WEEKDAYS)}"
            raise ValueError(msg)
        work_week.add(name)
    return frozenset(work_week)


def resolve_work_week(value: str) -> frozenset[str]:
    """Resolve a preset name (``standard``, ``four_day`` …) or a
    comma-separated list of weekday names."""
    preset = WORK_WEEK_PRESETS.get(value.strip().lower())
    if preset is not None:
        return frozenset(preset)
    if "," not in value and value.strip().lower() not in WEEKDAYS:
        supported = ", ".join(sorted(WORK_WEEK_PRESETS))
        msg = f"Unknown work-week preset {value!r}. Supported: {supported}"
        raise ValueError(msg)
    return parse_work_week(value.split(","))


def weekend_days(work_week: Iterable[str]) -> list[str]:
    """Weekday names outside *work_week*, in calendar order."""
    ww = set(work_week)
    return [d for d in WEEKDAYS if d not in ww]
