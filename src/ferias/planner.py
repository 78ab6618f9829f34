"""Year plans: configuration, manual and optimized vacation days, and the
merged calendar view.

A plan lives in memory and round-trips through a JSON file, e.g.::

    {
      "year": 2026,
      "vacation_days": 22,
      "reserved_days": 2,
      "strategy": "balanced",
      "work_week": "standard",
      "city": "Porto",
      "manual_vacations": ["2026-08-10", "2026-08-11"]
    }
"""

from __future__ import annotations

import datetime
import json
import logging
import pathlib
from collections.abc import Iterable
from typing import Any, NamedTuple

from ferias.holidays import Holiday
from ferias.optimizer import BALANCED, VacationBlock, VacationOptimizer
from ferias.workweek import (
    DEFAULT_WORK_WEEK,
    WEEKDAYS,
    parse_work_week,
    resolve_work_week,
    weekday_name,
)

logger = logging.getLogger(__name__)

DEFAULT_VACATION_DAYS = 22


class ConfigError(Exception):
    """A year plan file is missing, unreadable or invalid."""


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class YearConfig(NamedTuple):
    """Per-year settings."""

    year: int
    vacation_days: int = DEFAULT_VACATION_DAYS
    reserved_days: int = 0
    strategy: str = BALANCED
    work_week: frozenset[str] = DEFAULT_WORK_WEEK
    city: str | None = None
    notes: str = ""


class OptimalVacation(NamedTuple):
    """A vacation day chosen by the optimizer."""

    date: datetime.date
    block_id: int
    consecutive_days: int


class CalendarDay(NamedTuple):
    date: datetime.date
    day_of_week: str
    is_weekend: bool
    is_holiday: bool
    holiday_name: str | None
    is_vacation: bool
    is_manual: bool
    is_optimal: bool
    block_id: int | None


class CalendarSummary(NamedTuple):
    total_vacation_days: int
    used_vacation_days: int
    remaining_vacation_days: int
    total_holidays: int
    longest_vacation_block: int
    total_days_off: int


def available_budget(config: YearConfig, manual_count: int) -> int:
    """Vacation days the optimizer may still spend (never negative)."""
    return max(0, config.vacation_days - config.reserved_days - manual_count)


# ---------------------------------------------------------------------------
# Year plan
# ---------------------------------------------------------------------------


class YearPlan:
    """Configuration plus the vacation days already decided for one year."""

    def __init__(
        self,
        config: YearConfig,
        manual_dates: Iterable[datetime.date] = (),
        optimal: Iterable[OptimalVacation] = (),
    ):
        self.config = config
        self.manual_dates: set[datetime.date] = set(manual_dates)
        self.optimal: dict[datetime.date, OptimalVacation] = {o.date: o for o in optimal}

    @property
    def year(self) -> int:
        return self.config.year

    @property
    def budget(self) -> int:
        return available_budget(self.config, len(self.manual_dates))

    def optimize(self, holidays: list[Holiday]) -> list[VacationBlock]:
        """Re-run the optimizer and replace the optimized days with its picks."""
        optimizer = VacationOptimizer(
            self.year,
            self.budget,
            holidays,
            self.config.work_week,
            self.config.strategy,
            manual_dates=self.manual_dates,
        )
        blocks = optimizer.optimize()
        self.apply_blocks(blocks)
        return blocks

    def apply_blocks(self, blocks: Iterable[VacationBlock]) -> None:
        """Store the budget-consuming days of *blocks* as optimized vacation."""
        self.optimal.clear()
        for block_id, block in enumerate(blocks, 1):
            off = set(block.holiday_dates) | set(block.weekend_dates) | self.manual_dates
            for d in block.dates:
                if d not in off:
                    self.optimal[d] = OptimalVacation(d, block_id, block.total_days)
        logger.debug("Stored %d optimized vacation days for %d", len(self.optimal), self.year)

    def add_manual(
        self, dates: Iterable[datetime.date], holidays: Iterable[Holiday] = ()
    ) -> list[datetime.date]:
        """Add manual vacation days, refusing holidays.  Returns the refused dates."""
        holiday_set = {h.date for h in holidays}
        skipped: list[datetime.date] = []
        for d in dates:
            if d in holiday_set:
                skipped.append(d)
                continue
            self.manual_dates.add(d)
        return skipped

    def remove_dates(self, dates: Iterable[datetime.date]) -> None:
        for d in dates:
            self.manual_dates.discard(d)
            self.optimal.pop(d, None)

    def clear_optimized(self) -> None:
        self.optimal.clear()

    def clear_all(self) -> None:
        self.manual_dates.clear()
        self.optimal.clear()

    def update_config(self, **changes: Any) -> YearConfig:
        self.config = self.config._replace(**changes)
        return self.config

    def vacation_dates(self) -> list[datetime.date]:
        return sorted(self.manual_dates | set(self.optimal))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        c = self.config
        return {
            "year": c.year,
            "vacation_days": c.vacation_days,
            "reserved_days": c.reserved_days,
            "strategy": c.strategy,
            "work_week": [d for d in WEEKDAYS if d in c.work_week],
            "city": c.city,
            "notes": c.notes,
            "manual_vacations": [d.isoformat() for d in sorted(self.manual_dates)],
            "optimal_vacations": [
                {
                    "date": o.date.isoformat(),
                    "block_id": o.block_id,
                    "consecutive_days": o.consecutive_days,
                }
                for o in sorted(self.optimal.values())
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], year: int | None = None) -> YearPlan:
        """Build a plan from parsed JSON.  Raises ``ConfigError`` on bad input."""
        if not isinstance(data, dict):
            msg = "Plan file must contain a JSON object"
            raise ConfigError(msg)

        try:
            resolved_year = int(year if year is not None else data["year"])
        except KeyError:
            msg = "Plan file must contain a 'year' key"
            raise ConfigError(msg) from None
        except (TypeError, ValueError):
            msg = f"Invalid year {data.get('year')!r}"
            raise ConfigError(msg) from None

        config = YearConfig(
            year=resolved_year,
            vacation_days=_int_field(data, "vacation_days", DEFAULT_VACATION_DAYS),
            reserved_days=_int_field(data, "reserved_days", 0),
            strategy=str(data.get("strategy") or BALANCED),
            work_week=_work_week_field(data.get("work_week")),
            city=(str(data["city"]).strip() or None) if data.get("city") else None,
            notes=str(data.get("notes") or ""),
        )

        manual = [_date_field(v, "manual_vacations") for v in data.get("manual_vacations") or []]
        optimal: list[OptimalVacation] = []
        for raw in data.get("optimal_vacations") or []:
            if not isinstance(raw, dict):
                msg = f"Invalid optimal vacation entry {raw!r}"
                raise ConfigError(msg)
            optimal.append(
                OptimalVacation(
                    _date_field(raw.get("date"), "optimal_vacations"),
                    _int_field(raw, "block_id", 0),
                    _int_field(raw, "consecutive_days", 0),
                )
            )
        return cls(config, manual, optimal)


def _int_field(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool):
        msg = f"'{key}' must be an integer, got {value!r}"
        raise ConfigError(msg)
    try:
        number = int(value)
    except (TypeError, ValueError):
        msg = f"'{key}' must be an integer, got {value!r}"
        raise ConfigError(msg) from None
    if number < 0:
        msg = f"'{key}' must not be negative"
        raise ConfigError(msg)
    return number


def _date_field(value: object, key: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        msg = f"Invalid date {value!r} in '{key}'. Use YYYY-MM-DD."
        raise ConfigError(msg) from None


def _work_week_field(value: object) -> frozenset[str]:
    if value is None:
        return DEFAULT_WORK_WEEK
    try:
        if isinstance(value, str):
            return resolve_work_week(value)
        if isinstance(value, list):
            return parse_work_week(str(v) for v in value)
    except ValueError as exc:
        raise ConfigError(str(exc)) from None
    msg = f"'work_week' must be a preset name or a list of weekdays, got {value!r}"
    raise ConfigError(msg)


def load_plan(path: str | pathlib.Path, year: int | None = None) -> YearPlan:
    """Load a year plan from a JSON file."""
    p = pathlib.Path(path)
    if not p.exists():
        msg = f"Config file not found: {path}"
        raise ConfigError(msg)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in config file: {exc}"
        raise ConfigError(msg) from None
    return YearPlan.from_dict(data, year)


def save_plan(plan: YearPlan, path: str | pathlib.Path) -> None:
    pathlib.Path(path).write_text(
        json.dumps(plan.to_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )


# ---------------------------------------------------------------------------
# Calendar view
# ---------------------------------------------------------------------------


def build_calendar_days(plan: YearPlan, holidays: Iterable[Holiday]) -> list[CalendarDay]:
    """One entry per day of the plan's year, merging every source of days off."""
    names = {h.date: h.name for h in holidays}
    work_week = plan.config.work_week

    days: list[CalendarDay] = []
    d = datetime.date(plan.year, 1, 1)
    end = datetime.date(plan.year, 12, 31)
    while d <= end:
        optimal = plan.optimal.get(d)
        is_manual = d in plan.manual_dates
        day_name = weekday_name(d)
        days.append(
            CalendarDay(
                date=d,
                day_of_week=day_name,
                is_weekend=day_name not in work_week,
                is_holiday=d in names,
                holiday_name=names.get(d),
                is_vacation=is_manual or optimal is not None,
                is_manual=is_manual,
                is_optimal=optimal is not None,
                block_id=optimal.block_id if optimal else None,
            )
        )
        d += datetime.timedelta(days=1)
    return days


def calculate_summary(plan: YearPlan, holidays: Iterable[Holiday]) -> CalendarSummary:
    """Totals for the plan.

    ``total_days_off`` counts vacation days and holidays plus the non-work
    days that run contiguously into them.
    """
    year = plan.year
    holiday_set = {h.date for h in holidays if h.date.year == year}
    work_week = plan.config.work_week
    used = len(plan.manual_dates) + len(plan.optimal)

    special = plan.manual_dates | set(plan.optimal) | holiday_set
    off = set(special)
    for d in special:
        for step in (-1, 1):
            n = d + datetime.timedelta(days=step)
            while n.year == year and n not in off and weekday_name(n) not in work_week:
                off.add(n)
                n += datetime.timedelta(days=step)

    return CalendarSummary(
        total_vacation_days=plan.config.vacation_days,
        used_vacation_days=used,
        remaining_vacation_days=plan.config.vacation_days - used,
        total_holidays=len(holiday_set),
        longest_vacation_block=max((o.consecutive_days for o in plan.optimal.values()), default=0),
        total_days_off=sum(1 for d in off if d.year == year),
    )
