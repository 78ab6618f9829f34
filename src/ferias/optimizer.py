"""Vacation optimizer.

Weekends and holidays are already days off.  Spending a vacation day on
the short gap between them *bridges* two separate breaks into a longer
one.  The optimizer enumerates candidate blocks around every holiday,
ranks them according to a strategy and greedily picks the best ones that
fit the vacation-day budget.

Strategies:
  1. bridge_holidays - short bridges, ranked by days off per vacation day
  2. longest_blocks  - bridges plus full weeks, ranked by length
  3. balanced        - bridges plus full weeks, 60% efficiency / 40% length

Selection is greedy: once a candidate claims its dates (or the budget is
spent) lower-ranked candidates are never reconsidered, so the result is
not guaranteed to be globally optimal.
"""

from __future__ import annotations

import calendar
import datetime
import logging
from collections.abc import Iterable
from typing import NamedTuple

from ferias.holidays import Holiday, holiday_dates
from ferias.workweek import DEFAULT_WORK_WEEK, weekday_name

logger = logging.getLogger(__name__)

BRIDGE_HOLIDAYS = "bridge_holidays"
LONGEST_BLOCKS = "longest_blocks"
BALANCED = "balanced"

STRATEGIES: tuple[str, ...] = (BRIDGE_HOLIDAYS, LONGEST_BLOCKS, BALANCED)

EFFICIENCY_WEIGHT = 0.6
LENGTH_WEIGHT = 0.4

_ONE_DAY = datetime.timedelta(days=1)

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class VacationBlock(NamedTuple):
    """A contiguous run of days off that spends at least one vacation day."""

    start_date: datetime.date
    end_date: datetime.date
    total_days: int
    vacation_days_used: int
    dates: tuple[datetime.date, ...]
    holiday_dates: tuple[datetime.date, ...]
    weekend_dates: tuple[datetime.date, ...]

    @property
    def efficiency(self) -> float:
        """Days off gained per vacation day spent."""
        if self.vacation_days_used == 0:
            return 0.0
        return self.total_days / self.vacation_days_used

    def to_dict(self) -> dict[str, object]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_days": self.total_days,
            "vacation_days_used": self.vacation_days_used,
            "dates": [d.isoformat() for d in self.dates],
            "holidays": [d.isoformat() for d in self.holiday_dates],
            "weekends": [d.isoformat() for d in self.weekend_dates],
        }


class OptimizationRequest(NamedTuple):
    """Everything the optimizer needs for one run."""

    year: int
    available_vacation_days: int
    holidays: list[Holiday]
    work_week: frozenset[str] = DEFAULT_WORK_WEEK
    strategy: str = BALANCED
    manual_dates: frozenset[datetime.date] = frozenset()


def resolve_strategy(name: str | None) -> str:
    """Return *name* if it is a known strategy, otherwise ``balanced``."""
    if name in STRATEGIES:
        return name  # type: ignore[return-value]
    logger.warning("Unknown strategy %r, falling back to %r", name, BALANCED)
    return BALANCED


# ---------------------------------------------------------------------------
# Block builder
# ---------------------------------------------------------------------------


def build_block(
    start: datetime.date,
    end: datetime.date,
    holidays: set[datetime.date],
    work_week: frozenset[str],
    manual_dates: frozenset[datetime.date] | set[datetime.date] = frozenset(),
) -> VacationBlock:
    """Classify every day in ``[start, end]`` and return the block.

    Priority: non-work weekday first, then holiday, then a work day that is
    not already a manual vacation (which is what consumes budget).  Manual
    days only count towards ``total_days``.
    """
    if start > end:
        msg = f"Block start {start} is after end {end}"
        raise ValueError(msg)

    dates: list[datetime.date] = []
    holiday_list: list[datetime.date] = []
    weekend_list: list[datetime.date] = []
    used = 0

    current = start
    while current <= end:
        dates.append(current)
        if weekday_name(current) not in work_week:
            weekend_list.append(current)
        elif current in holidays:
            holiday_list.append(current)
        elif current not in manual_dates:
            used += 1
        current += _ONE_DAY

    return VacationBlock(
        start_date=start,
        end_date=end,
        total_days=len(dates),
        vacation_days_used=used,
        dates=tuple(dates),
        holiday_dates=tuple(holiday_list),
        weekend_dates=tuple(weekend_list),
    )


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------

# Bridge windows per weekday of the holiday: (days before, days after).
# Wednesday yields two alternatives; weekend holidays need no bridge.
_BRIDGE_WINDOWS: dict[int, tuple[tuple[int, int], ...]] = {
    0: ((3, 0),),  # Monday: Fri-Sun before
    1: ((1, 0),),  # Tuesday: the Monday
    2: ((2, 0), (0, 2)),  # Wednesday: Mon-Tue or Thu-Fri
    3: ((0, 1),),  # Thursday: the Friday
    4: ((0, 3),),  # Friday: through Monday
}


class VacationOptimizer:
    """Picks vacation blocks around holidays under a vacation-day budget."""

    def __init__(
        self,
        year: int,
        available_vacation_days: int,
        holidays: Iterable[Holiday | datetime.date],
        work_week: Iterable[str] = DEFAULT_WORK_WEEK,
        strategy: str = BALANCED,
        *,
        manual_dates: Iterable[datetime.date] = (),
    ):
        self.year = year
        self.budget = max(0, available_vacation_days)
        self.holidays = sorted(holiday_dates(holidays))
        self.holiday_set = set(self.holidays)
        self.work_week = frozenset(work_week)
        self.strategy = resolve_strategy(strategy)
        self.manual_dates = frozenset(manual_dates)

    @classmethod
    def from_request(cls, request: OptimizationRequest) -> VacationOptimizer:
        return cls(
            year=request.year,
            available_vacation_days=request.available_vacation_days,
            holidays=request.holidays,
            work_week=request.work_week,
            strategy=request.strategy,
            manual_dates=request.manual_dates,
        )

    # ------------------------------------------------------------------
    # Day classification
    # ------------------------------------------------------------------

    def is_weekend(self, d: datetime.date) -> bool:
        return weekday_name(d) not in self.work_week

    def is_work_day(self, d: datetime.date) -> bool:
        return not self.is_weekend(d)

    def calculate_block(self, start: datetime.date, end: datetime.date) -> VacationBlock:
        return build_block(start, end, self.holiday_set, self.work_week, self.manual_dates)

    def is_candidate(self, block: VacationBlock) -> bool:
        """True if *block* spends vacation days, all of them inside the year.

        Days off in the neighbouring years may still extend a block.
        """
        if block.vacation_days_used == 0:
            return False
        free = set(block.holiday_dates) | set(block.weekend_dates) | self.manual_dates
        return all(d.year == self.year for d in block.dates if d not in free)

    # ------------------------------------------------------------------
    # Opportunities
    # ------------------------------------------------------------------

    def find_bridge_opportunities(self) -> list[VacationBlock]:
        """Short blocks that bridge each holiday to the nearest weekend."""
        opportunities: list[VacationBlock] = []
        for holiday in self.holidays:
            for before, after in _BRIDGE_WINDOWS.get(holiday.weekday(), ()):
                block = self.calculate_block(
                    holiday - datetime.timedelta(days=before),
                    holiday + datetime.timedelta(days=after),
                )
                if self.is_candidate(block):
                    opportunities.append(block)
        return opportunities

    def find_all_opportunities(self) -> list[VacationBlock]:
        """Bridges plus the Mon-Sun week around each holiday and the two
        weeks ending with it."""
        opportunities = self.find_bridge_opportunities()

        for holiday in self.holidays:
            week_start = holiday - datetime.timedelta(days=holiday.weekday())
            week_end = week_start + datetime.timedelta(days=6)

            week = self.calculate_block(week_start, week_end)
            if self.is_candidate(week) and week.total_days >= 7:
                opportunities.append(week)

            two_weeks = self.calculate_block(week_start - datetime.timedelta(days=7), week_end)
            if self.is_candidate(two_weeks) and two_weeks.total_days >= 14:
                opportunities.append(two_weeks)

        return _deduplicate(opportunities)

    # ------------------------------------------------------------------
    # Ranking and selection
    # ------------------------------------------------------------------

    def rank(self, opportunities: list[VacationBlock]) -> list[VacationBlock]:
        """Order candidates best-first for the current strategy (stable)."""
        if self.strategy == BRIDGE_HOLIDAYS:
            return sorted(opportunities, key=lambda b: b.efficiency, reverse=True)
        if self.strategy == LONGEST_BLOCKS:
            return sorted(opportunities, key=lambda b: b.total_days, reverse=True)
        return sorted(
            opportunities,
            key=lambda b: EFFICIENCY_WEIGHT * b.efficiency + LENGTH_WEIGHT * b.total_days,
            reverse=True,
        )

    def select_blocks(self, ranked: list[VacationBlock]) -> list[VacationBlock]:
        """Greedily accept candidates that fit the budget without overlap.

        Manual vacation dates are treated as already taken.
        """
        selected: list[VacationBlock] = []
        used_days = 0
        used_dates: set[datetime.date] = set(self.manual_dates)

        if self.budget <= 0:
            return selected

        for block in ranked:
            if used_days + block.vacation_days_used > self.budget:
                continue
            if any(d in used_dates for d in block.dates):
                continue

            selected.append(block)
            used_days += block.vacation_days_used
            used_dates.update(block.dates)

            if used_days >= self.budget:
                break

        return selected

    def candidates(self) -> list[VacationBlock]:
        if self.strategy == BRIDGE_HOLIDAYS:
            return self.find_bridge_opportunities()
        return self.find_all_opportunities()

    def optimize(self) -> list[VacationBlock]:
        """Run the configured strategy and return the chosen blocks."""
        if self.budget <= 0:
            logger.debug("No vacation days available for %d, nothing to optimize", self.year)
            return []

        candidates = self.candidates()
        selected = self.select_blocks(self.rank(candidates))
        logger.debug(
            "Strategy %s picked %d of %d candidate blocks using %d/%d days",
            self.strategy,
            len(selected),
            len(candidates),
            sum(b.vacation_days_used for b in selected),
            self.budget,
        )
        return selected


def _deduplicate(blocks: list[VacationBlock]) -> list[VacationBlock]:
    seen: set[tuple[datetime.date, datetime.date]] = set()
    unique: list[VacationBlock] = []
    for block in blocks:
        key = (block.start_date, block.end_date)
        if key not in seen:
            seen.add(key)
            unique.append(block)
    return unique


def optimize(request: OptimizationRequest) -> list[VacationBlock]:
    """Entry point: choose vacation blocks for *request*."""
    return VacationOptimizer.from_request(request).optimize()


# ---------------------------------------------------------------------------
# Dates -> blocks
# ---------------------------------------------------------------------------


def _parse_dates(dates: Iterable[datetime.date | str]) -> list[datetime.date]:
    parsed: set[datetime.date] = set()
    for value in dates:
        if isinstance(value, datetime.date):
            parsed.add(value)
            continue
        try:
            parsed.add(datetime.date.fromisoformat(value.strip()))
        except (AttributeError, ValueError):
            logger.debug("Skipping unparsable vacation date %r", value)
    return sorted(parsed)


def dates_to_blocks(
    dates: Iterable[datetime.date | str],
    holidays: Iterable[Holiday | datetime.date],
    work_week: Iterable[str] = DEFAULT_WORK_WEEK,
) -> list[VacationBlock]:
    """Group an already decided list of vacation dates into blocks.

    Each block absorbs the weekends and holidays around it, so it shows the
    whole break rather than only the vacation days.  Two vacation dates end
    up in the same block when nothing but weekends/holidays separates them.
    Dates that are already days off are dropped; unparsable strings are
    skipped.
    """
    holiday_set = holiday_dates(holidays)
    ww = frozenset(work_week)

    def is_off(d: datetime.date) -> bool:
        return weekday_name(d) not in ww or d in holiday_set

    vacation = [d for d in _parse_dates(dates) if not is_off(d)]
    if not vacation:
        return []

    spans: list[list[datetime.date]] = []
    for d in vacation:
        if spans:
            gap = spans[-1][1] + _ONE_DAY
            while gap < d and is_off(gap):
                gap += _ONE_DAY
            if gap == d:
                spans[-1][1] = d
                continue
        spans.append([d, d])

    blocks: list[VacationBlock] = []
    for start, end in spans:
        while is_off(start - _ONE_DAY):
            start -= _ONE_DAY
        while is_off(end + _ONE_DAY):
            end += _ONE_DAY
        blocks.append(build_block(start, end, holiday_set, ww))
    return blocks


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------


def format_blocks(
    blocks: list[VacationBlock],
    budget: int,
    title: str = "Vacation Plan",
    description: str = "",
) -> str:
    """Return a human-readable summary of the chosen blocks."""
    lines: list[str] = []
    w = 64

    lines.append("")
    lines.append("=" * w)
    lines.append(f"  {title}")
    if description:
        lines.append(f"  {description}")
    lines.append("=" * w)

    total_off = sum(b.total_days for b in blocks)
    total_used = sum(b.vacation_days_used for b in blocks)

    lines.append(f"  Vacation days used: {total_used} / {budget}")
    lines.append(f"  Total days off: {total_off}")
    if total_used > 0:
        lines.append(f"  Efficiency: {total_off / total_used:.1f}x (days off per vacation day)")
    lines.append("")

    lines.append("  Vacation Blocks:")
    lines.append("  " + "-" * (w - 4))

    for i, block in enumerate(blocks, 1):
        n = block.total_days
        day_word = "day" if n == 1 else "days"
        if block.start_date == block.end_date:
            dr = block.start_date.strftime("%a, %b %d")
        else:
            dr = (
                f"{block.start_date.strftime('%a, %b %d')} -> "
                f"{block.end_date.strftime('%a, %b %d')}"
            )
        lines.append(f"  {i:>2}. {dr}  ({n} {day_word})")

        parts: list[str] = []
        if block.vacation_days_used:
            parts.append(f"{block.vacation_days_used} vacation")
        if block.holiday_dates:
            count = len(block.holiday_dates)
            parts.append(f"{count} holiday{'s' if count > 1 else ''}")
        if block.weekend_dates:
            parts.append(f"{len(block.weekend_dates)} weekend")
        lines.append(f"      {' + '.join(parts)}")
        lines.append("")

    if not blocks:
        lines.append("  (no vacation blocks)")

    return "\n".join(lines)


def format_calendar_view(
    blocks: list[VacationBlock],
    year: int,
    holidays: Iterable[Holiday | datetime.date],
    manual_dates: Iterable[datetime.date] = (),
) -> str:
    """Return a month-by-month calendar marking vacation, manual and holiday days."""
    holiday_set = holiday_dates(holidays)
    manual_set = set(manual_dates)
    vacation_set = {
        d
        for b in blocks
        for d in b.dates
        if d not in b.holiday_dates and d not in b.weekend_dates and d not in manual_set
    }

    active_months = {d.month for d in vacation_set | manual_set | holiday_set if d.year == year}
    if not active_months:
        return ""

    lines: list[str] = [
        "",
        f"  Calendar View {year}",
        "  Legend: V=Vacation  M=Manual  H=Holiday",
        "",
    ]

    cal = calendar.Calendar(firstweekday=0)

    for month in range(1, 13):
        if month not in active_months:
            continue

        lines.append(f"  {calendar.month_name[month]} {year}")
        lines.append("  Mo  Tu  We  Th  Fr  Sa  Su")

        row = ""
        for day_num, weekday in cal.itermonthdays2(year, month):
            if day_num == 0:
                row += "    "
            else:
                d = datetime.date(year, month, day_num)
                if d in vacation_set:
                    cell = f" {day_num:>2}V"
                elif d in manual_set:
                    cell = f" {day_num:>2}M"
                elif d in holiday_set:
                    cell = f" {day_num:>2}H"
                else:
                    cell = f"  {day_num:>2}"
                row += cell

            if weekday == 6:
                lines.append(row)
                row = ""

        if row.strip():
            lines.append(row)
        lines.append("")

    return "\n".join(lines)
