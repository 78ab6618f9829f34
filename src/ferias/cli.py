"""Typer CLI for the ferias vacation optimizer."""

from __future__ import annotations

import datetime
import json
import sys

import typer

from ferias.actions import AddVacation, apply_action, extract_actions
from ferias.holidays import AVAILABLE_CITIES, Holiday, portuguese_holidays
from ferias.logging_config import setup_logging
from ferias.optimizer import (
    STRATEGIES,
    VacationBlock,
    dates_to_blocks,
    format_blocks,
    format_calendar_view,
)
from ferias.planner import (
    DEFAULT_VACATION_DAYS,
    ConfigError,
    YearConfig,
    YearPlan,
    calculate_summary,
    load_plan,
    save_plan,
)
from ferias.provider import HolidayService, HolidayServiceConfig, HolidayStatus
from ferias.workweek import DEFAULT_WORK_WEEK, WEEKDAYS, WORK_WEEK_PRESETS, resolve_work_week

app = typer.Typer(
    name="ferias",
    help="Portuguese vacation optimizer: place vacation days next to weekends "
    "and holidays to get the longest breaks out of your allowance.",
    add_completion=False,
)


def _parse_date(value: str) -> datetime.date:
    """Parse a YYYY-MM-DD date string."""
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid date format {value!r}. Use YYYY-MM-DD.") from None


def _current_year() -> int:
    return datetime.date.today().year


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _work_week(value: str | None) -> frozenset[str] | None:
    if value is None:
        return None
    try:
        return resolve_work_week(value)
    except ValueError as exc:
        raise _fail(str(exc)) from None


def _load_holidays(year: int, city: str | None, offline: bool) -> list[Holiday]:
    """Holidays for *year*, from the APIs unless *offline*."""
    if offline:
        return portuguese_holidays(year)

    try:
        config = HolidayServiceConfig.from_env()
    except ValueError as exc:
        raise _fail(str(exc)) from None

    # One-shot command: leaving the block cancels any background retry.
    with HolidayService(config) as service:
        holidays = service.load_holidays(year, city)
        status = service.get_status(year)

    if status is not None and status.has_errors:
        _warn_status(status)
    return holidays


def _warn_status(status: HolidayStatus) -> None:
    if status.national_error:
        typer.echo(
            f"Warning: national holidays unavailable ({status.national_error}); "
            "using the built-in calendar.",
            err=True,
        )
    if status.municipal_error:
        typer.echo(
            f"Warning: municipal holidays unavailable ({status.municipal_error}).", err=True
        )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output to stderr.",
    ),
) -> None:
    setup_logging(verbose=verbose)


@app.command()
def optimize(
    year: int = typer.Option(
        None,
        "--year",
        "-y",
        help="Target year. Defaults to the config file's year, then the current year.",
    ),
    budget: int = typer.Option(
        None,
        "--budget",
        "-b",
        help="Vacation days the optimizer may spend (overrides --vacation-days/--reserved).",
        min=0,
    ),
    vacation_days: int = typer.Option(
        None,
        "--vacation-days",
        help=f"Yearly vacation allowance. Defaults to {DEFAULT_VACATION_DAYS}.",
        min=0,
    ),
    reserved: int = typer.Option(
        None,
        "--reserved",
        "-r",
        help="Vacation days to keep out of the optimization.",
        min=0,
    ),
    manual: list[str] | None = typer.Option(  # noqa: B008
        None,
        "--manual",
        "-m",
        help="Vacation day already booked (YYYY-MM-DD). Repeatable.",
    ),
    work_week: str | None = typer.Option(
        None,
        "--work-week",
        "-w",
        help=f"Preset ({', '.join(WORK_WEEK_PRESETS)}) or comma-separated weekdays.",
    ),
    strategy: str | None = typer.Option(
        None,
        "--strategy",
        "-s",
        help=f"Strategy to run: {', '.join(STRATEGIES)}. Defaults to balanced.",
    ),
    city: str | None = typer.Option(
        None,
        "--city",
        "-c",
        help="Municipality whose local holiday should be included.",
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Use the built-in national calendar, no network access.",
    ),
    calendar: bool = typer.Option(
        True,
        "--calendar/--no-calendar",
        help="Show month-by-month calendar view.",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output results as JSON.",
    ),
    config: str | None = typer.Option(
        None,
        "--config",
        help="Path to a JSON year plan file.",
    ),
    save: bool = typer.Option(
        False,
        "--save",
        help="Write the optimized plan back to --config.",
    ),
) -> None:
    """Optimize vacation placement for maximum time off."""
    if strategy is not None and strategy not in STRATEGIES:
        typer.echo(
            f"Error: Invalid strategy {strategy!r}. Choose from: {', '.join(STRATEGIES)}",
            err=True,
        )
        raise typer.Exit(code=1)
    if save and config is None:
        raise _fail("--save requires --config.")

    manual_dates = [_parse_date(m) for m in manual or []]
    ww = _work_week(work_week)

    if config is not None:
        try:
            plan = load_plan(config, year)
        except ConfigError as exc:
            raise _fail(str(exc)) from None
    else:
        plan = YearPlan(YearConfig(year=year if year is not None else _current_year()))

    changes: dict[str, object] = {}
    if vacation_days is not None:
        changes["vacation_days"] = vacation_days
    if reserved is not None:
        changes["reserved_days"] = reserved
    if strategy is not None:
        changes["strategy"] = strategy
    if ww is not None:
        changes["work_week"] = ww
    if city is not None:
        changes["city"] = city.strip() or None
    if changes:
        plan.update_config(**changes)

    holidays = _load_holidays(plan.year, plan.config.city, offline)
    skipped = plan.add_manual(manual_dates, holidays)
    for d in skipped:
        typer.echo(f"Warning: {d.isoformat()} is a holiday, not booked as vacation.", err=True)

    if budget is not None:
        plan.update_config(vacation_days=budget + len(plan.manual_dates), reserved_days=0)

    blocks = plan.optimize(holidays)

    if save and config is not None:
        save_plan(plan, config)

    if output_json:
        _print_json(plan, blocks, holidays)
    else:
        _print_text(plan, blocks, holidays, calendar)
        if save:
            typer.echo(f"  Plan saved to {config}")


def _print_text(
    plan: YearPlan,
    blocks: list[VacationBlock],
    holidays: list[Holiday],
    show_calendar: bool,
) -> None:
    c = plan.config
    w = 64
    typer.echo("=" * w)
    typer.echo("  FERIAS VACATION OPTIMIZER")
    typer.echo("=" * w)
    typer.echo(f"  Year:              {c.year}")
    typer.echo(f"  Vacation days:     {c.vacation_days} ({c.reserved_days} reserved)")
    typer.echo(f"  Manual vacations:  {len(plan.manual_dates)}")
    typer.echo(f"  Work week:         {', '.join(d for d in WEEKDAYS if d in c.work_week)}")
    typer.echo(f"  Strategy:          {c.strategy}")
    if c.city:
        typer.echo(f"  City:              {c.city}")
    typer.echo(f"  Holidays:          {len(holidays)}")
    typer.echo()
    for h in holidays:
        typer.echo(f"    {h.date.strftime('%a, %b %d'):>12}  {h.name}")

    typer.echo(format_blocks(blocks, plan.budget, title=f"Strategy: {c.strategy}"))
    if show_calendar:
        typer.echo(format_calendar_view(blocks, c.year, holidays, plan.manual_dates))

    summary = calculate_summary(plan, holidays)
    typer.echo()
    typer.echo("=" * w)
    typer.echo(
        f"  {summary.used_vacation_days} of {summary.total_vacation_days} vacation days used, "
        f"{summary.total_days_off} days off in total."
    )
    typer.echo("=" * w)


def _print_json(plan: YearPlan, blocks: list[VacationBlock], holidays: list[Holiday]) -> None:
    c = plan.config
    output = {
        "year": c.year,
        "strategy": c.strategy,
        "budget": plan.budget,
        "work_week": [d for d in WEEKDAYS if d in c.work_week],
        "city": c.city,
        "manual_vacations": [d.isoformat() for d in sorted(plan.manual_dates)],
        "holidays": [h.to_dict() for h in holidays],
        "blocks": [b.to_dict() for b in blocks],
        "summary": calculate_summary(plan, holidays)._asdict(),
    }
    json.dump(output, sys.stdout, indent=2, ensure_ascii=False)
    typer.echo()


@app.command()
def convert(
    dates: list[str] = typer.Argument(  # noqa: B008
        ...,
        help="Vacation dates (YYYY-MM-DD) to group into blocks.",
    ),
    work_week: str | None = typer.Option(
        None,
        "--work-week",
        "-w",
        help=f"Preset ({', '.join(WORK_WEEK_PRESETS)}) or comma-separated weekdays.",
    ),
    city: str | None = typer.Option(
        None,
        "--city",
        "-c",
        help="Municipality whose local holiday should be included.",
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Use the built-in national calendar, no network access.",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output results as JSON.",
    ),
) -> None:
    """Group existing vacation dates into blocks, weekends and holidays included."""
    parsed = sorted({_parse_date(d) for d in dates})
    ww = _work_week(work_week) or DEFAULT_WORK_WEEK

    # Blocks may spill into the neighbouring years.
    years = range(parsed[0].year - 1, parsed[-1].year + 2)
    holidays = [h for y in years for h in _load_holidays(y, city, offline)]

    blocks = dates_to_blocks(parsed, holidays, ww)
    if output_json:
        json.dump([b.to_dict() for b in blocks], sys.stdout, indent=2)
        typer.echo()
        return

    used = sum(b.vacation_days_used for b in blocks)
    typer.echo(format_blocks(blocks, used, title="Vacation Blocks"))


@app.command()
def holidays(
    year: int = typer.Option(
        None,
        "--year",
        "-y",
        help="Year to list holidays for. Defaults to the current year.",
    ),
    city: str | None = typer.Option(
        None,
        "--city",
        "-c",
        help="Municipality whose local holiday should be included.",
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Use the built-in national calendar, no network access.",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output results as JSON.",
    ),
) -> None:
    """List Portuguese holidays for a year."""
    resolved_year = year if year is not None else _current_year()
    result = _load_holidays(resolved_year, city, offline)

    if output_json:
        json.dump([h.to_dict() for h in result], sys.stdout, indent=2, ensure_ascii=False)
        typer.echo()
        return

    title = f"Feriados {resolved_year}"
    if city:
        title += f" ({city})"
    typer.echo(f"  {title}")
    typer.echo()
    for h in result:
        typer.echo(f"    {h.date.strftime('%a, %b %d'):>12}  {h.name}  [{h.type}]")


@app.command()
def cities() -> None:
    """List the municipalities with local holiday support."""
    for city in AVAILABLE_CITIES:
        typer.echo(city)


@app.command()
def apply(
    config: str = typer.Option(
        ...,
        "--config",
        help="Path to the JSON year plan file to update.",
    ),
    input_path: str | None = typer.Option(
        None,
        "--input",
        "-i",
        help="File containing the text with embedded actions. Defaults to stdin.",
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Use the built-in national calendar, no network access.",
    ),
) -> None:
    """Apply the JSON actions embedded in free text to a year plan."""
    try:
        plan = load_plan(config)
    except ConfigError as exc:
        raise _fail(str(exc)) from None

    if input_path is None:
        text = sys.stdin.read()
    else:
        try:
            with open(input_path, encoding="utf-8") as f:
                text = f.read()
        except OSError as exc:
            raise _fail(f"Cannot read {input_path}: {exc}") from None

    actions = extract_actions(text)
    if not actions:
        typer.echo("No actions found.")
        return

    holiday_list: list[Holiday] | None = None
    for action in actions:
        if isinstance(action, AddVacation) and holiday_list is None:
            holiday_list = _load_holidays(plan.year, plan.config.city, offline)

        result = apply_action(plan, action, holiday_list or [])
        typer.echo(f"  applied {action.action}")  # type: ignore[attr-defined]
        for d in result.skipped_holidays:
            typer.echo(f"    skipped {d.isoformat()} (holiday)")

        if result.trigger_optimize:
            if holiday_list is None:
                holiday_list = _load_holidays(plan.year, plan.config.city, offline)
            blocks = plan.optimize(holiday_list)
            typer.echo(
                f"    {len(blocks)} blocks, "
                f"{sum(b.vacation_days_used for b in blocks)} vacation days placed"
            )

    save_plan(plan, config)
    typer.echo(f"Plan saved to {config}")


def main() -> None:
    """Entry point for the CLI."""
    app()
